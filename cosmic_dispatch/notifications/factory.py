"""Factory helpers for the dispatch engine."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cosmic_dispatch.config import Settings
from cosmic_dispatch.core.database import create_db_engine, create_session_factory
from cosmic_dispatch.notifications.contracts import EmailSender, NotificationConfigurationError, PushSender
from cosmic_dispatch.notifications.email_sender import MailerSendConfig, MailerSendEmailSender, NullEmailSender
from cosmic_dispatch.notifications.ledger import PostgresEventLedger
from cosmic_dispatch.notifications.profile_resolver import PostgresProfileResolver
from cosmic_dispatch.notifications.push_sender import NullPushSender, VapidConfig, WebPushSender
from cosmic_dispatch.notifications.push_subscription_repo import PushSubscriptionRepository
from cosmic_dispatch.notifications.quiet_hours import QuietHours
from cosmic_dispatch.notifications.service import DispatchContext, DispatchEngine


@dataclass(frozen=True)
class DispatchRuntime:
  """A dispatch engine together with the database engine it owns."""

  engine: DispatchEngine
  context: DispatchContext
  db_engine: AsyncEngine

  async def aclose(self) -> None:
    await self.db_engine.dispose()


def build_push_sender(settings: Settings) -> PushSender:
  """Return a Web Push sender, or a no-op sender when push is disabled."""
  if not settings.push_notifications_enabled:
    return NullPushSender()

  # Missing VAPID keys are a deploy error; refuse to run rather than silently drop every push.
  missing = [name for name, value in (("COSMIC_PUSH_VAPID_PUBLIC_KEY", settings.push_vapid_public_key), ("COSMIC_PUSH_VAPID_PRIVATE_KEY", settings.push_vapid_private_key), ("COSMIC_PUSH_VAPID_SUB", settings.push_vapid_sub)) if not value]
  if missing:
    raise NotificationConfigurationError(f"Push notifications are enabled but {', '.join(missing)} must be set.")

  vapid_config = VapidConfig(public_key=settings.push_vapid_public_key or "", private_key=settings.push_vapid_private_key or "", sub=settings.push_vapid_sub or "")
  return WebPushSender(vapid_config=vapid_config, timeout_seconds=settings.delivery_timeout_seconds)


def build_email_sender(settings: Settings) -> EmailSender:
  """Return a MailerSend sender, or a no-op sender when email is disabled."""
  if not settings.email_notifications_enabled:
    return NullEmailSender()

  if not settings.mailersend_api_key or not settings.email_from_address:
    raise NotificationConfigurationError("Email notifications are enabled but COSMIC_MAILERSEND_API_KEY or COSMIC_EMAIL_FROM_ADDRESS is not set.")

  mailersend_config = MailerSendConfig(
    api_key=settings.mailersend_api_key, from_address=settings.email_from_address, from_name=settings.email_from_name, timeout_seconds=settings.mailersend_timeout_seconds, base_url=settings.mailersend_base_url
  )
  return MailerSendEmailSender(config=mailersend_config)


def build_dispatch_context(settings: Settings, *, session_factory: async_sessionmaker[AsyncSession]) -> DispatchContext:
  """Wire stores, senders and limits into a context shared by every run in this process."""
  return DispatchContext(
    store=PushSubscriptionRepository(session_factory=session_factory),
    profile_resolver=PostgresProfileResolver(session_factory=session_factory),
    ledger=PostgresEventLedger(session_factory=session_factory, claim_ttl_seconds=settings.ledger_claim_ttl_seconds),
    push_sender=build_push_sender(settings),
    email_sender=build_email_sender(settings),
    push_enabled=settings.push_notifications_enabled,
    email_enabled=settings.email_notifications_enabled,
    quiet_hours=QuietHours(start_hour=settings.quiet_hours_start, end_hour=settings.quiet_hours_end, enabled=settings.quiet_hours_enabled),
    concurrency=settings.dispatch_concurrency,
    delivery_timeout_seconds=settings.delivery_timeout_seconds,
    run_budget_seconds=settings.run_budget_seconds,
    ledger_retention_days=settings.ledger_retention_days,
    base_url=settings.app_base_url,
  )


def create_dispatch_runtime(settings: Settings) -> DispatchRuntime:
  """Build the database engine and dispatch engine once per process."""
  if not settings.pg_dsn:
    raise NotificationConfigurationError("COSMIC_PG_DSN is not set; the dispatch engine needs Postgres.")

  db_engine = create_db_engine(settings.pg_dsn, debug=settings.debug)
  try:
    context = build_dispatch_context(settings, session_factory=create_session_factory(db_engine))
  except NotificationConfigurationError:
    db_engine.sync_engine.dispose()
    raise

  return DispatchRuntime(engine=DispatchEngine(context), context=context, db_engine=db_engine)
