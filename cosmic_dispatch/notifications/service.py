"""Scheduled notification dispatch: one run per trigger, fanned out to every matching subscriber."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cosmic_dispatch.notifications.aggregator import RunCounts, aggregate_outcomes
from cosmic_dispatch.notifications.content import build_notification_content, subscription_filter_for
from cosmic_dispatch.notifications.contracts import (
  DispatchOutcome,
  EmailSender,
  EventLedger,
  FailureKind,
  InvalidEventError,
  NotificationContent,
  NotificationEvent,
  ProfileResolver,
  PushSender,
  SentEventMeta,
  Subscription,
  SubscriberStore,
  UserProfile,
)
from cosmic_dispatch.notifications.dispatcher import DeliveryDispatcher, DeliveryPayload
from cosmic_dispatch.notifications.ledger import derive_event_key
from cosmic_dispatch.notifications.personalization import personalize_notification, should_personalize
from cosmic_dispatch.notifications.profile_resolver import resolve_profiles
from cosmic_dispatch.notifications.quiet_hours import QuietHours, is_quiet_time

logger = logging.getLogger(__name__)

SENT_BY_VALUES = frozenset({"daily", "4-hourly", "manual"})


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class RunState(str, Enum):
  PENDING = "pending"
  INVALID = "invalid"
  LEDGER_CHECKED = "ledger_checked"
  ALREADY_SENT = "already_sent"
  QUIET_HOURS = "quiet_hours"
  SUBSCRIBERS_FETCHED = "subscribers_fetched"
  PROFILES_RESOLVED = "profiles_resolved"
  DISPATCHING = "dispatching"
  AGGREGATED = "aggregated"
  LEDGER_MARKED = "ledger_marked"
  LEDGER_UNTOUCHED = "ledger_untouched"
  FAILED = "failed"


def _advance(event_key: str, state: RunState) -> None:
  logger.debug("Run %s -> %s", event_key, state.value)


@dataclass(frozen=True)
class DispatchContext:
  """Everything a run needs, constructed once per process and passed in explicitly."""

  store: SubscriberStore
  profile_resolver: ProfileResolver
  ledger: EventLedger
  push_sender: PushSender
  email_sender: EmailSender
  push_enabled: bool = True
  email_enabled: bool = False
  quiet_hours: QuietHours = field(default_factory=QuietHours)
  concurrency: int = 25
  delivery_timeout_seconds: float = 10.0
  run_budget_seconds: float = 50.0
  ledger_retention_days: int = 1
  base_url: str = ""
  clock: Callable[[], datetime.datetime] = _utc_now


@dataclass
class RunResult:
  success: bool
  state: RunState
  event_key: str | None = None
  date: datetime.date | None = None
  counts: RunCounts = field(default_factory=RunCounts)
  skipped_reason: str | None = None
  error: str | None = None
  degraded: bool = False
  ledger_marked: bool = False
  timed_out: bool = False
  details: list[dict[str, Any]] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    return {
      "success": self.success,
      "state": self.state.value,
      "eventKey": self.event_key,
      "date": self.date.isoformat() if self.date else None,
      "counts": self.counts.to_dict(),
      "skippedReason": self.skipped_reason,
      "error": self.error,
      "degraded": self.degraded,
      "ledgerMarked": self.ledger_marked,
      "timedOut": self.timed_out,
      "results": self.details,
    }


class DispatchEngine:
  """Run the ledger-claim, fetch, personalize, deliver and mark sequence for one event."""

  def __init__(self, context: DispatchContext) -> None:
    self._context = context
    self._dispatcher = DeliveryDispatcher(
      store=context.store,
      push_sender=context.push_sender,
      email_sender=context.email_sender,
      push_enabled=context.push_enabled,
      email_enabled=context.email_enabled,
      timeout_seconds=context.delivery_timeout_seconds,
      concurrency=context.concurrency,
    )

  async def run(self, event: NotificationEvent, *, sent_by: str = "daily", now: datetime.datetime | None = None) -> RunResult:
    """Dispatch an event once per UTC day.

    The run claims the ledger row before any subscriber I/O, so an overlapping
    trigger for the same event skips instead of sending twice. The claim is
    finalized only after at least one delivery succeeded and released
    otherwise, so a run with zero successes can be repeated by a later trigger
    the same day.
    """
    context = self._context
    now = now or context.clock()
    today = now.astimezone(datetime.UTC).date()

    try:
      event.validate()
      if sent_by not in SENT_BY_VALUES:
        raise InvalidEventError(f"sent_by must be one of {', '.join(sorted(SENT_BY_VALUES))}")
    except InvalidEventError as exc:
      logger.error("Invalid notification event type=%r name=%r: %s", event.type, event.name, exc)
      return RunResult(success=False, state=RunState.INVALID, date=today, skipped_reason="invalid_event", error=str(exc))

    event_key = derive_event_key(event)
    _advance(event_key, RunState.PENDING)
    await self._cleanup_ledger(today)

    try:
      already_sent = await context.ledger.exists(date=today, event_key=event_key)
    except Exception as exc:  # noqa: BLE001
      # Without the ledger there is no duplicate protection, so nothing is sent.
      logger.error("Ledger lookup failed event_key=%s; aborting run: %s", event_key, exc, exc_info=True)
      return RunResult(success=False, state=RunState.FAILED, event_key=event_key, date=today, error=f"ledger lookup failed: {exc}")

    if already_sent:
      logger.info("Event %s already sent on %s, skipping duplicate", event_key, today)
      return RunResult(success=True, state=RunState.ALREADY_SENT, event_key=event_key, date=today, skipped_reason="already_sent")

    if is_quiet_time(now, context.quiet_hours):
      logger.info("Skipped event %s during quiet hours (%02d:00 UTC); ledger left untouched", event_key, now.astimezone(datetime.UTC).hour)
      return RunResult(success=True, state=RunState.QUIET_HOURS, event_key=event_key, date=today, skipped_reason="quiet_hours")

    meta = SentEventMeta(event_type=event.type, event_name=event.name, event_priority=event.priority, sent_by=sent_by)
    try:
      claimed = await context.ledger.insert_if_absent(date=today, event_key=event_key, meta=meta)
    except Exception as exc:  # noqa: BLE001
      logger.error("Ledger claim failed event_key=%s; aborting run: %s", event_key, exc, exc_info=True)
      return RunResult(success=False, state=RunState.FAILED, event_key=event_key, date=today, error=f"ledger claim failed: {exc}")

    if not claimed:
      logger.info("Event %s claimed by an overlapping run on %s, skipping duplicate", event_key, today)
      return RunResult(success=True, state=RunState.ALREADY_SENT, event_key=event_key, date=today, skipped_reason="already_sent")
    _advance(event_key, RunState.LEDGER_CHECKED)

    result: RunResult | None = None
    try:
      result = await self._deliver(event, event_key=event_key, today=today)
    finally:
      if result is None:
        # Crashed or cancelled before outcomes were known; let a later trigger try again.
        await self._release_claim(today, event_key)

    await self._settle_ledger(result)

    counts = result.counts
    logger.info(
      "Notification run finished event_key=%s state=%s push_sent=%d push_failed=%d emails_sent=%d emails_failed=%d deactivated=%d personalized=%d ledger_marked=%s",
      event_key,
      result.state.value,
      counts.push_sent,
      counts.push_failed,
      counts.emails_sent,
      counts.emails_failed,
      counts.deactivated,
      counts.personalized,
      result.ledger_marked,
    )
    return result

  async def _deliver(self, event: NotificationEvent, *, event_key: str, today: datetime.date) -> RunResult:
    """Fetch subscribers and profiles, then fan out; the caller holds the ledger claim."""
    context = self._context
    try:
      subscriptions = await context.store.query_active_subscriptions(subscription_filter_for(event.type))
    except Exception as exc:  # noqa: BLE001
      logger.error("Subscriber query failed event_key=%s: %s", event_key, exc, exc_info=True)
      return RunResult(success=False, state=RunState.FAILED, event_key=event_key, date=today, error=f"subscriber query failed: {exc}")
    _advance(event_key, RunState.SUBSCRIBERS_FETCHED)

    if not subscriptions:
      logger.info("No active subscriptions found for event type %s", event.type)
      return RunResult(success=True, state=RunState.LEDGER_UNTOUCHED, event_key=event_key, date=today, skipped_reason="no_subscribers")

    logger.info("Sending %s to %d subscribers", event_key, len(subscriptions))
    resolution = await resolve_profiles(context.profile_resolver, (subscription.user_id for subscription in subscriptions))
    content = build_notification_content(event, date=today, base_url=context.base_url)
    _advance(event_key, RunState.PROFILES_RESOLVED)

    _advance(event_key, RunState.DISPATCHING)
    outcomes, timed_out = await self._fan_out(subscriptions, event_type=event.type, content=content, profiles=resolution.profiles)
    counts, details = aggregate_outcomes(outcomes, total_subscribers=len(subscriptions))
    return RunResult(success=counts.successful > 0, state=RunState.AGGREGATED, event_key=event_key, date=today, counts=counts, degraded=resolution.degraded, timed_out=timed_out, details=details)

  async def _fan_out(self, subscriptions: list[Subscription], *, event_type: str, content: NotificationContent, profiles: dict[str, UserProfile]) -> tuple[list[DispatchOutcome], bool]:
    """Deliver concurrently under the semaphore and the run budget."""
    semaphore = asyncio.Semaphore(self._context.concurrency)

    async def _deliver(subscription: Subscription) -> DispatchOutcome:
      async with semaphore:
        payload = _payload_for(subscription, event_type=event_type, content=content, profiles=profiles)
        return await self._dispatcher.dispatch(subscription, payload)

    tasks = {asyncio.create_task(_deliver(subscription)): subscription for subscription in subscriptions}
    try:
      done, pending = await asyncio.wait(tasks.keys(), timeout=self._context.run_budget_seconds)
    finally:
      # Cancellation of the run propagates to every delivery still in flight.
      for task in tasks:
        if not task.done():
          task.cancel()

    if pending:
      await asyncio.gather(*pending, return_exceptions=True)
      logger.error("Run budget of %.0fs exhausted; %d of %d deliveries cancelled until the next trigger", self._context.run_budget_seconds, len(pending), len(tasks))

    outcomes: list[DispatchOutcome] = []
    for task in done:
      exc = task.exception()
      if exc is None:
        outcomes.append(task.result())
        continue
      subscription = tasks[task]
      logger.error("Delivery task crashed endpoint=%s...: %s", subscription.endpoint_preview, exc, exc_info=exc)
      outcomes.append(DispatchOutcome(success=False, endpoint=subscription.endpoint, user_id=subscription.user_id, failure=FailureKind.TRANSIENT, error=str(exc)))

    return outcomes, bool(pending)

  async def _settle_ledger(self, result: RunResult) -> None:
    """Finalize the claim after a delivered run, release it otherwise."""
    delivered = result.state is RunState.AGGREGATED and result.counts.successful > 0
    if not delivered:
      await self._release_claim(result.date, result.event_key)
      if result.state is RunState.AGGREGATED:
        result.state = RunState.LEDGER_UNTOUCHED
        logger.warning("No deliveries succeeded for %s; ledger left open for the next trigger", result.event_key)
      return

    try:
      marked = await self._context.ledger.mark_sent(date=result.date, event_key=result.event_key)
    except Exception as exc:  # noqa: BLE001
      # Deliveries cannot be recalled; the claim expires and a later trigger may send this event again.
      logger.critical("Ledger write failed after %d successful deliveries for %s; duplicate sends possible: %s", result.counts.successful, result.event_key, exc, exc_info=True)
      result.state = RunState.LEDGER_UNTOUCHED
      result.error = f"ledger write failed: {exc}"
      return

    if not marked:
      logger.critical("Ledger claim for %s expired during the run and was taken over; duplicate sends possible", result.event_key)
      result.state = RunState.LEDGER_UNTOUCHED
      result.error = "ledger claim lost before it could be marked"
      return

    result.state = RunState.LEDGER_MARKED
    result.ledger_marked = True

  async def _release_claim(self, today: datetime.date, event_key: str) -> None:
    try:
      await self._context.ledger.release(date=today, event_key=event_key)
    except Exception as exc:  # noqa: BLE001
      logger.error("Releasing ledger claim failed event_key=%s; it expires on its own: %s", event_key, exc, exc_info=True)

  async def _cleanup_ledger(self, today: datetime.date) -> None:
    cutoff = today - datetime.timedelta(days=self._context.ledger_retention_days)
    try:
      removed = await self._context.ledger.cleanup_before(date=cutoff)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Ledger retention sweep failed cutoff=%s: %s", cutoff, exc)
      return
    if removed:
      logger.debug("Removed %d ledger rows older than %s", removed, cutoff)


def _payload_for(subscription: Subscription, *, event_type: str, content: NotificationContent, profiles: dict[str, UserProfile]) -> DeliveryPayload:
  """Pick personalized or generic content; anything unexpected falls back to the generic template."""
  profile = profiles.get(subscription.user_id) if subscription.user_id else None
  recipient_name = profile.name if profile else None
  if not should_personalize(profile):
    return DeliveryPayload(content=content, recipient_name=recipient_name)

  try:
    personalized = personalize_notification(content, event_type, profile)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Personalization failed user_id=%s; sending generic content: %s", subscription.user_id, exc)
    return DeliveryPayload(content=content, recipient_name=recipient_name)

  return DeliveryPayload(content=personalized, personalized=personalized != content, recipient_name=recipient_name)
