"""Repository helpers for Web Push subscription reads and delivery bookkeeping."""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cosmic_dispatch.notifications.contracts import Subscription, SubscriptionFilter, SubscriptionPreferences
from cosmic_dispatch.schema.push_subscriptions import PushSubscription

logger = logging.getLogger(__name__)


class PushSubscriptionRepository:
  """Query and update push subscriptions in Postgres."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def query_active_subscriptions(self, subscription_filter: SubscriptionFilter) -> list[Subscription]:
    """Fetch every active subscription matching the filter in one round trip."""
    async with self._session_factory() as session:
      return await self._query_with_session(session=session, subscription_filter=subscription_filter)

  async def _query_with_session(self, *, session: AsyncSession, subscription_filter: SubscriptionFilter) -> list[Subscription]:
    stmt = select(PushSubscription).where(PushSubscription.is_active.is_(True))

    if subscription_filter.preference_key:
      flag = PushSubscription.preferences[subscription_filter.preference_key].astext
      if subscription_filter.missing_flag_enabled:
        stmt = stmt.where(or_(flag == "true", flag.is_(None)))
      else:
        stmt = stmt.where(flag == "true")

    for field_name in subscription_filter.required_fields:
      value = PushSubscription.preferences[field_name].astext
      stmt = stmt.where(value.is_not(None), func.trim(value) != "")

    # Stable order keeps run logs comparable between triggers.
    stmt = stmt.order_by(PushSubscription.created_at, PushSubscription.endpoint)
    result = await session.execute(stmt)
    rows = result.scalars().all()
    return [_to_subscription(row) for row in rows]

  async def deactivate(self, *, endpoint: str) -> None:
    """Stop future runs from targeting an endpoint the provider rejected permanently."""
    async with self._session_factory() as session:
      stmt = update(PushSubscription).where(PushSubscription.endpoint == endpoint).values(is_active=False, updated_at=func.now())
      await session.execute(stmt)
      await session.commit()
    logger.info("Marked push subscription inactive endpoint=%s...", endpoint[:50])

  async def touch_last_sent(self, *, endpoint: str) -> None:
    """Record the advisory last-sent timestamp for an endpoint."""
    async with self._session_factory() as session:
      stmt = update(PushSubscription).where(PushSubscription.endpoint == endpoint).values(last_notification_sent_at=func.now())
      await session.execute(stmt)
      await session.commit()


def _to_subscription(row: PushSubscription) -> Subscription:
  return Subscription(
    endpoint=row.endpoint,
    p256dh=row.p256dh,
    auth=row.auth,
    user_id=row.user_id or None,
    user_email=row.user_email or None,
    preferences=SubscriptionPreferences.from_blob(row.preferences),
    is_active=row.is_active,
    last_notification_sent_at=row.last_notification_sent_at,
  )
