"""Idempotency ledger for scheduled notification events.

A run claims ``(date, event_key)`` by inserting an ``in_progress`` row before
any subscriber I/O. The row becomes ``sent`` once a delivery succeeded, and is
deleted again when the run delivered nothing. A claim left behind by a crashed
process expires after ``claim_ttl_seconds`` and can then be taken over.
"""

from __future__ import annotations

import datetime
import logging

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cosmic_dispatch.notifications.contracts import NotificationEvent, SentEventMeta
from cosmic_dispatch.schema.sent_events import LEDGER_STATUS_IN_PROGRESS, LEDGER_STATUS_SENT, NotificationSentEvent

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_TTL_SECONDS = 120.0


def derive_event_key(event: NotificationEvent) -> str:
  """Build a stable, collision-free ledger key for an event.

  Layout is ``type:priority:suffix:name``. Type, priority and suffix can never
  contain ``:``, so the name may hold any text without two events colliding.
  """
  return f"{event.type}:{event.priority}:{event.key_suffix}:{event.name.strip()}"


class PostgresEventLedger:
  """Persist claimed and dispatched (date, event key) pairs in Postgres."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession], claim_ttl_seconds: float = DEFAULT_CLAIM_TTL_SECONDS) -> None:
    self._session_factory = session_factory
    self._claim_ttl = datetime.timedelta(seconds=claim_ttl_seconds)

  def _live(self) -> ColumnElement[bool]:
    # Database clock on both sides so app hosts with skewed clocks agree on expiry.
    return or_(NotificationSentEvent.status == LEDGER_STATUS_SENT, NotificationSentEvent.claimed_at >= func.now() - self._claim_ttl)

  async def exists(self, *, date: datetime.date, event_key: str) -> bool:
    """Return True when the event was sent on the date or a live run holds the claim."""
    async with self._session_factory() as session:
      stmt = select(NotificationSentEvent.id).where(NotificationSentEvent.date == date, NotificationSentEvent.event_key == event_key, self._live()).limit(1)
      result = await session.execute(stmt)
      return result.scalar_one_or_none() is not None

  async def insert_if_absent(self, *, date: datetime.date, event_key: str, meta: SentEventMeta) -> bool:
    """Claim the event for this run; return False when another run holds or finished it."""
    async with self._session_factory() as session:
      stmt = insert(NotificationSentEvent).values(
        date=date, event_key=event_key, event_type=meta.event_type, event_name=meta.event_name, event_priority=meta.event_priority, sent_by=meta.sent_by, status=LEDGER_STATUS_IN_PROGRESS
      )
      stmt = stmt.on_conflict_do_update(
        index_elements=["date", "event_key"],
        set_={"sent_by": stmt.excluded.sent_by, "claimed_at": func.now()},
        where=and_(NotificationSentEvent.status == LEDGER_STATUS_IN_PROGRESS, NotificationSentEvent.claimed_at < func.now() - self._claim_ttl),
      ).returning(NotificationSentEvent.id)
      result = await session.execute(stmt)
      claimed = result.scalar_one_or_none() is not None
      await session.commit()

    if not claimed:
      logger.info("Ledger claim lost date=%s event_key=%s; another run holds or finished it", date, event_key)
    return claimed

  async def mark_sent(self, *, date: datetime.date, event_key: str) -> bool:
    """Turn this run's claim into a sent row; False when the claim is no longer ours."""
    async with self._session_factory() as session:
      stmt = (
        update(NotificationSentEvent)
        .where(NotificationSentEvent.date == date, NotificationSentEvent.event_key == event_key, NotificationSentEvent.status == LEDGER_STATUS_IN_PROGRESS)
        .values(status=LEDGER_STATUS_SENT, sent_at=func.now())
        .returning(NotificationSentEvent.id)
      )
      result = await session.execute(stmt)
      marked = result.scalar_one_or_none() is not None
      await session.commit()
      return marked

  async def release(self, *, date: datetime.date, event_key: str) -> bool:
    """Drop an unfinished claim so a later trigger can send the event."""
    async with self._session_factory() as session:
      stmt = delete(NotificationSentEvent).where(NotificationSentEvent.date == date, NotificationSentEvent.event_key == event_key, NotificationSentEvent.status == LEDGER_STATUS_IN_PROGRESS)
      result = await session.execute(stmt)
      await session.commit()
      return bool(result.rowcount)

  async def cleanup_before(self, *, date: datetime.date) -> int:
    """Delete ledger rows dated before the cutoff."""
    async with self._session_factory() as session:
      result = await session.execute(delete(NotificationSentEvent).where(NotificationSentEvent.date < date))
      await session.commit()
      return int(result.rowcount or 0)
