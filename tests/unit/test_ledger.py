from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from cosmic_dispatch.notifications.contracts import InvalidEventError, NotificationEvent, SentEventMeta
from cosmic_dispatch.notifications.ledger import PostgresEventLedger, derive_event_key
from cosmic_dispatch.schema.sent_events import LEDGER_STATUS_IN_PROGRESS, LEDGER_STATUS_SENT


def _session_factory(session: AsyncMock) -> MagicMock:
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  factory.return_value.__aexit__.return_value = False
  return factory


def test_event_key_layout_is_type_priority_suffix_name():
  assert derive_event_key(NotificationEvent(name="Full Moon", type="moon", priority=5)) == "moon:5::Full Moon"
  assert derive_event_key(NotificationEvent(name="Full Moon", type="moon", priority=5, key_suffix="am")) == "moon:5:am:Full Moon"


def test_event_keys_do_not_collide_when_names_contain_separators():
  first = NotificationEvent(name="b:c", type="a", priority=1)
  second = NotificationEvent(name="c", type="a", priority=1, key_suffix="b")

  assert derive_event_key(first) != derive_event_key(second)


@pytest.mark.parametrize(
  "event",
  [
    NotificationEvent(name="Full Moon", type="", priority=5),
    NotificationEvent(name="Full Moon", type="Moon Phase", priority=5),
    NotificationEvent(name=" ", type="moon", priority=5),
    NotificationEvent(name="Full Moon", type="moon", priority=None),
    NotificationEvent(name="Full Moon", type="moon", priority=True),
    NotificationEvent(name="Full Moon", type="moon", priority=5, key_suffix="a:b"),
  ],
)
def test_invalid_events_are_rejected(event):
  with pytest.raises(InvalidEventError):
    event.validate()


@pytest.mark.anyio
async def test_insert_if_absent_reports_conflict_as_not_inserted():
  session = AsyncMock()
  result = MagicMock()
  result.scalar_one_or_none.return_value = None
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session))

  inserted = await ledger.insert_if_absent(date=datetime.date(2026, 3, 20), event_key="moon:5::Full Moon", meta=SentEventMeta(event_type="moon", event_name="Full Moon", event_priority=5, sent_by="daily"))

  assert inserted is False
  session.commit.assert_awaited_once()
  statement = str(session.execute.call_args.args[0])
  assert "ON CONFLICT" in statement.upper()


@pytest.mark.anyio
async def test_exists_checks_for_matching_row():
  session = AsyncMock()
  result = MagicMock()
  result.scalar_one_or_none.return_value = 42
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session))

  assert await ledger.exists(date=datetime.date(2026, 3, 20), event_key="moon:5::Full Moon") is True


@pytest.mark.anyio
async def test_cleanup_before_returns_deleted_row_count():
  session = AsyncMock()
  result = MagicMock()
  result.rowcount = 3
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session))

  assert await ledger.cleanup_before(date=datetime.date(2026, 3, 19)) == 3
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_claim_statement_only_takes_over_stale_in_progress_rows():
  session = AsyncMock()
  result = MagicMock()
  result.scalar_one_or_none.return_value = 7
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session), claim_ttl_seconds=90)

  claimed = await ledger.insert_if_absent(date=datetime.date(2026, 3, 20), event_key="moon:5::Full Moon", meta=SentEventMeta(event_type="moon", event_name="Full Moon", event_priority=5, sent_by="daily"))

  assert claimed is True
  statement = str(session.execute.call_args.args[0].compile(dialect=postgresql.dialect()))
  assert "DO UPDATE" in statement
  assert "claimed_at <" in statement
  assert "RETURNING" in statement


@pytest.mark.anyio
async def test_mark_sent_only_finalizes_an_in_progress_claim():
  session = AsyncMock()
  result = MagicMock()
  result.scalar_one_or_none.return_value = None
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session))

  assert await ledger.mark_sent(date=datetime.date(2026, 3, 20), event_key="moon:5::Full Moon") is False
  session.commit.assert_awaited_once()
  statement = session.execute.call_args.args[0].compile(dialect=postgresql.dialect())
  assert str(statement).startswith("UPDATE notification_sent_events SET status=")
  assert LEDGER_STATUS_IN_PROGRESS in statement.params.values()
  assert LEDGER_STATUS_SENT in statement.params.values()


@pytest.mark.anyio
async def test_release_deletes_only_unfinished_claims():
  session = AsyncMock()
  result = MagicMock()
  result.rowcount = 1
  session.execute.return_value = result
  ledger = PostgresEventLedger(session_factory=_session_factory(session))

  assert await ledger.release(date=datetime.date(2026, 3, 20), event_key="moon:5::Full Moon") is True
  statement = session.execute.call_args.args[0].compile(dialect=postgresql.dialect())
  assert str(statement).startswith("DELETE FROM notification_sent_events")
  assert "notification_sent_events.status =" in str(statement)
  assert LEDGER_STATUS_IN_PROGRESS in statement.params.values()
