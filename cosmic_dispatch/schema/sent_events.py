"""SQLAlchemy model for the per-day notification idempotency ledger."""

from __future__ import annotations

import datetime

from sqlalchemy import Date, DateTime, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from cosmic_dispatch.core.database import Base

LEDGER_STATUS_IN_PROGRESS = "in_progress"
LEDGER_STATUS_SENT = "sent"


class NotificationSentEvent(Base):
  """Claim on, and later record of, a scheduled event dispatched on a given date."""

  __tablename__ = "notification_sent_events"
  __table_args__ = (UniqueConstraint("date", "event_key", name="uq_notification_sent_events_date_key"), Index("ix_notification_sent_events_sent_at", "sent_at"))

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
  event_key: Mapped[str] = mapped_column(Text, nullable=False)
  event_type: Mapped[str] = mapped_column(Text, nullable=False)
  event_name: Mapped[str] = mapped_column(Text, nullable=False)
  event_priority: Mapped[int] = mapped_column(Integer, nullable=False)
  sent_by: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(Text, nullable=False, server_default=LEDGER_STATUS_IN_PROGRESS)
  claimed_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  sent_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
