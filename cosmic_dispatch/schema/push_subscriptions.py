"""SQLAlchemy model for browser Web Push subscriptions."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Index, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from cosmic_dispatch.core.database import Base


class PushSubscription(Base):
  """Persist a single browser push subscription endpoint, optionally owned by a user."""

  __tablename__ = "push_subscriptions"
  __table_args__ = (Index("ux_push_subscriptions_endpoint", "endpoint", unique=True), Index("ix_push_subscriptions_active", "is_active"))

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  # Anonymous opt-ins have no owner and never receive personalized content.
  user_id: Mapped[str | None] = mapped_column(Text, index=True, nullable=True)
  user_email: Mapped[str | None] = mapped_column(Text, nullable=True)
  endpoint: Mapped[str] = mapped_column(Text, nullable=False)
  p256dh: Mapped[str] = mapped_column(Text, nullable=False)
  auth: Mapped[str] = mapped_column(Text, nullable=False)
  preferences: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
  last_notification_sent_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
