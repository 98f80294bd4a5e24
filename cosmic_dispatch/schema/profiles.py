"""Read-only models for the profile and billing tables owned by other services."""

from __future__ import annotations

import datetime

from sqlalchemy import Date, DateTime, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from cosmic_dispatch.core.database import Base


class UserProfileRecord(Base):
  __tablename__ = "user_profiles"

  user_id: Mapped[str] = mapped_column(Text, primary_key=True)
  name: Mapped[str | None] = mapped_column(Text, nullable=True)
  birthday: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class BillingSubscription(Base):
  __tablename__ = "billing_subscriptions"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(Text, unique=True, index=True, nullable=False)
  status: Mapped[str] = mapped_column(Text, nullable=False, server_default="free")
  plan_type: Mapped[str | None] = mapped_column(Text, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
