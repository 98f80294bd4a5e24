"""Batched personalization lookups that avoid one query per recipient."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cosmic_dispatch.notifications.contracts import BillingStatus, ProfileResolver, UserProfile
from cosmic_dispatch.schema.profiles import BillingSubscription, UserProfileRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileResolution:
  profiles: dict[str, UserProfile]
  degraded: bool = False


def unique_user_ids(user_ids: Iterable[str | None]) -> list[str]:
  """Drop anonymous entries and duplicates while keeping first-seen order."""
  return list(dict.fromkeys(user_id for user_id in user_ids if user_id))


async def resolve_profiles(resolver: ProfileResolver, user_ids: Iterable[str | None]) -> ProfileResolution:
  """Resolve profiles for the distinct owners in one call.

  The resolver is never called when there is nobody to look up. A failed batch
  call degrades the run to generic content instead of aborting it.
  """
  distinct_ids = unique_user_ids(user_ids)
  if not distinct_ids:
    return ProfileResolution(profiles={})

  try:
    profiles = await resolver.batch_get_profiles(distinct_ids)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Profile batch lookup failed for %d users; sending generic content: %s", len(distinct_ids), exc, exc_info=True)
    return ProfileResolution(profiles={}, degraded=True)

  missing = len(distinct_ids) - sum(1 for user_id in distinct_ids if user_id in profiles)
  if missing:
    logger.debug("No profile found for %d of %d users", missing, len(distinct_ids))
  return ProfileResolution(profiles=dict(profiles))


class PostgresProfileResolver:
  """Read names, birthdays and billing status for many users in a single query."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def batch_get_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
    if not user_ids:
      raise ValueError("batch_get_profiles requires at least one user id.")

    async with self._session_factory() as session:
      stmt = (
        select(UserProfileRecord.user_id, UserProfileRecord.name, UserProfileRecord.birthday, BillingSubscription.status, BillingSubscription.plan_type)
        .outerjoin(BillingSubscription, BillingSubscription.user_id == UserProfileRecord.user_id)
        .where(UserProfileRecord.user_id.in_(user_ids))
      )
      result = await session.execute(stmt)
      rows = result.all()

    return {row.user_id: UserProfile(user_id=row.user_id, name=row.name, birthday=row.birthday, subscription=BillingStatus.from_row(row.status, row.plan_type)) for row in rows}
