from __future__ import annotations

import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cosmic_dispatch.notifications.profile_resolver import PostgresProfileResolver, resolve_profiles, unique_user_ids
from tests.unit.fakes import InMemoryProfileResolver, paid_profile


def test_unique_user_ids_drops_anonymous_and_keeps_first_seen_order():
  assert unique_user_ids(["user-2", None, "user-1", "", "user-2", "user-3", "user-1"]) == ["user-2", "user-1", "user-3"]


@pytest.mark.anyio
async def test_resolve_profiles_skips_the_call_when_there_are_no_ids():
  resolver = InMemoryProfileResolver()

  resolution = await resolve_profiles(resolver, [None, None])

  assert resolution.profiles == {}
  assert resolution.degraded is False
  assert resolver.calls == []


@pytest.mark.anyio
async def test_resolve_profiles_degrades_on_failure():
  resolver = InMemoryProfileResolver(error=ConnectionError("profile db down"))

  resolution = await resolve_profiles(resolver, ["user-1"])

  assert resolution.degraded is True
  assert resolution.profiles == {}
  assert resolver.calls == [["user-1"]]


@pytest.mark.anyio
async def test_resolve_profiles_tolerates_missing_profiles():
  resolver = InMemoryProfileResolver([paid_profile("user-1")])

  resolution = await resolve_profiles(resolver, ["user-1", "user-2"])

  assert set(resolution.profiles) == {"user-1"}
  assert resolution.degraded is False


@pytest.mark.anyio
async def test_postgres_resolver_maps_rows_with_billing_status():
  rows = [
    SimpleNamespace(user_id="user-1", name="Alice", birthday=datetime.date(1990, 5, 17), status="active", plan_type="premium"),
    SimpleNamespace(user_id="user-2", name="Bob", birthday=None, status=None, plan_type=None),
  ]
  result = MagicMock()
  result.all.return_value = rows
  session = AsyncMock()
  session.execute.return_value = result
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  factory.return_value.__aexit__.return_value = False

  profiles = await PostgresProfileResolver(session_factory=factory).batch_get_profiles(["user-1", "user-2"])

  assert session.execute.await_count == 1
  assert profiles["user-1"].subscription.is_paid is True
  assert profiles["user-2"].subscription.is_paid is False
  assert profiles["user-2"].subscription.status == "free"


@pytest.mark.anyio
async def test_postgres_resolver_refuses_empty_batches():
  with pytest.raises(ValueError):
    await PostgresProfileResolver(session_factory=MagicMock()).batch_get_profiles([])
