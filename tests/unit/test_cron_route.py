from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from cosmic_dispatch.api.routes.cron import get_dispatch_engine
from cosmic_dispatch.config import get_settings
from cosmic_dispatch.main import app
from cosmic_dispatch.notifications.aggregator import RunCounts
from cosmic_dispatch.notifications.service import RunResult, RunState

EVENT_PAYLOAD = {"name": "Full Moon", "type": "moon", "priority": 5, "sign": "Libra", "sentBy": "daily"}


@pytest.fixture
def engine():
  mock_engine = AsyncMock()
  mock_engine.run.return_value = RunResult(success=True, state=RunState.LEDGER_MARKED, event_key="moon:5::Full Moon", counts=RunCounts(push_sent=3, total_subscribers=3), ledger_marked=True)
  return mock_engine


@pytest.fixture
async def client(engine):
  settings = replace(get_settings(), cron_secret="cron-secret")
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_dispatch_engine] = lambda: engine
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
    yield async_client
  app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health_check():
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
    response = await ac.get("/health")

  assert response.status_code == 200
  assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_trigger_runs_engine_with_secret_header(client, engine):
  response = await client.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"X-Cron-Secret": "cron-secret"})

  assert response.status_code == 200
  body = response.json()
  assert body["state"] == "ledger_marked"
  assert body["counts"]["pushSent"] == 3
  engine.run.assert_awaited_once()
  event = engine.run.call_args.args[0]
  assert event.name == "Full Moon"
  assert event.sign == "Libra"
  assert engine.run.call_args.kwargs == {"sent_by": "daily"}


@pytest.mark.anyio
async def test_trigger_accepts_bearer_token(client, engine):
  response = await client.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"Authorization": "Bearer cron-secret"})

  assert response.status_code == 200


@pytest.mark.anyio
async def test_trigger_rejects_wrong_secret(client, engine):
  response = await client.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"X-Cron-Secret": "nope"})

  assert response.status_code == 403
  engine.run.assert_not_awaited()


@pytest.mark.anyio
async def test_trigger_is_closed_when_secret_unset(engine):
  settings = replace(get_settings(), cron_secret=None)
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_dispatch_engine] = lambda: engine
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
      response = await ac.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"X-Cron-Secret": ""})
  finally:
    app.dependency_overrides.clear()

  assert response.status_code == 403
  engine.run.assert_not_awaited()


@pytest.mark.anyio
async def test_unknown_fields_are_rejected(client, engine):
  response = await client.post("/internal/cron/notifications", json={**EVENT_PAYLOAD, "audience": "everyone"}, headers={"X-Cron-Secret": "cron-secret"})

  assert response.status_code == 422
  engine.run.assert_not_awaited()


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("result", "status_code"),
  [
    (RunResult(success=True, state=RunState.QUIET_HOURS, skipped_reason="quiet_hours"), 200),
    (RunResult(success=False, state=RunState.INVALID, skipped_reason="invalid_event", error="Event type must match ^[a-z0-9_]+$"), 400),
    (RunResult(success=False, state=RunState.LEDGER_UNTOUCHED), 500),
  ],
)
async def test_trigger_status_reflects_run_outcome(client, engine, result, status_code):
  engine.run.return_value = result

  response = await client.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"X-Cron-Secret": "cron-secret"})

  assert response.status_code == status_code
  assert response.json()["state"] == result.state.value


@pytest.mark.anyio
async def test_trigger_without_runtime_is_unavailable():
  settings = replace(get_settings(), cron_secret="cron-secret")
  app.dependency_overrides[get_settings] = lambda: settings
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
      response = await ac.post("/internal/cron/notifications", json=EVENT_PAYLOAD, headers={"X-Cron-Secret": "cron-secret"})
  finally:
    app.dependency_overrides.clear()

  assert response.status_code == 503
