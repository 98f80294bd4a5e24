from __future__ import annotations

import os
from dataclasses import replace

import pytest

from cosmic_dispatch.config import get_settings
from cosmic_dispatch.core.database import normalize_database_url
from cosmic_dispatch.notifications.contracts import NotificationConfigurationError
from cosmic_dispatch.notifications.email_sender import MailerSendEmailSender, NullEmailSender
from cosmic_dispatch.notifications.factory import build_email_sender, build_push_sender, create_dispatch_runtime
from cosmic_dispatch.notifications.push_sender import NullPushSender, WebPushSender
from cosmic_dispatch.notifications.service import DispatchEngine


@pytest.fixture
def clean_env(monkeypatch):
  for key in list(os.environ):
    if key.startswith("COSMIC_"):
      monkeypatch.delenv(key)
  get_settings.cache_clear()
  yield monkeypatch
  get_settings.cache_clear()


def test_defaults(clean_env):
  settings = get_settings()

  assert settings.environment == "development"
  assert settings.push_notifications_enabled is True
  assert settings.email_notifications_enabled is False
  assert (settings.quiet_hours_start, settings.quiet_hours_end) == (22, 8)
  assert settings.dispatch_concurrency == 25
  assert settings.delivery_timeout_seconds == 10.0
  assert settings.run_budget_seconds == 50.0
  assert settings.ledger_retention_days == 1
  assert settings.ledger_claim_ttl_seconds == 120.0
  assert settings.app_base_url == "http://localhost:3000"


def test_env_overrides(clean_env):
  clean_env.setenv("COSMIC_QUIET_HOURS_ENABLED", "false")
  clean_env.setenv("COSMIC_DISPATCH_CONCURRENCY", "5")
  clean_env.setenv("COSMIC_APP_BASE_URL", "https://stars.example.com/")
  clean_env.setenv("COSMIC_CRON_SECRET", "  s3cret  ")

  settings = get_settings()

  assert settings.quiet_hours_enabled is False
  assert settings.dispatch_concurrency == 5
  assert settings.app_base_url == "https://stars.example.com"
  assert settings.cron_secret == "s3cret"


@pytest.mark.parametrize(
  ("key", "value"),
  [
    ("COSMIC_QUIET_HOURS_START", "24"),
    ("COSMIC_DISPATCH_CONCURRENCY", "0"),
    ("COSMIC_DELIVERY_TIMEOUT_SECONDS", "-1"),
    ("COSMIC_RUN_BUDGET_SECONDS", "1"),
    ("COSMIC_LEDGER_RETENTION_DAYS", "0"),
    ("COSMIC_LEDGER_CLAIM_TTL_SECONDS", "30"),
    ("COSMIC_PUSH_VAPID_SUB", "admin@example.com"),
  ],
)
def test_invalid_values_fail_fast(clean_env, key, value):
  clean_env.setenv(key, value)

  with pytest.raises(ValueError):
    get_settings()


def test_push_without_vapid_keys_is_a_configuration_error(clean_env):
  with pytest.raises(NotificationConfigurationError, match="COSMIC_PUSH_VAPID_PRIVATE_KEY"):
    build_push_sender(get_settings())


def test_disabled_channels_use_null_senders(clean_env):
  settings = replace(get_settings(), push_notifications_enabled=False)

  assert isinstance(build_push_sender(settings), NullPushSender)
  assert isinstance(build_email_sender(settings), NullEmailSender)


def test_email_enabled_requires_mailersend_credentials(clean_env):
  settings = replace(get_settings(), email_notifications_enabled=True)

  with pytest.raises(NotificationConfigurationError):
    build_email_sender(settings)

  configured = replace(settings, mailersend_api_key="ms-key", email_from_address="stars@example.com")
  assert isinstance(build_email_sender(configured), MailerSendEmailSender)


def test_runtime_requires_database_dsn(clean_env):
  with pytest.raises(NotificationConfigurationError, match="COSMIC_PG_DSN"):
    create_dispatch_runtime(get_settings())


@pytest.mark.anyio
async def test_runtime_wires_engine_from_settings(clean_env):
  settings = replace(get_settings(), pg_dsn="postgresql://dispatch:pw@localhost:5432/cosmic", push_vapid_public_key="pub", push_vapid_private_key="priv", push_vapid_sub="mailto:ops@example.com", dispatch_concurrency=7)

  runtime = create_dispatch_runtime(settings)
  try:
    assert isinstance(runtime.engine, DispatchEngine)
    assert isinstance(runtime.context.push_sender, WebPushSender)
    assert runtime.context.concurrency == 7
    assert runtime.db_engine.url.drivername == "postgresql+asyncpg"
  finally:
    await runtime.aclose()


def test_database_url_is_normalized_to_asyncpg():
  assert normalize_database_url("postgres://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
  assert normalize_database_url("postgresql://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
  assert normalize_database_url("postgresql+asyncpg://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
  assert normalize_database_url(None) is None
