"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from cosmic_dispatch.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the dispatch service."""

  environment: str
  debug: bool
  pg_dsn: str | None
  log_max_bytes: int
  log_backup_count: int
  cron_secret: str | None
  app_base_url: str
  push_notifications_enabled: bool
  push_vapid_public_key: str | None
  push_vapid_private_key: str | None
  push_vapid_sub: str | None
  email_notifications_enabled: bool
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  quiet_hours_enabled: bool
  quiet_hours_start: int
  quiet_hours_end: int
  dispatch_concurrency: int
  delivery_timeout_seconds: float
  run_budget_seconds: float
  ledger_retention_days: int
  ledger_claim_ttl_seconds: float


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  stripped = raw.strip()
  return stripped or None


def _parse_hour(name: str, raw: str | None, default: int) -> int:
  value = int(raw) if raw and raw.strip() else default
  if not 0 <= value <= 23:
    raise ValueError(f"{name} must be an hour between 0 and 23.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("COSMIC_ENV", "development").lower()
  debug = _parse_bool(os.getenv("COSMIC_DEBUG"))

  log_max_bytes = int(os.getenv("COSMIC_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("COSMIC_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("COSMIC_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("COSMIC_LOG_BACKUP_COUNT must be zero or a positive integer.")

  push_notifications_enabled = _parse_bool(os.getenv("COSMIC_PUSH_NOTIFICATIONS_ENABLED"), default=True)
  push_vapid_public_key = _optional_str(os.getenv("COSMIC_PUSH_VAPID_PUBLIC_KEY"))
  push_vapid_private_key = _optional_str(os.getenv("COSMIC_PUSH_VAPID_PRIVATE_KEY"))
  push_vapid_sub = _optional_str(os.getenv("COSMIC_PUSH_VAPID_SUB"))

  email_notifications_enabled = _parse_bool(os.getenv("COSMIC_EMAIL_NOTIFICATIONS_ENABLED"))
  email_from_address = _optional_str(os.getenv("COSMIC_EMAIL_FROM_ADDRESS"))
  email_from_name = _optional_str(os.getenv("COSMIC_EMAIL_FROM_NAME"))
  mailersend_api_key = _optional_str(os.getenv("COSMIC_MAILERSEND_API_KEY"))
  mailersend_timeout_seconds = int(os.getenv("COSMIC_MAILERSEND_TIMEOUT_SECONDS", "10"))
  mailersend_base_url = (os.getenv("COSMIC_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip()

  # Push credentials are validated lazily by the dispatch factory so the HTTP app can still boot for health checks.
  if push_notifications_enabled and push_vapid_sub and not (push_vapid_sub.startswith("mailto:") or push_vapid_sub.startswith("https://")):
    raise ValueError("COSMIC_PUSH_VAPID_SUB must start with 'mailto:' or 'https://'.")

  if email_notifications_enabled and mailersend_timeout_seconds <= 0:
    raise ValueError("COSMIC_MAILERSEND_TIMEOUT_SECONDS must be a positive integer.")

  quiet_hours_enabled = _parse_bool(os.getenv("COSMIC_QUIET_HOURS_ENABLED"), default=True)
  quiet_hours_start = _parse_hour("COSMIC_QUIET_HOURS_START", os.getenv("COSMIC_QUIET_HOURS_START"), 22)
  quiet_hours_end = _parse_hour("COSMIC_QUIET_HOURS_END", os.getenv("COSMIC_QUIET_HOURS_END"), 8)

  dispatch_concurrency = int(os.getenv("COSMIC_DISPATCH_CONCURRENCY", "25"))
  if dispatch_concurrency <= 0:
    raise ValueError("COSMIC_DISPATCH_CONCURRENCY must be a positive integer.")

  delivery_timeout_seconds = float(os.getenv("COSMIC_DELIVERY_TIMEOUT_SECONDS", "10"))
  if delivery_timeout_seconds <= 0:
    raise ValueError("COSMIC_DELIVERY_TIMEOUT_SECONDS must be positive.")

  # Keep the fan-out budget under the platform function timeout (60s on most serverless hosts).
  run_budget_seconds = float(os.getenv("COSMIC_RUN_BUDGET_SECONDS", "50"))
  if run_budget_seconds < delivery_timeout_seconds:
    raise ValueError("COSMIC_RUN_BUDGET_SECONDS must be at least COSMIC_DELIVERY_TIMEOUT_SECONDS.")

  ledger_retention_days = int(os.getenv("COSMIC_LEDGER_RETENTION_DAYS", "1"))
  if ledger_retention_days < 1:
    raise ValueError("COSMIC_LEDGER_RETENTION_DAYS must be at least 1.")

  # A claim must outlive the run holding it, or a second trigger could take it over mid-send.
  ledger_claim_ttl_seconds = float(os.getenv("COSMIC_LEDGER_CLAIM_TTL_SECONDS", "120"))
  if ledger_claim_ttl_seconds <= run_budget_seconds:
    raise ValueError("COSMIC_LEDGER_CLAIM_TTL_SECONDS must exceed COSMIC_RUN_BUDGET_SECONDS.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=_optional_str(os.getenv("COSMIC_PG_DSN")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    cron_secret=_optional_str(os.getenv("COSMIC_CRON_SECRET")),
    app_base_url=(os.getenv("COSMIC_APP_BASE_URL") or "http://localhost:3000").strip().rstrip("/"),
    push_notifications_enabled=push_notifications_enabled,
    push_vapid_public_key=push_vapid_public_key,
    push_vapid_private_key=push_vapid_private_key,
    push_vapid_sub=push_vapid_sub,
    email_notifications_enabled=email_notifications_enabled,
    email_from_address=email_from_address,
    email_from_name=email_from_name,
    mailersend_api_key=mailersend_api_key,
    mailersend_timeout_seconds=mailersend_timeout_seconds,
    mailersend_base_url=mailersend_base_url,
    quiet_hours_enabled=quiet_hours_enabled,
    quiet_hours_start=quiet_hours_start,
    quiet_hours_end=quiet_hours_end,
    dispatch_concurrency=dispatch_concurrency,
    delivery_timeout_seconds=delivery_timeout_seconds,
    run_budget_seconds=run_budget_seconds,
    ledger_retention_days=ledger_retention_days,
    ledger_claim_ttl_seconds=ledger_claim_ttl_seconds,
  )
