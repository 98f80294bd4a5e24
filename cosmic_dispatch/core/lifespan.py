import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from cosmic_dispatch.core.logging import initialize_logging
from cosmic_dispatch.notifications.contracts import NotificationConfigurationError
from cosmic_dispatch.notifications.factory import create_dispatch_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and build the dispatch runtime once for the process."""
  from cosmic_dispatch.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("cosmic_dispatch.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  try:
    runtime = create_dispatch_runtime(settings)
  except NotificationConfigurationError:
    # A trigger against a half-configured service would drop every notification; refuse to start.
    logger.error("Dispatch configuration is incomplete; refusing to start the service.", exc_info=True)
    raise

  app.state.dispatch_runtime = runtime
  logger.info("Dispatch runtime ready database=%s push_enabled=%s email_enabled=%s", _redact_dsn(settings.pg_dsn), settings.push_notifications_enabled, settings.email_notifications_enabled)

  try:
    yield
  finally:
    await runtime.aclose()
    logger.info("Dispatch runtime closed.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  database = parsed.path.lstrip("/")
  return f"{parsed.scheme}://{host}{port}/{database}"
