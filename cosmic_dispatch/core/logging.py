"""Process-wide logging for the HTTP service and the cron CLI.

Records go to stdout and to a rotating file under ``logs/``. Every handler
carries a filter that masks configured credentials, so a provider error that
echoes a key or a DSN never lands in a log line.
"""

import logging
import logging.handlers
import sys
import time
import traceback
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from urllib.parse import urlsplit

from cosmic_dispatch.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
REDACTED = "[redacted]"
# Third-party loggers that would otherwise print through their own handlers.
_ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
# Chatty at INFO; delivery outcomes are already logged by the dispatcher.
_QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "pywebpush")

_LOG_FILE_PATH: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Formatter that keeps the first and last frames of a traceback."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) > 6:
      return "".join(lines[:1] + ["    ...\n"] + lines[-5:])
    return "".join(lines)


class SecretRedactingFilter(logging.Filter):
  """Replace known secret values in the rendered message with a placeholder."""

  def __init__(self, secrets: Iterable[str | None]) -> None:
    super().__init__()
    # Longest first so a secret containing another is masked whole.
    self._secrets = sorted({secret for secret in secrets if secret and len(secret) >= 4}, key=len, reverse=True)

  def filter(self, record: logging.LogRecord) -> bool:
    if not self._secrets:
      return True
    message = record.getMessage()
    redacted = message
    for secret in self._secrets:
      redacted = redacted.replace(secret, REDACTED)
    if redacted != message:
      record.msg = redacted
      record.args = None
    return True


def secrets_from_settings(settings: Settings) -> list[str]:
  """Collect the credential values that must never appear in logs."""
  secrets = [settings.push_vapid_private_key, settings.mailersend_api_key, settings.cron_secret]
  if settings.pg_dsn:
    password = urlsplit(settings.pg_dsn).password
    if password:
      secrets.append(password)
  return [secret for secret in secrets if secret]


def _rotated_name(default_name: str) -> str:
  # cosmic_dispatch_x.log.1 -> cosmic_dispatch_x.log-1
  base, _, suffix = default_name.rpartition(".")
  return f"{base}-{suffix}" if suffix.isdigit() else default_name


def _build_handlers(settings: Settings) -> tuple[list[logging.Handler], Path]:
  log_dir = Path(__file__).resolve().parents[2] / "logs"
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"cosmic_dispatch_{time.strftime('%Y%m%d_%H%M%S')}.log"
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log file under {log_dir}: {exc}") from exc

  redactor = SecretRedactingFilter(secrets_from_settings(settings))

  stream = logging.StreamHandler(sys.stdout)
  stream.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _rotated_name
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  handlers: list[logging.Handler] = [stream, file_handler]
  for handler in handlers:
    handler.addFilter(redactor)
  return handlers, log_path


def setup_logging(settings: Settings) -> Path:
  """Route the root logger and the server loggers through redacting handlers."""
  handlers, log_path = _build_handlers(settings)
  for logger_name in _ROUTED_LOGGERS:
    log = logging.getLogger(logger_name)
    log.handlers = list(handlers)
    log.propagate = False

  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)
  for logger_name in _QUIET_LOGGERS:
    logging.getLogger(logger_name).setLevel(logging.WARNING)
  return log_path


def initialize_logging(settings: Settings) -> Path:
  """Initialize logging once per process and return the log file path."""
  global _LOG_FILE_PATH
  if _LOG_FILE_PATH is not None:
    return _LOG_FILE_PATH
  _LOG_FILE_PATH = setup_logging(settings)
  logging.getLogger(__name__).info("Logging initialized environment=%s debug=%s file=%s", settings.environment, settings.debug, _LOG_FILE_PATH)
  return _LOG_FILE_PATH
