"""Load ``COSMIC_*`` settings from a dotenv file.

Cron hosts often share one ``.env`` between several services, so only keys
carrying the dispatch prefix are imported. Real environment variables always
win unless ``override`` is set.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_PREFIX = "COSMIC_"
ENV_FILE_VARIABLE = "COSMIC_ENV_FILE"


def default_env_path() -> Path:
  """Return ``$COSMIC_ENV_FILE`` when set, else ``.env`` at the repository root."""
  explicit = os.getenv(ENV_FILE_VARIABLE, "").strip()
  if explicit:
    return Path(explicit).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _parse_value(raw: str) -> str:
  value = raw.strip()
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  # Unquoted values may carry a trailing " # comment".
  return value.split(" #", 1)[0].rstrip()


def parse_env_lines(lines: list[str], *, prefix: str = ENV_PREFIX) -> dict[str, str]:
  """Return prefixed ``KEY=value`` pairs, skipping comments and malformed lines."""
  values: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    if line.startswith("export "):
      line = line[len("export ") :].lstrip()
    key, separator, raw_value = line.partition("=")
    key = key.strip()
    if not separator or not key.startswith(prefix):
      continue
    values[key] = _parse_value(raw_value)
  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export dispatch settings from ``path`` and return the keys that were set."""
  if not path.is_file():
    return []

  loaded: list[str] = []
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    loaded.append(key)
  return loaded
