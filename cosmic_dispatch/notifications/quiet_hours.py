"""Global UTC quiet-hours window."""

from __future__ import annotations

import datetime
from dataclasses import dataclass


@dataclass(frozen=True)
class QuietHours:
  """Hours during which scheduled sends are suppressed.

  ``start_hour`` is inclusive and ``end_hour`` exclusive. A window whose start is
  later than its end wraps past midnight (22 -> 8 covers 22:00-07:59). Equal
  bounds disable the window.
  """

  start_hour: int = 22
  end_hour: int = 8
  enabled: bool = True

  def __post_init__(self) -> None:
    for value in (self.start_hour, self.end_hour):
      if not 0 <= value <= 23:
        raise ValueError("Quiet hour bounds must be between 0 and 23.")


DEFAULT_QUIET_HOURS = QuietHours()


def is_quiet_hour(hour: int, window: QuietHours = DEFAULT_QUIET_HOURS) -> bool:
  """Return True when the UTC hour falls inside the quiet window."""
  if not window.enabled or window.start_hour == window.end_hour:
    return False
  if window.start_hour > window.end_hour:
    return hour >= window.start_hour or hour < window.end_hour
  return window.start_hour <= hour < window.end_hour


def is_quiet_time(now: datetime.datetime, window: QuietHours = DEFAULT_QUIET_HOURS) -> bool:
  """Evaluate the window against an aware datetime converted to UTC."""
  if now.tzinfo is None:
    raise ValueError("Quiet-hours checks require a timezone-aware datetime.")
  return is_quiet_hour(now.astimezone(datetime.UTC).hour, window)
