from __future__ import annotations

import datetime

import pytest

from cosmic_dispatch.notifications.quiet_hours import QuietHours, is_quiet_hour, is_quiet_time


@pytest.mark.parametrize(("hour", "quiet"), [(21, False), (22, True), (23, True), (0, True), (7, True), (8, False), (12, False)])
def test_default_window_wraps_past_midnight(hour, quiet):
  assert is_quiet_hour(hour) is quiet


def test_same_day_window():
  window = QuietHours(start_hour=1, end_hour=5)

  assert is_quiet_hour(0, window) is False
  assert is_quiet_hour(1, window) is True
  assert is_quiet_hour(4, window) is True
  assert is_quiet_hour(5, window) is False


def test_equal_bounds_and_disabled_window_never_suppress():
  assert not any(is_quiet_hour(hour, QuietHours(start_hour=3, end_hour=3)) for hour in range(24))
  assert not any(is_quiet_hour(hour, QuietHours(enabled=False)) for hour in range(24))


def test_quiet_time_converts_to_utc():
  # 18:30 in New York during daylight time is 22:30 UTC.
  eastern = datetime.timezone(datetime.timedelta(hours=-4))

  assert is_quiet_time(datetime.datetime(2026, 6, 1, 18, 30, tzinfo=eastern)) is True
  assert is_quiet_time(datetime.datetime(2026, 6, 1, 12, 0, tzinfo=datetime.UTC)) is False


def test_naive_datetime_is_rejected():
  with pytest.raises(ValueError):
    is_quiet_time(datetime.datetime(2026, 6, 1, 23, 0))


def test_bounds_are_validated():
  with pytest.raises(ValueError):
    QuietHours(start_hour=24)
