"""Rollover clock tests: 20:00 Brasília (23:00 UTC) boundaries."""

from datetime import date, datetime, timezone

import pytest

from uticoins.rewards.clock import RolloverClock, ensure_utc


class TestBusinessDate:
    """The business date flips at the rollover, not at midnight."""

    def test_one_second_before_rollover_is_previous_day(self):
        clock = RolloverClock()
        now = datetime(2026, 3, 10, 22, 59, 59, tzinfo=timezone.utc)  # 19:59:59 BRT
        assert clock.business_date(now) == date(2026, 3, 9)

    def test_rollover_instant_is_new_day(self):
        clock = RolloverClock()
        now = datetime(2026, 3, 10, 23, 0, 0, tzinfo=timezone.utc)  # 20:00 BRT
        assert clock.business_date(now) == date(2026, 3, 10)

    def test_after_utc_midnight_still_same_business_day(self):
        """01:30 UTC on the 11th is 22:30 BRT on the 10th."""
        clock = RolloverClock()
        now = datetime(2026, 3, 11, 1, 30, tzinfo=timezone.utc)
        assert clock.business_date(now) == date(2026, 3, 10)

    def test_naive_datetimes_are_utc(self):
        clock = RolloverClock()
        assert clock.business_date(datetime(2026, 3, 10, 23, 0, 0)) == date(2026, 3, 10)


class TestRolloverInstants:
    def test_rollover_at_is_23_utc(self):
        clock = RolloverClock()
        assert clock.rollover_at(date(2026, 3, 10)) == datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)

    def test_next_rollover(self):
        clock = RolloverClock()
        now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert clock.next_rollover(now) == datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)

    def test_next_rollover_at_boundary_is_a_day_later(self):
        clock = RolloverClock()
        now = datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)
        assert clock.next_rollover(now) == datetime(2026, 3, 11, 23, 0, tzinfo=timezone.utc)

    def test_seconds_until_next_rollover(self):
        clock = RolloverClock()
        now = datetime(2026, 3, 10, 22, 0, tzinfo=timezone.utc)
        assert clock.seconds_until_next_rollover(now) == 3600

    def test_utc_rollover_hour(self):
        assert RolloverClock().utc_rollover_hour(date(2026, 7, 1)) == 23

    def test_other_zone_and_hour(self):
        clock = RolloverClock(tz_name="UTC", rollover_hour=0)
        assert clock.business_date(datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc)) == date(2026, 3, 10)


class TestValidation:
    def test_hour_out_of_range(self):
        with pytest.raises(ValueError):
            RolloverClock(rollover_hour=24)


def test_ensure_utc_converts_aware():
    from zoneinfo import ZoneInfo

    local = datetime(2026, 3, 10, 20, 0, tzinfo=ZoneInfo("America/Sao_Paulo"))
    assert ensure_utc(local) == datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)
    assert ensure_utc(local).tzinfo is timezone.utc
