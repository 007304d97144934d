"""Tests for the completion-period predicates in tandrum.utils."""

from datetime import date

from helpers import ms
from tandrum.utils import (
    is_done_for_period,
    is_same_day,
    is_same_week,
    iso_week_key,
    to_local_date,
)


class TestLocalDate:
    """Epoch millis and other inputs normalize to local calendar dates."""

    def test_epoch_millis_in_utc(self) -> None:
        assert to_local_date(ms(2026, 1, 5, 23, 59)) == date(2026, 1, 5)

    def test_timezone_shifts_the_day(self) -> None:
        """23:30 UTC is already the next morning in Tokyo."""
        assert to_local_date(ms(2026, 1, 5, 23, 30), tz="Asia/Tokyo") == date(2026, 1, 6)

    def test_dates_and_strings_pass_through(self) -> None:
        assert to_local_date(date(2026, 3, 1)) == date(2026, 3, 1)
        assert to_local_date("2026-03-01") == date(2026, 3, 1)


class TestSamePeriod:
    """Same-day and same-ISO-week predicates."""

    def test_same_day(self) -> None:
        assert is_same_day(ms(2026, 1, 5, 0, 1), ms(2026, 1, 5, 23, 59))
        assert not is_same_day(ms(2026, 1, 5, 23, 59), ms(2026, 1, 6, 0, 1))

    def test_iso_week_starts_on_monday(self) -> None:
        """Sunday 2026-01-04 and Monday 2026-01-05 fall in different ISO weeks."""
        assert not is_same_week(ms(2026, 1, 4), ms(2026, 1, 5))
        assert is_same_week(ms(2026, 1, 5), ms(2026, 1, 11, 22))

    def test_week_key(self) -> None:
        assert iso_week_key(ms(2026, 1, 5)) == "2026-W02"
        assert iso_week_key(date(2026, 1, 1)) == "2026-W01"


class TestDoneForPeriod:
    """is_done_for_period() per frequency."""

    def test_missing_timestamp_is_never_done(self) -> None:
        now = ms(2026, 1, 5)
        assert is_done_for_period("daily", None, now) is False
        assert is_done_for_period("weekly", 0, now) is False

    def test_daily(self) -> None:
        assert is_done_for_period("daily", ms(2026, 1, 5, 8), ms(2026, 1, 5, 20))
        assert not is_done_for_period("daily", ms(2026, 1, 4, 20), ms(2026, 1, 5, 8))

    def test_weekly(self) -> None:
        assert is_done_for_period("weekly", ms(2026, 1, 5), ms(2026, 1, 9))
        assert not is_done_for_period("weekly", ms(2026, 1, 9), ms(2026, 1, 12))
