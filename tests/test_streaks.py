"""Tests for the streak calculator in tandrum.analytics."""

from __future__ import annotations

from datetime import date

import pytest

from helpers import ms
from tandrum.analytics import (
    advance_streak,
    current_streak,
    growth_log_frame,
    habit_status_frame,
    refresh_duo_streak,
    reset_duo_streak,
)
from tandrum.errors import NotFound
from tandrum.models import Duo, Habit, Tree


def make_duo(streak: int = 0, streak_date: str | None = None,
             protection_week: str | None = None) -> Duo:
    return Duo(id="d1", user1="alice", user2="bob", streak=streak,
               streak_date=streak_date, streak_protection_week=protection_week)


class TestAdvanceStreak:
    """advance_streak() transitions."""

    def test_first_mutual_completion_starts_at_one(self) -> None:
        update = advance_streak(make_duo(), date(2026, 1, 5))
        assert update.streak == 1
        assert update.streak_date == "2026-01-05"

    def test_next_day_increments(self) -> None:
        update = advance_streak(make_duo(4, "2026-01-05"), date(2026, 1, 6))
        assert update.streak == 5
        assert update.streak_date == "2026-01-06"

    def test_same_day_is_unchanged(self) -> None:
        update = advance_streak(make_duo(4, "2026-01-05"), date(2026, 1, 5))
        assert update.streak == 4
        assert update.streak_date == "2026-01-05"

    @pytest.mark.parametrize("gap_days", [2, 3, 10])
    def test_gap_resets_to_one(self, gap_days: int) -> None:
        update = advance_streak(make_duo(4, "2026-01-05"), date(2026, 1, 5 + gap_days))
        assert update.streak == 1
        assert update.protection_used is False

    def test_zero_streak_with_old_date_starts_fresh(self) -> None:
        update = advance_streak(make_duo(0, "2026-01-05"), date(2026, 1, 6))
        assert update.streak == 1


class TestStreakProtection:
    """One missed day per ISO week is forgiven while protection is equipped."""

    def test_single_missed_day_is_forgiven(self) -> None:
        update = advance_streak(make_duo(4, "2026-01-06"), date(2026, 1, 8), streak_protection=True)
        assert update.streak == 5
        assert update.protection_used is True
        assert update.protection_week == "2026-W02"

    def test_protection_only_once_per_week(self) -> None:
        duo = make_duo(5, "2026-01-08", protection_week="2026-W02")
        update = advance_streak(duo, date(2026, 1, 10), streak_protection=True)
        assert update.streak == 1
        assert update.protection_used is False

    def test_protection_renews_next_week(self) -> None:
        duo = make_duo(5, "2026-01-10", protection_week="2026-W02")
        update = advance_streak(duo, date(2026, 1, 12), streak_protection=True)
        assert update.streak == 6
        assert update.protection_week == "2026-W03"

    def test_two_missed_days_still_reset(self) -> None:
        update = advance_streak(make_duo(4, "2026-01-05"), date(2026, 1, 8), streak_protection=True)
        assert update.streak == 1


class TestCurrentStreak:
    """current_streak() lazy correction."""

    def test_yesterday_keeps_streak_alive(self) -> None:
        assert current_streak(make_duo(3, "2026-01-05"), date(2026, 1, 6)) == 3

    def test_stale_streak_reads_zero(self) -> None:
        assert current_streak(make_duo(3, "2026-01-05"), date(2026, 1, 7)) == 0

    def test_protection_keeps_one_missed_day_recoverable(self) -> None:
        assert current_streak(make_duo(3, "2026-01-05"), date(2026, 1, 7), streak_protection=True) == 3


class TestGrowthLogFrame:
    """growth_log_frame() DataFrame view."""

    def test_empty_log(self) -> None:
        df = growth_log_frame(Tree(id="t1", duo_id="d1"))
        assert df.empty
        assert list(df.columns) == ["date", "change"]

    def test_sorted_by_date(self) -> None:
        tree = Tree(id="t1", duo_id="d1")
        tree.log("2026-01-07", "later")
        tree.log("2026-01-05", "earlier")
        df = growth_log_frame(tree)
        assert list(df["change"]) == ["earlier", "later"]


class TestHabitStatusFrame:
    """habit_status_frame() per-habit completion view."""

    def test_empty(self) -> None:
        df = habit_status_frame([], ms(2026, 1, 7))
        assert df.empty
        assert "user_a_today" in df.columns

    def test_weekly_done_but_not_today(self) -> None:
        habit = Habit(id="h1", duo_id="d1", title="Swim", frequency="weekly",
                      last_checkin_at_user_a=ms(2026, 1, 5), last_checkin_at_user_b=ms(2026, 1, 7))
        row = habit_status_frame([habit], ms(2026, 1, 7, 18)).iloc[0]
        assert bool(row["user_a_done"]) and bool(row["user_b_done"])
        assert not bool(row["user_a_today"])
        assert bool(row["user_b_today"])


class TestPersistedStreak:
    """refresh_duo_streak() and reset_duo_streak() against a repository."""

    def test_refresh_writes_broken_streak(self, seeded_repo, duo_id, clock) -> None:
        seeded_repo.update_duo(duo_id, {"streak": 4, "streak_date": "2026-01-02"})
        assert refresh_duo_streak(seeded_repo, duo_id, clock=clock) == 0
        assert seeded_repo.get_duo(duo_id).streak == 0

    def test_refresh_keeps_live_streak(self, seeded_repo, duo_id, clock) -> None:
        seeded_repo.update_duo(duo_id, {"streak": 4, "streak_date": "2026-01-04"})
        assert refresh_duo_streak(seeded_repo, duo_id, clock=clock) == 4

    def test_reset(self, seeded_repo, duo_id, clock) -> None:
        seeded_repo.update_duo(duo_id, {"streak": 4, "streak_date": "2026-01-04"})
        assert reset_duo_streak(seeded_repo, duo_id, clock=clock)["success"] is True
        duo = seeded_repo.get_duo(duo_id)
        assert (duo.streak, duo.streak_date) == (0, None)

    def test_unknown_duo(self, seeded_repo, clock) -> None:
        with pytest.raises(NotFound):
            refresh_duo_streak(seeded_repo, "nope", clock=clock)
