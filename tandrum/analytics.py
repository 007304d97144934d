import logging
import pandas as pd
from tandrum.errors import NotFound
from tandrum.models import StreakUpdate
from tandrum.trees import load_active_buffs
from tandrum.utils import now_ms, to_local_date, iso_week_key, is_done_for_period

logger = logging.getLogger(__name__)


def advance_streak(duo, completion_date, streak_protection=False):
    """
    Streak after a mutual completion on `completion_date`.

    - next calendar day after the last counted day: +1
    - same day as the last counted day: unchanged
    - first ever mutual completion: 1
    - any longer gap: back to 1, unless streak protection is active, exactly
      one day was missed and the protection was not yet used that ISO week
    """
    day = to_local_date(completion_date)
    week = iso_week_key(day)
    last = to_local_date(duo.streak_date) if duo.streak_date else None

    if last is None or duo.streak <= 0:
        return StreakUpdate(1, day.isoformat(), duo.streak_protection_week)

    gap = (day - last).days
    if gap <= 0:
        # Already counted (or an older completion arriving late)
        return StreakUpdate(duo.streak, duo.streak_date, duo.streak_protection_week)
    if gap == 1:
        return StreakUpdate(duo.streak + 1, day.isoformat(), duo.streak_protection_week)
    if gap == 2 and streak_protection and duo.streak_protection_week != week:
        logger.info("Streak protection consumed for duo %s (%s)", duo.id, week)
        return StreakUpdate(duo.streak + 1, day.isoformat(), week, protection_used=True)
    return StreakUpdate(1, day.isoformat(), duo.streak_protection_week)


def current_streak(duo, today, streak_protection=False):
    """
    The streak as it should read on `today`: 0 once the last counted day can
    no longer be continued.
    """
    if duo.streak <= 0 or not duo.streak_date:
        return 0
    today = to_local_date(today)
    gap = (today - to_local_date(duo.streak_date)).days
    if gap <= 1:
        return duo.streak
    if gap == 2 and streak_protection and duo.streak_protection_week != iso_week_key(today):
        return duo.streak
    return 0


def habit_status_frame(habits, now):
    """
    One row per habit with each user's completion state: `*_done` for the
    habit's own period and `*_today` for the calendar day of `now`.
    """
    columns = ["habit_id", "title", "frequency", "user_a_done", "user_b_done",
               "user_a_today", "user_b_today"]
    rows = []
    for habit in habits:
        a = habit.last_checkin_at_user_a
        b = habit.last_checkin_at_user_b
        rows.append({
            "habit_id": habit.id,
            "title": habit.title,
            "frequency": habit.frequency,
            "user_a_done": is_done_for_period(habit.frequency, a, now),
            "user_b_done": is_done_for_period(habit.frequency, b, now),
            "user_a_today": is_done_for_period("daily", a, now),
            "user_b_today": is_done_for_period("daily", b, now),
        })
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows, columns=columns)


def growth_log_frame(tree):
    """The tree's growth log as a date-sorted DataFrame."""
    if not tree.growth_log:
        return pd.DataFrame(columns=["date", "change"])
    df = pd.DataFrame(tree.growth_log, columns=["date", "change"])
    df["date"] = pd.to_datetime(df["date"])
    return df.sort_values("date", kind="stable").reset_index(drop=True)

# --- PERSISTING OPERATIONS ---

def refresh_duo_streak(repo, duo_id, clock=now_ms):
    """Persist the lazily corrected streak; returns the current value."""
    with repo.transaction():
        duo = repo.get_duo(duo_id)
        if duo is None:
            raise NotFound("Duo", duo_id)
        tree = repo.get_tree(duo_id)
        protection = load_active_buffs(repo, tree).streak_protection if tree else False

        now = clock()
        streak = current_streak(duo, now, protection)
        if streak != duo.streak:
            logger.info("Streak for duo %s broken (was %s)", duo_id, duo.streak)
            repo.update_duo(duo_id, {"streak": streak, "last_updated": now})
        return streak


def reset_duo_streak(repo, duo_id, clock=now_ms):
    """Admin reset of a duo's streak."""
    with repo.transaction():
        if repo.get_duo(duo_id) is None:
            raise NotFound("Duo", duo_id)
        repo.update_duo(duo_id, {"streak": 0, "streak_date": None, "last_updated": clock()})
    logger.info("Streak reset for duo %s", duo_id)
    return {"success": True, "message": "Streak reset successfully"}


def get_duo_streak_info(repo, duo_id, clock=now_ms):
    """Current streak plus who completed at least one habit today."""
    now = clock()
    streak = refresh_duo_streak(repo, duo_id, clock=lambda: now)
    duo = repo.get_duo(duo_id)
    status = habit_status_frame(repo.list_habits_for_duo(duo_id), now)

    both_today = bool((status["user_a_today"] & status["user_b_today"]).any()) if len(status) else False
    return {
        "current_streak": streak,
        "streak_date": duo.streak_date,
        "both_completed_today": both_today,
        "user_a_completed_today": bool(status["user_a_today"].any()) if len(status) else False,
        "user_b_completed_today": bool(status["user_b_today"].any()) if len(status) else False,
        "total_habits": len(status),
        "today": to_local_date(now).isoformat(),
    }
