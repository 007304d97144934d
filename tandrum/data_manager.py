import random
import logging
from tandrum.analytics import advance_streak, current_streak
from tandrum.errors import NotFound, ValidationError
from tandrum.gamification import apply_rewards, roll_rewards
from tandrum.models import FREQUENCIES, KEY_SKILLS, CheckInResult, Duo, Habit, Tree
from tandrum.trees import load_active_buffs, sync_tree_stage
from tandrum.utils import now_ms, to_local_date, is_done_for_period

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 50
BLOCKED_WORDS = ("damn", "shit", "fuck")

# Every new duo starts with these
DEFAULT_HABITS = [
    {"title": "Daily Check-In", "key_skill": "clarity", "difficulty": 1, "frequency": "daily"},
    {"title": "Encourage Your Partner", "key_skill": "empathy", "difficulty": 1, "frequency": "daily"},
]

# --- VALIDATION ---

def validate_habit_title(title, existing_habits=(), exclude_id=None):
    """Return the trimmed title, or raise ValidationError."""
    trimmed = (title or "").strip()
    if not trimmed:
        raise ValidationError("Habit title is required")
    if len(trimmed) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Habit title must be at least {TITLE_MIN_LENGTH} characters long")
    if len(trimmed) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Habit title must be at most {TITLE_MAX_LENGTH} characters long")

    lowered = trimmed.lower()
    if any(word in lowered for word in BLOCKED_WORDS):
        raise ValidationError("Please use appropriate language for habit titles")

    for habit in existing_habits:
        if habit.id != exclude_id and habit.title.lower() == lowered:
            raise ValidationError("A habit with this title already exists")
    return trimmed


def _validate_frequency(frequency):
    if frequency not in FREQUENCIES:
        raise ValidationError(f"Invalid frequency: {frequency!r} (expected daily or weekly)")


def _validate_key_skill(key_skill):
    if key_skill not in KEY_SKILLS:
        raise ValidationError(f"Invalid key skill: {key_skill!r}")


def _validate_difficulty(difficulty):
    if isinstance(difficulty, bool) or not isinstance(difficulty, int) or not 1 <= difficulty <= 5:
        raise ValidationError("Difficulty must be between 1 and 5")

# --- DUOS ---

def create_duo(repo, user1, user2, clock=now_ms):
    """
    Pair two users. Creates the duo, its tree and the default habits in one
    transaction; an existing pairing (in either order) is returned as is.
    """
    user1 = (user1 or "").strip()
    user2 = (user2 or "").strip()
    if not user1 or not user2:
        raise ValidationError("A duo needs two users")
    if user1 == user2:
        raise ValidationError("A duo needs two distinct users")

    now = clock()
    with repo.transaction():
        existing = repo.find_duo_by_users(user1, user2)
        if existing is not None:
            return existing.id

        duo_id = repo.insert_duo(Duo(id="", user1=user1, user2=user2, created_at=now, last_updated=now))
        repo.insert_tree(Tree(id="", duo_id=duo_id))
        for data in DEFAULT_HABITS:
            repo.insert_habit(Habit(id="", duo_id=duo_id, created_at=now, **data))

    logger.info("Created duo %s for %s and %s", duo_id, user1, user2)
    return duo_id

# --- HABITS ---

def list_habits(repo, duo_id):
    return repo.list_habits_for_duo(duo_id)


def create_habit(repo, duo_id, title, frequency="daily", key_skill="discipline",
                 difficulty=1, clock=now_ms):
    """Add a habit to a duo."""
    _validate_frequency(frequency)
    _validate_key_skill(key_skill)
    _validate_difficulty(difficulty)

    with repo.transaction():
        if repo.get_duo(duo_id) is None:
            raise NotFound("Duo", duo_id)
        trimmed = validate_habit_title(title, repo.list_habits_for_duo(duo_id))
        habit = Habit(
            id="",
            duo_id=duo_id,
            title=trimmed,
            frequency=frequency,
            key_skill=key_skill,
            difficulty=difficulty,
            created_at=clock(),
        )
        habit_id = repo.insert_habit(habit)

    logger.info("Created %s habit %r for duo %s", frequency, trimmed, duo_id)
    return habit_id


def update_habit(repo, habit_id, title=None, frequency=None, key_skill=None, difficulty=None):
    """
    Edit a habit. Changing the frequency clears both users' progress for the
    current period.
    """
    if frequency is not None:
        _validate_frequency(frequency)
    if key_skill is not None:
        _validate_key_skill(key_skill)
    if difficulty is not None:
        _validate_difficulty(difficulty)

    with repo.transaction():
        habit = repo.get_habit(habit_id)
        if habit is None:
            raise NotFound("Habit", habit_id)

        updated_data = {}
        if title is not None:
            updated_data["title"] = validate_habit_title(
                title, repo.list_habits_for_duo(habit.duo_id), exclude_id=habit.id
            )
        if frequency is not None and frequency != habit.frequency:
            updated_data.update({
                "frequency": frequency,
                "last_checkin_at_user_a": None,
                "last_checkin_at_user_b": None,
                "last_checkin_at": None,
            })
        if key_skill is not None:
            updated_data["key_skill"] = key_skill
        if difficulty is not None:
            updated_data["difficulty"] = difficulty

        repo.update_habit(habit_id, updated_data)

    return {"success": True, "updated": sorted(updated_data)}


def delete_habit(repo, habit_id):
    with repo.transaction():
        if repo.get_habit(habit_id) is None:
            raise NotFound("Habit", habit_id)
        repo.delete_habit(habit_id)
    logger.info("Deleted habit %s", habit_id)
    return {"success": True}


def habit_progress(habit, user_is_a, now):
    """Who has completed `habit` in the period containing `now`."""
    mine = habit.last_checkin_for(user_is_a)
    theirs = habit.last_checkin_for(not user_is_a)
    user_done = is_done_for_period(habit.frequency, mine, now)
    partner_done = is_done_for_period(habit.frequency, theirs, now)
    return {
        "user_completed": user_done,
        "partner_completed": partner_done,
        "both_completed": user_done and partner_done,
        "last_user_checkin": mine,
        "last_partner_checkin": theirs,
    }

# --- CHECK-IN ---

def check_in(repo, habit_id, user_is_a, clock=now_ms, rng=None):
    """
    Record a check-in by slot A (`user_is_a=True`) or slot B.

    A repeat check-in in the same period is a no-op (`checked_in=False`).
    When the partner is already done for the period, the duo earns XP and
    maybe an item, the streak advances and the tree stage is re-synced.
    Everything happens in one transaction.
    """
    if not isinstance(user_is_a, bool):
        raise ValidationError("user_is_a must be a boolean")
    rng = rng or random.Random()

    with repo.transaction():
        habit = repo.get_habit(habit_id)
        if habit is None:
            raise NotFound("Habit", habit_id)
        duo = repo.get_duo(habit.duo_id)
        if duo is None:
            raise NotFound("Duo", habit.duo_id)

        now = clock()
        partner_done = is_done_for_period(habit.frequency, habit.last_checkin_for(not user_is_a), now)

        if is_done_for_period(habit.frequency, habit.last_checkin_for(user_is_a), now):
            logger.debug("Habit %s already checked in by %s this period",
                         habit_id, "A" if user_is_a else "B")
            return CheckInResult(checked_in=False, both_completed=partner_done)

        tree = repo.get_tree(duo.id)
        if partner_done and tree is None:
            raise NotFound("Tree", duo.id)

        repo.update_habit(habit_id, {Habit.checkin_field(user_is_a): now, "last_checkin_at": now})
        if not partner_done:
            protection = load_active_buffs(repo, tree).streak_protection if tree else False
            streak = current_streak(duo, now, protection)
            if streak != duo.streak:
                logger.info("Streak for duo %s broken (was %s)", duo.id, duo.streak)
                repo.update_duo(duo.id, {"streak": streak, "last_updated": now})
            logger.info("Habit %s checked in by %s", habit_id, "A" if user_is_a else "B")
            return CheckInResult(checked_in=True, both_completed=False)

        today = to_local_date(now)
        buffs = load_active_buffs(repo, tree)
        rewards = roll_rewards(habit, buffs, repo.list_active_tree_items(), rng)
        apply_rewards(duo, tree, rewards, today, habit.title)

        streak = advance_streak(duo, today, buffs.streak_protection)
        duo.streak = streak.streak
        duo.streak_date = streak.streak_date
        duo.streak_protection_week = streak.protection_week
        sync_tree_stage(duo, tree, today)

        repo.update_duo(duo.id, {
            "trust_score": duo.trust_score,
            "streak": duo.streak,
            "streak_date": duo.streak_date,
            "streak_protection_week": duo.streak_protection_week,
            "tree_state": duo.tree_state,
            "last_updated": now,
        })
        repo.update_tree(duo.id, {
            "stage": tree.stage,
            "leaves": tree.leaves,
            "fruits": tree.fruits,
            "inventory": tree.inventory,
            "growth_log": tree.growth_log,
        })

    logger.info("Habit %s completed by both: +%d XP, item=%s, streak=%d",
                habit_id, rewards.xp, rewards.item.item_id if rewards.item else None, duo.streak)
    return CheckInResult(checked_in=True, both_completed=True, rewards=rewards)
