import math
import logging
from dataclasses import replace
from tandrum.models import STAGES, ActiveBuffs, Rewards

logger = logging.getLogger(__name__)

# --- CONFIGURATION ---
BASE_XP = {"daily": 50, "weekly": 200}

# Chance that a mutual completion drops an item at all
DROP_CHANCE = {"daily": 0.30, "weekly": 1.0}

# Relative rarity weights per frequency, normalized by rarity_probabilities()
RARITY_WEIGHTS = {
    "daily": {"common": 18, "uncommon": 7, "rare": 3, "epic": 1.5, "legendary": 0.5},
    "weekly": {"common": 50, "uncommon": 25, "rare": 15, "epic": 8, "legendary": 3},
}

# Level at which each stage is reached
STAGE_LEVELS = [
    ("tree-1", 1),
    ("tree-1.5", 4),
    ("tree-2", 8),
    ("tree-3", 16),
    ("tree-4", 24),
]

DECORATION_CAPACITY = {
    "tree-1": 0,
    "tree-1.5": 0,
    "tree-2": 2,
    "tree-3": 4,
    "tree-4": 6,
}

# --- LEVELS ---

def xp_for_next_level(level):
    """XP needed to go from `level` to `level + 1` (not cumulative)."""
    return math.floor(100 * (1.15 ** (level - 1)) + level * 10)


def total_xp_for_level(level):
    """Cumulative XP at which `level` is reached."""
    return sum(xp_for_next_level(i) for i in range(1, max(level, 1)))


def get_level_info(total_xp):
    """Return level and progress for a trust score."""
    total_xp = max(0, int(total_xp or 0))
    level = 1
    used = 0
    while used + xp_for_next_level(level) <= total_xp:
        used += xp_for_next_level(level)
        level += 1

    needed = xp_for_next_level(level)
    into = total_xp - used
    return {
        "level": level,
        "xp_into_level": into,
        "xp_needed": needed,
        "xp_to_next_level": needed - into,
        "progress_percent": into / needed,
        "total_xp_for_current_level": used,
        "total_xp_for_next_level": used + needed,
    }


def get_tree_stage_for_level(level):
    stage = STAGES[0]
    for name, min_level in STAGE_LEVELS:
        if level >= min_level:
            stage = name
    return stage


def stage_for_trust_score(trust_score):
    return get_tree_stage_for_level(get_level_info(trust_score)["level"])


def stage_index(stage):
    return STAGES.index(stage)


def later_stage(a, b):
    """The more advanced of two stages."""
    return a if stage_index(a) >= stage_index(b) else b


def max_decorations_for_stage(stage):
    return DECORATION_CAPACITY.get(stage, 0)

# --- BUFFS ---

def aggregate_buffs(decorations, items_by_id):
    """
    Fold the buffs of every equipped, active item into one ActiveBuffs.
    Multipliers multiply (2x * 1.5x = 3x), bonuses add up. The product is
    kept exact; round_for_display() rounds it for callers that show it.
    """
    result = ActiveBuffs()
    multiplier = 1.0
    for decoration in decorations:
        item = items_by_id.get(decoration.item_id)
        if item is None or not item.is_active:
            continue
        buffs = item.buffs
        if buffs.xp_multiplier:
            multiplier *= buffs.xp_multiplier
        if buffs.focus_bonus:
            result.focus_bonus += buffs.focus_bonus
        if buffs.daily_xp_bonus:
            result.daily_xp_bonus += buffs.daily_xp_bonus
        if buffs.streak_protection:
            result.streak_protection = True
        result.active_items.append({
            "item_id": item.item_id,
            "name": item.name,
            "buffs": buffs.to_dict(),
            "equipped_at": decoration.equipped_at,
        })
    result.xp_multiplier = multiplier
    return result


def round_for_display(buffs):
    return replace(buffs, xp_multiplier=round(buffs.xp_multiplier, 2))

# --- REWARDS ---

def calculate_xp(habit, buffs):
    """XP for one mutual completion of `habit` under the given active buffs."""
    base = BASE_XP.get(habit.frequency, BASE_XP["daily"]) * max(1, habit.difficulty or 1)
    return int(base * buffs.xp_multiplier + 0.5) + buffs.daily_xp_bonus


def rarity_probabilities(frequency="daily"):
    weights = RARITY_WEIGHTS.get(frequency, RARITY_WEIGHTS["daily"])
    total = float(sum(weights.values()))
    return {rarity: weights[rarity] / total for rarity in weights}


def weighted_choice(weights, rng):
    """
    Pick a key of `weights` with probability proportional to its value,
    mapping one uniform draw onto the cumulative ranges.
    """
    total = float(sum(weights.values()))
    if total <= 0:
        raise ValueError("weights must sum to a positive value")
    draw = rng.random() * total
    cumulative = 0.0
    last = None
    for key, weight in weights.items():
        cumulative += weight
        last = key
        if draw < cumulative:
            return key
    return last  # float rounding at the very top of the range


def roll_rarity(rng, frequency="daily"):
    return weighted_choice(RARITY_WEIGHTS.get(frequency, RARITY_WEIGHTS["daily"]), rng)


def roll_item(catalog, frequency, rng):
    """Roll for a dropped item; None when nothing drops or the tier is empty."""
    if rng.random() >= DROP_CHANCE.get(frequency, DROP_CHANCE["daily"]):
        return None
    rarity = roll_rarity(rng, frequency)
    pool = [item for item in catalog if item.is_active and item.rarity == rarity]
    if not pool:
        logger.debug("No active %s items to drop", rarity)
        return None
    return rng.choice(pool)


def roll_rewards(habit, buffs, catalog, rng):
    """XP award plus an independent item roll for a mutual completion."""
    return Rewards(xp=calculate_xp(habit, buffs), item=roll_item(catalog, habit.frequency, rng))


def apply_rewards(duo, tree, rewards, today, habit_title=None):
    """Credit rewards to the duo and its tree in place."""
    duo.trust_score = max(0, duo.trust_score) + rewards.xp
    label = f" for {habit_title}" if habit_title else ""
    tree.log(today, f"Earned {rewards.xp} XP together{label} ✨")

    item = rewards.item
    if item is not None:
        tree.inventory[item.item_id] = tree.inventory.get(item.item_id, 0) + 1
        if item.category == "leaf":
            tree.leaves += 1
        elif item.category == "fruit":
            tree.fruits += 1
        tree.log(today, f"Gained 1x {item.name} ({item.rarity}) 🎁")


