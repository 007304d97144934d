import logging
from tandrum.errors import NotFound, ValidationError
from tandrum.models import CATEGORIES, RARITIES, Buffs, TreeItem
from tandrum.utils import now_ms

logger = logging.getLogger(__name__)

RARITY_COLORS = {
    "common": "#6b7280",
    "uncommon": "#10b981",
    "rare": "#3b82f6",
    "epic": "#8b5cf6",
    "legendary": "#f59e0b",
}

# --- BUILT-IN CATALOG ---
DEFAULT_TREE_ITEMS = [
    # Leaves
    {"item_id": "forestLeaf", "name": "Forest Leaf", "category": "leaf", "rarity": "common", "icon": "🍃",
     "description": "A sturdy leaf from the deep woods.",
     "buffs": {"focus_bonus": 5}, "ability": "Calm Canopy",
     "ability_description": "+5 focus while equipped."},
    {"item_id": "autumnLeaf", "name": "Autumn Leaf", "category": "leaf", "rarity": "common", "icon": "🍂",
     "description": "Warm colours of a cosy season.",
     "buffs": {"daily_xp_bonus": 5}, "ability": "Harvest Glow",
     "ability_description": "+5 XP on every shared completion."},
    {"item_id": "springLeaf", "name": "Spring Leaf", "category": "leaf", "rarity": "common", "icon": "🌱",
     "description": "Fresh growth, fresh starts.",
     "buffs": {"xp_multiplier": 1.05}, "ability": "New Beginnings",
     "ability_description": "5% more XP."},
    {"item_id": "oakLeaf", "name": "Oak Leaf", "category": "leaf", "rarity": "common", "icon": "🌿",
     "description": "Slow and steady.",
     "buffs": {"focus_bonus": 5}, "ability": "Deep Roots",
     "ability_description": "+5 focus while equipped."},
    {"item_id": "mapleLeaf", "name": "Maple Leaf", "category": "leaf", "rarity": "common", "icon": "🍁",
     "description": "Sweet rewards for patient duos.",
     "buffs": {"daily_xp_bonus": 5}, "ability": "Sap Flow",
     "ability_description": "+5 XP on every shared completion."},
    {"item_id": "silverLeaf", "name": "Silver Leaf", "category": "leaf", "rarity": "uncommon", "icon": "🥈",
     "description": "Catches the morning light.",
     "buffs": {"xp_multiplier": 1.1}, "ability": "Silver Lining",
     "ability_description": "10% more XP."},
    {"item_id": "azureLeaf", "name": "Azure Leaf", "category": "leaf", "rarity": "uncommon", "icon": "💧",
     "description": "Cool as a clear sky.",
     "buffs": {"focus_bonus": 10}, "ability": "Clear Skies",
     "ability_description": "+10 focus while equipped."},
    {"item_id": "crimsonLeaf", "name": "Crimson Leaf", "category": "leaf", "rarity": "uncommon", "icon": "❤️",
     "description": "Burns with shared determination.",
     "buffs": {"daily_xp_bonus": 10}, "ability": "Ember Heart",
     "ability_description": "+10 XP on every shared completion."},
    {"item_id": "jadeLeaf", "name": "Jade Leaf", "category": "leaf", "rarity": "uncommon", "icon": "💚",
     "description": "Polished by many small efforts.",
     "buffs": {"xp_multiplier": 1.1}, "ability": "Polished Habit",
     "ability_description": "10% more XP."},
    {"item_id": "crystalLeaf", "name": "Crystal Leaf", "category": "leaf", "rarity": "rare", "icon": "💎",
     "description": "Refracts effort into progress.",
     "buffs": {"xp_multiplier": 1.2}, "ability": "Prism Focus",
     "ability_description": "20% more XP."},
    {"item_id": "phoenixLeaf", "name": "Phoenix Leaf", "category": "leaf", "rarity": "rare", "icon": "🔥",
     "description": "Rises again after a stumble.",
     "buffs": {"streak_protection": True}, "ability": "Rebirth",
     "ability_description": "One missed day per week does not break the streak."},
    {"item_id": "emeraldLeaf", "name": "Emerald Leaf", "category": "leaf", "rarity": "rare", "icon": "🟢",
     "description": "A gem among leaves.",
     "buffs": {"daily_xp_bonus": 20}, "ability": "Verdant Gift",
     "ability_description": "+20 XP on every shared completion."},
    {"item_id": "rainbowLeaf", "name": "Rainbow Leaf", "category": "leaf", "rarity": "epic", "icon": "🌈",
     "description": "Every colour of a good week.",
     "buffs": {"xp_multiplier": 1.5}, "ability": "Spectrum",
     "ability_description": "50% more XP."},
    {"item_id": "frostLeaf", "name": "Frost Leaf", "category": "leaf", "rarity": "epic", "icon": "❄️",
     "description": "Preserves what you built.",
     "buffs": {"streak_protection": True, "focus_bonus": 15}, "ability": "Deep Freeze",
     "ability_description": "Streak protection and +15 focus."},
    {"item_id": "goldenLeaf", "name": "Golden Leaf", "category": "leaf", "rarity": "legendary", "icon": "🌟",
     "description": "Only the most devoted duos ever see one.",
     "buffs": {"xp_multiplier": 2.0}, "ability": "Midas Touch",
     "ability_description": "Double XP."},
    {"item_id": "eternalLeaf", "name": "Eternal Leaf", "category": "leaf", "rarity": "legendary", "icon": "♾️",
     "description": "It never falls.",
     "buffs": {"streak_protection": True, "xp_multiplier": 1.5}, "ability": "Evergreen",
     "ability_description": "Streak protection and 50% more XP."},
    # Fruits
    {"item_id": "orange", "name": "Orange", "category": "fruit", "rarity": "common", "icon": "🍊",
     "description": "A bright little boost.",
     "buffs": {"daily_xp_bonus": 5}, "ability": "Zest",
     "ability_description": "+5 XP on every shared completion."},
    {"item_id": "apple", "name": "Apple", "category": "fruit", "rarity": "common", "icon": "🍎",
     "description": "One a day keeps the slump away.",
     "buffs": {"focus_bonus": 5}, "ability": "Crisp Mind",
     "ability_description": "+5 focus while equipped."},
    {"item_id": "cherry", "name": "Cherry", "category": "fruit", "rarity": "uncommon", "icon": "🍒",
     "description": "Always comes in pairs.",
     "buffs": {"xp_multiplier": 1.1}, "ability": "Better Together",
     "ability_description": "10% more XP."},
    {"item_id": "peach", "name": "Peach", "category": "fruit", "rarity": "rare", "icon": "🍑",
     "description": "Soft reward for hard work.",
     "buffs": {"daily_xp_bonus": 25}, "ability": "Sweet Spot",
     "ability_description": "+25 XP on every shared completion."},
    {"item_id": "mango", "name": "Mango", "category": "fruit", "rarity": "epic", "icon": "🥭",
     "description": "Tropical momentum.",
     "buffs": {"xp_multiplier": 1.3, "daily_xp_bonus": 15}, "ability": "Heatwave",
     "ability_description": "30% more XP and +15 XP per shared completion."},
    {"item_id": "starfruit", "name": "Starfruit", "category": "fruit", "rarity": "legendary", "icon": "⭐",
     "description": "Grows only on trees that reached the sky.",
     "buffs": {"xp_multiplier": 1.75, "daily_xp_bonus": 30}, "ability": "Constellation",
     "ability_description": "75% more XP and +30 XP per shared completion."},
]

UPDATABLE_FIELDS = {"name", "description", "buffs", "ability", "ability_description",
                    "icon", "color", "is_active"}


def validate_buffs(buffs):
    """Coerce a buffs mapping into Buffs, rejecting nonsense values."""
    if isinstance(buffs, Buffs):
        buffs = buffs.to_dict()
    buffs = dict(buffs or {})
    unknown = set(buffs) - {"xp_multiplier", "focus_bonus", "streak_protection", "daily_xp_bonus"}
    if unknown:
        raise ValidationError(f"Unknown buffs: {', '.join(sorted(unknown))}")
    if buffs.get("xp_multiplier") is not None and buffs["xp_multiplier"] <= 0:
        raise ValidationError("xp_multiplier must be positive")
    for key in ("focus_bonus", "daily_xp_bonus"):
        if buffs.get(key) is not None and buffs[key] < 0:
            raise ValidationError(f"{key} cannot be negative")
    return Buffs.from_dict(buffs)


def _build_item(data, now):
    category = data.get("category")
    rarity = data.get("rarity")
    if not data.get("item_id") or not data.get("name"):
        raise ValidationError("Tree items need an item_id and a name")
    if category not in CATEGORIES:
        raise ValidationError(f"Invalid category: {category}")
    if rarity not in RARITIES:
        raise ValidationError(f"Invalid rarity: {rarity}")
    return TreeItem(
        item_id=data["item_id"],
        name=data["name"],
        category=category,
        rarity=rarity,
        description=data.get("description", ""),
        buffs=validate_buffs(data.get("buffs")),
        ability=data.get("ability", ""),
        ability_description=data.get("ability_description", ""),
        icon=data.get("icon", ""),
        color=data.get("color") or RARITY_COLORS[rarity],
        is_active=True,
        created_at=now,
        updated_at=now,
    )


def seed_tree_items(repo, items=None, clock=now_ms):
    """One-time catalog initialization; refuses to run on a non-empty catalog."""
    items = DEFAULT_TREE_ITEMS if items is None else items
    now = clock()
    with repo.transaction():
        if repo.count_tree_items() > 0:
            raise ValidationError("Tree items already initialized")
        for data in items:
            repo.insert_tree_item(_build_item(data, now))
    logger.info("Seeded %d tree items", len(items))
    return {"success": True, "count": len(items)}


def create_tree_item(repo, clock=now_ms, **data):
    """Admin: add one catalog item."""
    item = _build_item(data, clock())
    with repo.transaction():
        if repo.get_tree_item_by_id(item.item_id) is not None:
            raise ValidationError(f"Tree item with item_id '{item.item_id}' already exists")
        repo.insert_tree_item(item)
    logger.info("Created tree item %s", item.item_id)
    return item.item_id


def update_tree_item(repo, item_id, /, clock=now_ms, **updates):
    """Admin: partial update. Setting is_active=False is how items are retired."""
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")
    if "buffs" in updates:
        updates["buffs"] = validate_buffs(updates["buffs"])
    if "is_active" in updates:
        updates["is_active"] = bool(updates["is_active"])

    with repo.transaction():
        if repo.get_tree_item_by_id(item_id) is None:
            raise NotFound("TreeItem", item_id)
        repo.update_tree_item(item_id, {**updates, "updated_at": clock()})
    logger.info("Updated tree item %s: %s", item_id, sorted(updates))
    return {"success": True}


def list_active_tree_items(repo):
    return repo.list_active_tree_items()


def list_tree_items_by_category(repo, category):
    if category not in CATEGORIES:
        raise ValidationError(f"Invalid category: {category}")
    return repo.list_tree_items_by_category(category)


def get_tree_item(repo, item_id):
    item = repo.get_tree_item_by_id(item_id)
    if item is None:
        raise NotFound("TreeItem", item_id)
    return item
