from dataclasses import dataclass, field, asdict, fields
from typing import Optional, List, Dict, Any

# --- ENUMERATIONS ---
FREQUENCIES = ("daily", "weekly")
KEY_SKILLS = ("discipline", "empathy", "clarity", "creativity", "courage")
CATEGORIES = ("leaf", "fruit")
# Ordered from most to least common
RARITIES = ("common", "uncommon", "rare", "epic", "legendary")
# Ordered growth progression
STAGES = ("tree-1", "tree-1.5", "tree-2", "tree-3", "tree-4")


def _known(cls, data):
    """Keep only the keys that are dataclass fields of cls (drops Mongo's _id etc.)."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Habit:
    id: str
    duo_id: str
    title: str
    frequency: str = "daily"
    key_skill: str = "discipline"
    difficulty: int = 1
    last_checkin_at_user_a: Optional[int] = None
    last_checkin_at_user_b: Optional[int] = None
    last_checkin_at: Optional[int] = None
    created_at: Optional[int] = None

    @staticmethod
    def checkin_field(user_is_a: bool) -> str:
        return "last_checkin_at_user_a" if user_is_a else "last_checkin_at_user_b"

    def last_checkin_for(self, user_is_a: bool) -> Optional[int]:
        return getattr(self, self.checkin_field(user_is_a))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class Duo:
    id: str
    user1: str
    user2: str
    trust_score: int = 0
    streak: int = 0
    streak_date: Optional[str] = None  # YYYY-MM-DD of the last counted mutual completion
    streak_protection_week: Optional[str] = None  # e.g. "2026-W42"
    tree_state: str = "tree-1"
    created_at: Optional[int] = None
    last_updated: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class Decoration:
    item_id: str
    position: Dict[str, float]
    equipped_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class Tree:
    id: str
    duo_id: str
    stage: str = "tree-1"
    leaves: int = 0
    fruits: int = 0
    inventory: Dict[str, int] = field(default_factory=dict)
    decorations: List[Decoration] = field(default_factory=list)
    growth_log: List[Dict[str, str]] = field(default_factory=list)

    def log(self, day, change):
        """Append a dated entry to the growth log."""
        self.growth_log.append({"date": str(day), "change": change})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        data = _known(cls, data)
        data["decorations"] = [
            d if isinstance(d, Decoration) else Decoration.from_dict(d)
            for d in (data.get("decorations") or [])
        ]
        data["inventory"] = dict(data.get("inventory") or {})
        data["growth_log"] = list(data.get("growth_log") or [])
        return cls(**data)


@dataclass
class Buffs:
    xp_multiplier: Optional[float] = None
    focus_bonus: Optional[int] = None
    streak_protection: Optional[bool] = None
    daily_xp_bonus: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data or {}))


@dataclass
class TreeItem:
    item_id: str
    name: str
    category: str
    rarity: str
    description: str = ""
    buffs: Buffs = field(default_factory=Buffs)
    ability: str = ""
    ability_description: str = ""
    icon: str = ""
    color: str = ""
    is_active: bool = True
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["buffs"] = self.buffs.to_dict()
        return data

    @classmethod
    def from_dict(cls, data):
        data = _known(cls, data)
        buffs = data.get("buffs")
        if not isinstance(buffs, Buffs):
            data["buffs"] = Buffs.from_dict(buffs)
        data["is_active"] = bool(data.get("is_active", True))
        return cls(**data)


@dataclass
class Rewards:
    xp: int
    item: Optional[TreeItem] = None


@dataclass
class CheckInResult:
    checked_in: bool
    both_completed: bool
    rewards: Optional[Rewards] = None


@dataclass
class StreakUpdate:
    streak: int
    streak_date: Optional[str]
    protection_week: Optional[str] = None
    protection_used: bool = False


@dataclass
class ActiveBuffs:
    xp_multiplier: float = 1.0
    focus_bonus: int = 0
    daily_xp_bonus: int = 0
    streak_protection: bool = False
    active_items: List[Dict[str, Any]] = field(default_factory=list)
