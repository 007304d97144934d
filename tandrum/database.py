import logging
from abc import ABC, abstractmethod
from tandrum.config import get_settings

logger = logging.getLogger(__name__)


class Repository(ABC):
    """
    Storage collaborator for the engine.

    Every method works on plain model objects (tandrum.models). Calls made
    inside `with repo.transaction():` on the same thread belong to one
    all-or-nothing unit; nested transactions join the outer one. Calls made
    outside a transaction commit individually.
    """

    @abstractmethod
    def transaction(self):
        """Context manager scoping an atomic unit of work."""

    # --- HABITS ---
    @abstractmethod
    def get_habit(self, habit_id): ...

    @abstractmethod
    def insert_habit(self, habit):
        """Store a new habit and return its id."""

    @abstractmethod
    def update_habit(self, habit_id, fields): ...

    @abstractmethod
    def delete_habit(self, habit_id): ...

    @abstractmethod
    def list_habits_for_duo(self, duo_id):
        """Habits of a duo, newest first."""

    # --- DUOS ---
    @abstractmethod
    def get_duo(self, duo_id): ...

    @abstractmethod
    def insert_duo(self, duo): ...

    @abstractmethod
    def update_duo(self, duo_id, fields): ...

    @abstractmethod
    def find_duo_by_users(self, user1, user2):
        """The duo pairing these two users in either slot order, or None."""

    # --- TREES ---
    @abstractmethod
    def get_tree(self, duo_id): ...

    @abstractmethod
    def insert_tree(self, tree): ...

    @abstractmethod
    def update_tree(self, duo_id, fields): ...

    # --- CATALOG ---
    @abstractmethod
    def list_active_tree_items(self): ...

    @abstractmethod
    def list_tree_items_by_category(self, category): ...

    @abstractmethod
    def get_tree_item_by_id(self, item_id): ...

    @abstractmethod
    def insert_tree_item(self, item): ...

    @abstractmethod
    def update_tree_item(self, item_id, fields): ...

    @abstractmethod
    def count_tree_items(self): ...


def get_repository(settings=None):
    """Build the repository for the configured backend."""
    settings = settings or get_settings()
    if settings.db_backend == "mongo":
        from tandrum.db_mongo import MongoRepository
        logger.info("Using MongoDB backend")
        return MongoRepository(settings.mongo_uri)
    if settings.db_backend == "sqlite":
        from tandrum.db_sqlite import SQLiteRepository
        logger.info("Using SQLite backend at %s", settings.database_path)
        return SQLiteRepository(settings.database_path)
    raise ValueError(f"Unknown database backend: {settings.db_backend}")


def to_plain(value):
    """Turn model objects (and lists/dicts of them) into plain storable values."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    return value
