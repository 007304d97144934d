import logging
import threading
from contextlib import contextmanager
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError
from bson.objectid import ObjectId
from tandrum.database import Repository, to_plain
from tandrum.models import Habit, Duo, Tree, TreeItem

logger = logging.getLogger(__name__)


def _doc_to_model(model, doc):
    if doc is None:
        return None
    doc = dict(doc)
    # Map _id to id (string)
    if "_id" in doc and model is not TreeItem:
        doc["id"] = str(doc["_id"])
    return model.from_dict(doc)


class MongoRepository(Repository):
    """
    MongoDB-backed repository. Transactions run in a client session, which
    needs a replica set (Atlas or a local single-node replica set).
    """

    def __init__(self, uri, db_name=None, client=None):
        if client is None and not uri:
            raise ValueError("MONGO_URI not found in .env")
        self.client = client or MongoClient(uri)
        # Default DB name or from URI
        db_name = db_name or (uri or "").split("/")[-1].split("?")[0] or "tandrum"
        self.db = self.client[db_name]
        self._local = threading.local()
        self.init_db()

    def init_db(self):
        """Create the indexes the engine relies on."""
        try:
            self.db.habits.create_index([("duo_id", ASCENDING)])
            self.db.trees.create_index([("duo_id", ASCENDING)], unique=True)
            self.db.tree_items.create_index([("item_id", ASCENDING)], unique=True)
            self.db.tree_items.create_index([("is_active", ASCENDING)])
            self.db.duos.create_index([("user1", ASCENDING), ("user2", ASCENDING)])
        except PyMongoError as e:
            logger.error("Failed to prepare MongoDB indexes: %s", e)
            raise
        return True

    def _session(self):
        return getattr(self._local, "session", None)

    @contextmanager
    def transaction(self):
        if self._session() is not None:
            yield self
            return

        with self.client.start_session() as session:
            with session.start_transaction():
                self._local.session = session
                try:
                    yield self
                finally:
                    self._local.session = None

    # --- HABITS ---

    def get_habit(self, habit_id):
        return _doc_to_model(Habit, self.db.habits.find_one({"_id": habit_id}, session=self._session()))

    def insert_habit(self, habit):
        habit.id = habit.id or str(ObjectId())
        doc = habit.to_dict()
        doc["_id"] = doc.pop("id")
        self.db.habits.insert_one(doc, session=self._session())
        return habit.id

    def update_habit(self, habit_id, fields):
        if not fields:
            return 0
        res = self.db.habits.update_one(
            {"_id": habit_id}, {"$set": to_plain(fields)}, session=self._session()
        )
        return res.matched_count

    def delete_habit(self, habit_id):
        res = self.db.habits.delete_one({"_id": habit_id}, session=self._session())
        return res.deleted_count

    def list_habits_for_duo(self, duo_id):
        cursor = self.db.habits.find({"duo_id": duo_id}, session=self._session()).sort(
            [("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return [_doc_to_model(Habit, d) for d in cursor]

    # --- DUOS ---

    def get_duo(self, duo_id):
        return _doc_to_model(Duo, self.db.duos.find_one({"_id": duo_id}, session=self._session()))

    def insert_duo(self, duo):
        duo.id = duo.id or str(ObjectId())
        doc = duo.to_dict()
        doc["_id"] = doc.pop("id")
        self.db.duos.insert_one(doc, session=self._session())
        return duo.id

    def update_duo(self, duo_id, fields):
        if not fields:
            return 0
        res = self.db.duos.update_one(
            {"_id": duo_id}, {"$set": to_plain(fields)}, session=self._session()
        )
        return res.matched_count

    def find_duo_by_users(self, user1, user2):
        doc = self.db.duos.find_one(
            {"$or": [{"user1": user1, "user2": user2}, {"user1": user2, "user2": user1}]},
            session=self._session(),
        )
        return _doc_to_model(Duo, doc)

    # --- TREES ---

    def get_tree(self, duo_id):
        return _doc_to_model(Tree, self.db.trees.find_one({"duo_id": duo_id}, session=self._session()))

    def insert_tree(self, tree):
        tree.id = tree.id or str(ObjectId())
        doc = tree.to_dict()
        doc["_id"] = doc.pop("id")
        self.db.trees.insert_one(doc, session=self._session())
        return tree.id

    def update_tree(self, duo_id, fields):
        if not fields:
            return 0
        res = self.db.trees.update_one(
            {"duo_id": duo_id}, {"$set": to_plain(fields)}, session=self._session()
        )
        return res.matched_count

    # --- CATALOG ---

    def list_active_tree_items(self):
        cursor = self.db.tree_items.find({"is_active": True}, session=self._session())
        return [_doc_to_model(TreeItem, d) for d in cursor]

    def list_tree_items_by_category(self, category):
        cursor = self.db.tree_items.find(
            {"category": category, "is_active": True}, session=self._session()
        )
        return [_doc_to_model(TreeItem, d) for d in cursor]

    def get_tree_item_by_id(self, item_id):
        return _doc_to_model(
            TreeItem, self.db.tree_items.find_one({"item_id": item_id}, session=self._session())
        )

    def insert_tree_item(self, item):
        self.db.tree_items.insert_one(item.to_dict(), session=self._session())
        return item.item_id

    def update_tree_item(self, item_id, fields):
        if not fields:
            return 0
        res = self.db.tree_items.update_one(
            {"item_id": item_id}, {"$set": to_plain(fields)}, session=self._session()
        )
        return res.matched_count

    def count_tree_items(self):
        return self.db.tree_items.count_documents({}, session=self._session())
