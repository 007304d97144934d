import sqlite3
import os
import json
import uuid
import logging
import threading
from contextlib import contextmanager
from dataclasses import fields as dc_fields
from tandrum.database import Repository, to_plain
from tandrum.models import Habit, Duo, Tree, TreeItem

logger = logging.getLogger(__name__)

# Columns stored as JSON text
JSON_COLUMNS = {"inventory", "decorations", "growth_log", "buffs"}

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS duos (
        id TEXT PRIMARY KEY,
        user1 TEXT NOT NULL,
        user2 TEXT NOT NULL,
        trust_score INTEGER DEFAULT 0,
        streak INTEGER DEFAULT 0,
        streak_date TEXT,
        streak_protection_week TEXT,
        tree_state TEXT DEFAULT 'tree-1',
        created_at INTEGER,
        last_updated INTEGER
    );

    CREATE TABLE IF NOT EXISTS habits (
        id TEXT PRIMARY KEY,
        duo_id TEXT NOT NULL,
        title TEXT NOT NULL,
        frequency TEXT DEFAULT 'daily',
        key_skill TEXT DEFAULT 'discipline',
        difficulty INTEGER DEFAULT 1,
        last_checkin_at_user_a INTEGER,
        last_checkin_at_user_b INTEGER,
        last_checkin_at INTEGER,
        created_at INTEGER,
        FOREIGN KEY (duo_id) REFERENCES duos (id)
    );
    CREATE INDEX IF NOT EXISTS idx_habits_duo ON habits (duo_id);

    CREATE TABLE IF NOT EXISTS trees (
        id TEXT PRIMARY KEY,
        duo_id TEXT NOT NULL UNIQUE,
        stage TEXT DEFAULT 'tree-1',
        leaves INTEGER DEFAULT 0,
        fruits INTEGER DEFAULT 0,
        inventory TEXT DEFAULT '{}',
        decorations TEXT DEFAULT '[]',
        growth_log TEXT DEFAULT '[]',
        FOREIGN KEY (duo_id) REFERENCES duos (id)
    );

    CREATE TABLE IF NOT EXISTS tree_items (
        item_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT NOT NULL,
        rarity TEXT NOT NULL,
        buffs TEXT DEFAULT '{}',
        ability TEXT,
        ability_description TEXT,
        icon TEXT,
        color TEXT,
        is_active BOOLEAN DEFAULT 1,
        created_at INTEGER,
        updated_at INTEGER
    );
'''


class SQLiteRepository(Repository):
    """
    SQLite-backed repository. Transactions use BEGIN IMMEDIATE so concurrent
    writers (threads or processes) queue on the database lock.
    Needs a file path: every transaction opens its own connection.
    """

    def __init__(self, path="data/tandrum.db", timeout=30.0):
        self.path = path
        self.timeout = timeout
        self._local = threading.local()
        if os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
        self.init_db()

    def get_db_connection(self):
        """Create a database connection to the SQLite database."""
        # Autocommit mode; transactions are opened explicitly
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        """Initialize the database with necessary tables."""
        conn = self.get_db_connection()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()
        return True

    @contextmanager
    def transaction(self):
        if getattr(self._local, "conn", None) is not None:
            yield self
            return

        conn = self.get_db_connection()
        self._local.conn = conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield self
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
            raise
        finally:
            self._local.conn = None
            conn.close()

    def run_query(self, query, params=(), fetch=True):
        """Execute a query on the active transaction (or a one-shot connection)."""
        conn = getattr(self._local, "conn", None)
        own = conn is None
        if own:
            conn = self.get_db_connection()
        try:
            cursor = conn.execute(query, params)
            return cursor.fetchall() if fetch else cursor.rowcount
        except sqlite3.Error as e:
            logger.error("Database Error: %s", e)
            raise
        finally:
            if own:
                conn.close()

    # --- ROW MAPPING ---

    @staticmethod
    def _encode(column, value):
        value = to_plain(value)
        if column in JSON_COLUMNS:
            return json.dumps(value)
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    @staticmethod
    def _decode(row):
        data = dict(row)
        for column in JSON_COLUMNS & data.keys():
            data[column] = json.loads(data[column]) if data[column] else None
        return data

    def _insert(self, table, data):
        columns = list(data.keys())
        query = "INSERT INTO {} ({}) VALUES ({})".format(
            table, ", ".join(columns), ", ".join("?" for _ in columns)
        )
        self.run_query(query, tuple(self._encode(c, data[c]) for c in columns), fetch=False)

    def _update(self, table, model, key_column, key, updated_data):
        if not updated_data:
            return 0
        allowed = {f.name for f in dc_fields(model)} - {"id", key_column}
        unknown = set(updated_data) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
        columns = list(updated_data.keys())
        query = "UPDATE {} SET {} WHERE {} = ?".format(
            table, ", ".join(f"{c} = ?" for c in columns), key_column
        )
        params = tuple(self._encode(c, updated_data[c]) for c in columns) + (key,)
        return self.run_query(query, params, fetch=False)

    def _one(self, model, query, params):
        rows = self.run_query(query, params)
        return model.from_dict(self._decode(rows[0])) if rows else None

    # --- HABITS ---

    def get_habit(self, habit_id):
        return self._one(Habit, "SELECT * FROM habits WHERE id = ?", (habit_id,))

    def insert_habit(self, habit):
        habit.id = habit.id or uuid.uuid4().hex
        self._insert("habits", habit.to_dict())
        return habit.id

    def update_habit(self, habit_id, fields):
        return self._update("habits", Habit, "id", habit_id, fields)

    def delete_habit(self, habit_id):
        return self.run_query("DELETE FROM habits WHERE id = ?", (habit_id,), fetch=False)

    def list_habits_for_duo(self, duo_id):
        rows = self.run_query(
            "SELECT * FROM habits WHERE duo_id = ? ORDER BY created_at DESC, rowid DESC",
            (duo_id,),
        )
        return [Habit.from_dict(self._decode(r)) for r in rows]

    # --- DUOS ---

    def get_duo(self, duo_id):
        return self._one(Duo, "SELECT * FROM duos WHERE id = ?", (duo_id,))

    def insert_duo(self, duo):
        duo.id = duo.id or uuid.uuid4().hex
        self._insert("duos", duo.to_dict())
        return duo.id

    def update_duo(self, duo_id, fields):
        return self._update("duos", Duo, "id", duo_id, fields)

    def find_duo_by_users(self, user1, user2):
        return self._one(
            Duo,
            "SELECT * FROM duos WHERE (user1 = ? AND user2 = ?) OR (user1 = ? AND user2 = ?)",
            (user1, user2, user2, user1),
        )

    # --- TREES ---

    def get_tree(self, duo_id):
        return self._one(Tree, "SELECT * FROM trees WHERE duo_id = ?", (duo_id,))

    def insert_tree(self, tree):
        tree.id = tree.id or uuid.uuid4().hex
        self._insert("trees", tree.to_dict())
        return tree.id

    def update_tree(self, duo_id, fields):
        return self._update("trees", Tree, "duo_id", duo_id, fields)

    # --- CATALOG ---

    def list_active_tree_items(self):
        rows = self.run_query("SELECT * FROM tree_items WHERE is_active = 1 ORDER BY rowid")
        return [TreeItem.from_dict(self._decode(r)) for r in rows]

    def list_tree_items_by_category(self, category):
        rows = self.run_query(
            "SELECT * FROM tree_items WHERE category = ? AND is_active = 1 ORDER BY rowid",
            (category,),
        )
        return [TreeItem.from_dict(self._decode(r)) for r in rows]

    def get_tree_item_by_id(self, item_id):
        return self._one(TreeItem, "SELECT * FROM tree_items WHERE item_id = ?", (item_id,))

    def insert_tree_item(self, item):
        self._insert("tree_items", item.to_dict())
        return item.item_id

    def update_tree_item(self, item_id, fields):
        return self._update("tree_items", TreeItem, "item_id", item_id, fields)

    def count_tree_items(self):
        return self.run_query("SELECT COUNT(*) AS n FROM tree_items")[0]["n"]
