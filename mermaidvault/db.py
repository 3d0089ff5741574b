import logging
import os
import sqlite3
import threading
from contextlib import contextmanager

logger = logging.getLogger("MermaidVault")

from .constants import (
    DB_FILENAME,
    DEFAULT_COLLECTION_DESCRIPTION,
    DEFAULT_COLLECTION_NAME,
    SQLITE_MAX_INTEGER,
)
from .paths import get_data_dir
from .schema import SCHEMA_SQL
from .utils import now_iso

_COLLECTION_FIELDS = "id, name, description, created_at, updated_at"
_DIAGRAM_FIELDS = "id, collection_id, name, content, created_at, updated_at"


def _id_out_of_range(value):
    # Such ids cannot be bound, so they can never match a row.
    return isinstance(value, int) and not -SQLITE_MAX_INTEGER - 1 <= value <= SQLITE_MAX_INTEGER


class StoreError(Exception):
    """Storage failure translated to a human-readable message."""


class StoreInitError(StoreError):
    pass


class NotFoundError(StoreError, KeyError):
    def __str__(self):
        # KeyError.__str__ would repr() the message.
        return Exception.__str__(self)


class ConstraintError(StoreError):
    pass


class MermaidVaultStore:
    """Collections of Mermaid diagrams in one SQLite file.

    A single connection is shared by every thread; ``_lock`` is held for the
    whole of each public operation, read-back included, so operations never
    interleave.
    """

    _instance = None
    _instance_lock = threading.Lock()

    @classmethod
    def get(cls):
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(get_data_dir())
            return cls._instance

    def __init__(self, data_dir):
        self.data_dir = str(data_dir)
        self.db_path = os.path.join(self.data_dir, DB_FILENAME)
        self._lock = threading.Lock()
        try:
            os.makedirs(self.data_dir, exist_ok=True)
        except OSError as exc:
            raise StoreInitError(f"Failed to create app data directory: {exc}") from exc
        try:
            self._conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreInitError(f"Failed to open database {self.db_path}: {exc}") from exc
        logger.info("Database opened at %s", self.db_path)
        self._init_db()

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    def _init_db(self):
        with self._lock:
            try:
                self._conn.executescript(SCHEMA_SQL)
                self._bootstrap_default_collection()
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreInitError(f"Failed to initialize database schema: {exc}") from exc

    def _bootstrap_default_collection(self):
        count = self._conn.execute("SELECT COUNT(*) FROM collections").fetchone()[0]
        if count:
            return
        now = now_iso()
        self._conn.execute(
            "INSERT INTO collections(name,description,created_at,updated_at) VALUES(?,?,?,?)",
            (DEFAULT_COLLECTION_NAME, DEFAULT_COLLECTION_DESCRIPTION, now, now),
        )
        logger.info("Created default collection %r", DEFAULT_COLLECTION_NAME)

    @contextmanager
    def _operation(self, action):
        """Serialize one unit of work and translate engine errors.

        Uncommitted changes are rolled back before the error leaves the lock.
        """
        with self._lock:
            try:
                yield self._conn
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                logger.warning("Constraint violation while trying to %s: %s", action, exc)
                raise ConstraintError(f"Failed to {action}: {exc}") from exc
            except (sqlite3.Error, OverflowError) as exc:
                self._conn.rollback()
                raise StoreError(f"Failed to {action}: {exc}") from exc
            except Exception:
                self._conn.rollback()
                raise

    # Collections

    def list_collections(self):
        with self._operation("list collections") as conn:
            rows = conn.execute(
                f"SELECT {_COLLECTION_FIELDS} FROM collections ORDER BY created_at DESC, id DESC"
            ).fetchall()
            return [self._row_to_collection(r) for r in rows]

    def get_collection(self, collection_id):
        if _id_out_of_range(collection_id):
            return None
        with self._operation("get collection") as conn:
            return self._fetch_collection(conn, collection_id)

    def create_collection(self, name, description=None):
        now = now_iso()
        with self._operation("create collection") as conn:
            cur = conn.execute(
                "INSERT INTO collections(name,description,created_at,updated_at) VALUES(?,?,?,?)",
                (name, description, now, now),
            )
            conn.commit()
            collection = self._fetch_collection(conn, cur.lastrowid)
            if collection is None:
                raise NotFoundError(f"Collection {cur.lastrowid} not found after insert")
            logger.debug("Created collection id=%s", collection["id"])
            return collection

    def update_collection(self, collection_id, name, description=None):
        if _id_out_of_range(collection_id):
            raise NotFoundError(f"Collection {collection_id} not found")
        with self._operation("update collection") as conn:
            cur = conn.execute(
                "UPDATE collections SET name=?, description=?, updated_at=? WHERE id=?",
                (name, description, now_iso(), collection_id),
            )
            if cur.rowcount == 0:
                logger.warning("Update of missing collection id=%s", collection_id)
                raise NotFoundError(f"Collection {collection_id} not found")
            conn.commit()
            collection = self._fetch_collection(conn, collection_id)
            if collection is None:
                raise NotFoundError(f"Collection {collection_id} not found")
            logger.debug("Updated collection id=%s", collection_id)
            return collection

    def delete_collection(self, collection_id):
        if _id_out_of_range(collection_id):
            return False
        with self._operation("delete collection") as conn:
            cur = conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))
            conn.commit()
            deleted = cur.rowcount > 0
            logger.debug("Delete collection id=%s deleted=%s", collection_id, deleted)
            return deleted

    # Diagrams

    def list_diagrams_by_collection(self, collection_id):
        # No existence check: an unknown collection simply has no diagrams.
        if _id_out_of_range(collection_id):
            return []
        with self._operation("list diagrams") as conn:
            rows = conn.execute(
                f"SELECT {_DIAGRAM_FIELDS} FROM diagrams WHERE collection_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (collection_id,),
            ).fetchall()
            logger.debug("Listed %d diagrams for collection id=%s", len(rows), collection_id)
            return [self._row_to_diagram(r) for r in rows]

    def get_diagram(self, diagram_id):
        if _id_out_of_range(diagram_id):
            return None
        with self._operation("get diagram") as conn:
            return self._fetch_diagram(conn, diagram_id)

    def create_diagram(self, collection_id, name, content):
        if _id_out_of_range(collection_id):
            raise ConstraintError("Failed to create diagram: FOREIGN KEY constraint failed")
        now = now_iso()
        with self._operation("create diagram") as conn:
            cur = conn.execute(
                "INSERT INTO diagrams(collection_id,name,content,created_at,updated_at) VALUES(?,?,?,?,?)",
                (collection_id, name, content, now, now),
            )
            conn.commit()
            diagram = self._fetch_diagram(conn, cur.lastrowid)
            if diagram is None:
                raise NotFoundError(f"Diagram {cur.lastrowid} not found after insert")
            logger.debug("Created diagram id=%s in collection id=%s", diagram["id"], collection_id)
            return diagram

    def update_diagram(self, diagram_id, name, content):
        if _id_out_of_range(diagram_id):
            raise NotFoundError(f"Diagram {diagram_id} not found")
        with self._operation("update diagram") as conn:
            cur = conn.execute(
                "UPDATE diagrams SET name=?, content=?, updated_at=? WHERE id=?",
                (name, content, now_iso(), diagram_id),
            )
            if cur.rowcount == 0:
                logger.warning("Update of missing diagram id=%s", diagram_id)
                raise NotFoundError(f"Diagram {diagram_id} not found")
            conn.commit()
            diagram = self._fetch_diagram(conn, diagram_id)
            if diagram is None:
                raise NotFoundError(f"Diagram {diagram_id} not found")
            logger.debug("Updated diagram id=%s", diagram_id)
            return diagram

    def delete_diagram(self, diagram_id):
        if _id_out_of_range(diagram_id):
            return False
        with self._operation("delete diagram") as conn:
            cur = conn.execute("DELETE FROM diagrams WHERE id = ?", (diagram_id,))
            conn.commit()
            deleted = cur.rowcount > 0
            logger.debug("Delete diagram id=%s deleted=%s", diagram_id, deleted)
            return deleted

    # Row helpers; callers hold the lock.

    def _fetch_collection(self, conn, collection_id):
        row = conn.execute(
            f"SELECT {_COLLECTION_FIELDS} FROM collections WHERE id = ?", (collection_id,)
        ).fetchone()
        return self._row_to_collection(row) if row else None

    def _fetch_diagram(self, conn, diagram_id):
        row = conn.execute(
            f"SELECT {_DIAGRAM_FIELDS} FROM diagrams WHERE id = ?", (diagram_id,)
        ).fetchone()
        return self._row_to_diagram(row) if row else None

    @staticmethod
    def _row_to_collection(row):
        return {
            "id": int(row["id"]),
            "name": row["name"],
            "description": row["description"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _row_to_diagram(row):
        return {
            "id": int(row["id"]),
            "collection_id": int(row["collection_id"]),
            "name": row["name"],
            "content": row["content"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
