"""
Task and bucket storage backend (SQLite).

Provides list/get/create/patch/patch_many/delete per record type. Each call
is its own transaction; patch_many writes the whole batch in one, which is
how the board keeps multi-record moves from ever being half-applied.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from .errors import StoreError
from .schema import Bucket, Task, normalize_limit, utc_now

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "bucketboard" / "board.db"


@contextmanager
def _connect(db_path: str):
    """Open a connection with FK enforcement and WAL mode; commit or roll back on exit."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_schema(db_path: str) -> None:
    """Create tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with _connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS buckets (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                bucket_limit INTEGER,          -- NULL = no limit
                sort_order INTEGER NOT NULL,
                is_one_thing INTEGER DEFAULT 0,
                user_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT DEFAULT 'not-started',
                priority TEXT DEFAULT 'medium',
                due_date TEXT,
                tags TEXT,                     -- JSON list
                bucket_id TEXT NOT NULL,
                order_in_bucket INTEGER NOT NULL,
                user_id TEXT NOT NULL,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (bucket_id) REFERENCES buckets(id)
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_buckets_user ON buckets(user_id, sort_order)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_bucket ON tasks(bucket_id, order_in_bucket)")


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return 1 if value else 0
    return value


class _SQLiteStore:
    """Shared CRUD plumbing; subclasses name the table, columns and row mapping."""

    table = ""
    kind = "record"
    # record field -> (column, encoder)
    columns: Dict[str, tuple] = {}

    def __init__(self, db_path: Optional[str] = None):
        """Initialize store and create tables if needed."""
        self.db_path = str(db_path or DEFAULT_DB_PATH)
        init_schema(self.db_path)

    def _row_to_record(self, row: sqlite3.Row):
        raise NotImplementedError

    def _fail(self, action: str, error: Exception) -> StoreError:
        logger.error(f"Error {action}: {error}")
        return StoreError(f"Error {action}: {error}")

    def _assignments(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for key, value in partial.items():
            if key == "id":
                continue
            if key not in self.columns:
                raise StoreError(f"Unknown {self.kind} field: {key}")
            column, encoder = self.columns[key]
            values[column] = encoder(value)
        values["updated_at"] = utc_now().isoformat()
        return values

    def _update(self, conn: sqlite3.Connection, record_id: str, partial: Dict[str, Any]) -> None:
        values = self._assignments(partial)
        sql = f"UPDATE {self.table} SET {', '.join(f'{c} = ?' for c in values)} WHERE id = ?"
        cursor = conn.execute(sql, (*values.values(), record_id))
        if cursor.rowcount == 0:
            raise StoreError(f"{self.kind.capitalize()} {record_id} not found")

    def _fetch(self, conn: sqlite3.Connection, record_id: str):
        row = conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def get(self, record_id: str):
        """Retrieve a record by ID, or None."""
        try:
            with _connect(self.db_path) as conn:
                return self._fetch(conn, record_id)
        except sqlite3.Error as e:
            raise self._fail(f"retrieving {self.kind} {record_id}", e) from e

    def patch(self, record_id: str, partial: Dict[str, Any]):
        """Update some fields of one record and return the stored result."""
        try:
            with _connect(self.db_path) as conn:
                self._update(conn, record_id, partial)
                return self._fetch(conn, record_id)
        except sqlite3.Error as e:
            raise self._fail(f"patching {self.kind} {record_id}", e) from e

    def patch_many(self, partials: Iterable[Dict[str, Any]], delete_ids: Iterable[str] = ()) -> list:
        """
        Apply a batch of partial updates in one transaction. Each partial carries its "id".

        Records in `delete_ids` are deleted in the same transaction, before
        the updates.
        """
        partials = list(partials)
        delete_ids = list(delete_ids)
        if not partials and not delete_ids:
            return []
        try:
            with _connect(self.db_path) as conn:
                for record_id in delete_ids:
                    conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
                for partial in partials:
                    self._update(conn, partial["id"], partial)
                return [self._fetch(conn, p["id"]) for p in partials]
        except sqlite3.Error as e:
            raise self._fail(f"patching {len(partials)} {self.kind}s", e) from e

    def delete(self, record_id: str) -> None:
        """Delete a record."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
        except sqlite3.Error as e:
            raise self._fail(f"deleting {self.kind} {record_id}", e) from e


def _encode_tags(value: Any) -> str:
    return json.dumps(list(value or []))


class TaskStore(_SQLiteStore):
    """SQLite-backed store for tasks."""

    table = "tasks"
    kind = "task"
    columns: Dict[str, tuple] = {
        "title": ("title", _encode),
        "description": ("description", _encode),
        "status": ("status", _encode),
        "priority": ("priority", _encode),
        "due_date": ("due_date", _encode),
        "tags": ("tags", _encode_tags),
        "bucket_id": ("bucket_id", _encode),
        "order_in_bucket": ("order_in_bucket", int),
        "user_id": ("user_id", _encode),
        "completed_at": ("completed_at", _encode),
    }

    def list(self, owner_id: str) -> List[Task]:
        """All tasks of one owner, by bucket then order."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE user_id = ? ORDER BY bucket_id, order_in_bucket, id",
                    (owner_id,),
                ).fetchall()
            return [self._row_to_record(row) for row in rows]
        except sqlite3.Error as e:
            raise self._fail(f"listing tasks for {owner_id}", e) from e

    def create(self, task: Task) -> Task:
        """Insert a new task and return it as stored."""
        data = task.to_dict()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO tasks
                    (id, title, description, status, priority, due_date, tags,
                     bucket_id, order_in_bucket, user_id, completed_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    data["id"],
                    data["title"],
                    data["description"],
                    data["status"],
                    data["priority"],
                    data["due_date"],
                    json.dumps(data["tags"]),
                    data["bucket_id"],
                    data["order_in_bucket"],
                    data["user_id"],
                    data["completed_at"],
                    data["created_at"],
                    data["updated_at"],
                ))
                return self._fetch(conn, task.id)
        except sqlite3.Error as e:
            raise self._fail(f"creating task {task.id}", e) from e

    def _row_to_record(self, row: sqlite3.Row) -> Task:
        """Convert a database row to a Task."""
        data = dict(row)
        try:
            data["tags"] = json.loads(data["tags"]) if data.get("tags") else []
        except (json.JSONDecodeError, TypeError):
            data["tags"] = []
        return Task.from_dict(data)


class BucketStore(_SQLiteStore):
    """SQLite-backed store for buckets."""

    table = "buckets"
    kind = "bucket"
    columns: Dict[str, tuple] = {
        "name": ("name", _encode),
        "limit": ("bucket_limit", normalize_limit),
        "order": ("sort_order", int),
        "is_one_thing": ("is_one_thing", _encode),
        "user_id": ("user_id", _encode),
    }

    def list(self, owner_id: str) -> List[Bucket]:
        """All buckets of one owner, by order."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM buckets WHERE user_id = ? ORDER BY sort_order, id",
                    (owner_id,),
                ).fetchall()
            return [self._row_to_record(row) for row in rows]
        except sqlite3.Error as e:
            raise self._fail(f"listing buckets for {owner_id}", e) from e

    def create(self, bucket: Bucket) -> Bucket:
        """Insert a new bucket and return it as stored."""
        data = bucket.to_dict()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO buckets
                    (id, name, bucket_limit, sort_order, is_one_thing, user_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    data["id"],
                    data["name"],
                    data["limit"],
                    data["order"],
                    1 if data["is_one_thing"] else 0,
                    data["user_id"],
                    data["created_at"],
                    data["updated_at"],
                ))
                return self._fetch(conn, bucket.id)
        except sqlite3.Error as e:
            raise self._fail(f"creating bucket {bucket.id}", e) from e

    def _row_to_record(self, row: sqlite3.Row) -> Bucket:
        """Convert a database row to a Bucket."""
        data = dict(row)
        data["limit"] = data.pop("bucket_limit", None)
        data["order"] = data.pop("sort_order", 0)
        data["is_one_thing"] = bool(data.get("is_one_thing", 0))
        return Bucket.from_dict(data)
