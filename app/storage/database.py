# ============================================================================
# SpaceOps - Storage Layer (sqlite3)
# ============================================================================
# Schema, timestamp helpers and a small filter-based query interface over the
# facility collections. Every mutation records who performed it in audit_log;
# the acting user is always passed explicitly (None means the system).
# ============================================================================

import sqlite3
import uuid
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..config import get_config

logger = logging.getLogger(__name__)

TS_FORMAT = "%Y-%m-%d %H:%M:%S"


# ============================================================================
# Schema (additive, never drops existing tables)
# ============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS buildings (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    archived INTEGER DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS floors (
    id TEXT PRIMARY KEY,
    building_id TEXT NOT NULL,
    name TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS spaces (
    id TEXT PRIMARY KEY,
    floor_id TEXT NOT NULL,
    name TEXT NOT NULL,
    pin_x REAL,
    pin_y REAL,
    deleted_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'staff',
    phone TEXT,
    notification_prefs TEXT DEFAULT '{}',
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS building_assignments (
    id TEXT PRIMARY KEY,
    building_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS inspection_schedules (
    id TEXT PRIMARY KEY,
    building_id TEXT NOT NULL,
    checklist_template_id TEXT,
    frequency TEXT NOT NULL DEFAULT 'daily',
    day_of_week INTEGER,
    day_of_month INTEGER,
    time_of_day TEXT NOT NULL DEFAULT '09:00',
    assigned_to TEXT,
    enabled INTEGER DEFAULT 1,
    last_triggered_at TEXT,
    next_due_at TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS inspections (
    id TEXT PRIMARY KEY,
    space_id TEXT NOT NULL,
    inspector_id TEXT,
    status TEXT NOT NULL DEFAULT 'in_progress',
    started_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS deficiencies (
    id TEXT PRIMARY KEY,
    space_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'open',
    resolved_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    space_id TEXT NOT NULL,
    deficiency_id TEXT,
    assigned_to TEXT,
    created_by TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'open',
    due_date TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    message TEXT NOT NULL,
    link TEXT,
    read INTEGER DEFAULT 0,
    in_app INTEGER DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    table_name TEXT NOT NULL,
    action TEXT NOT NULL,
    row_count INTEGER,
    acting_as TEXT
);

CREATE INDEX IF NOT EXISTS idx_notifications_dedup ON notifications(user_id, type, created_at);
CREATE INDEX IF NOT EXISTS idx_tasks_status_due ON tasks(status, due_date);
CREATE INDEX IF NOT EXISTS idx_schedules_due ON inspection_schedules(enabled, next_due_at);
CREATE INDEX IF NOT EXISTS idx_inspections_space ON inspections(space_id, status);
"""

COLLECTIONS = (
    "buildings", "floors", "spaces", "users", "building_assignments",
    "inspection_schedules", "inspections", "deficiencies", "tasks",
    "notifications",
)


def init_database(db_path: str = None):
    """Create the schema if it doesn't exist."""
    conn = sqlite3.connect(str(db_path or get_config("db_path")))
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    conn.close()


# ============================================================================
# Timestamps (naive, server-local wall clock)
# ============================================================================

def format_ts(dt: Optional[datetime.datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.strftime(TS_FORMAT)


def parse_ts(value) -> Optional[datetime.datetime]:
    """Parse a stored timestamp. Returns None for empty or unreadable values."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value
    try:
        return datetime.datetime.fromisoformat(str(value)).replace(tzinfo=None)
    except ValueError:
        return None


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Filters
# ============================================================================

_OPERATORS = {
    "eq": "=",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any = None


def eq(column, value): return Filter(column, "eq", value)
def lt(column, value): return Filter(column, "lt", value)
def lte(column, value): return Filter(column, "lte", value)
def gt(column, value): return Filter(column, "gt", value)
def gte(column, value): return Filter(column, "gte", value)
def in_(column, values): return Filter(column, "in", tuple(values))
def is_null(column): return Filter(column, "is_null")
def not_null(column): return Filter(column, "not_null")
def contains(column, text): return Filter(column, "contains", text)


def _sql_value(value):
    if isinstance(value, datetime.datetime):
        return format_ts(value)
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ============================================================================
# Storage
# ============================================================================

class Storage:
    """
    Query-by-filter access to the facility collections.

    Opens one connection per call. Column names are checked against the live
    schema so filters and values can never inject SQL.
    """

    def __init__(self, db_path: str = None):
        self.db_path = str(db_path or get_config("db_path"))
        self._columns: Dict[str, List[str]] = {}

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def columns(self, table: str) -> List[str]:
        if table not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {table}")
        if table not in self._columns:
            conn = self._get_conn()
            try:
                rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
            finally:
                conn.close()
            self._columns[table] = [r["name"] for r in rows]
        return self._columns[table]

    def _check_column(self, table: str, column: str):
        if column not in self.columns(table):
            raise ValueError(f"Unknown column {table}.{column}")

    def _where(self, table: str, filters: Iterable[Filter]):
        self.columns(table)
        clauses, params = [], []
        for f in filters:
            self._check_column(table, f.column)
            if f.op in _OPERATORS:
                clauses.append(f"{f.column} {_OPERATORS[f.op]} ?")
                params.append(_sql_value(f.value))
            elif f.op == "in":
                if not f.value:
                    clauses.append("0")
                    continue
                clauses.append(f"{f.column} IN ({', '.join('?' for _ in f.value)})")
                params.extend(_sql_value(v) for v in f.value)
            elif f.op == "is_null":
                clauses.append(f"{f.column} IS NULL")
            elif f.op == "not_null":
                clauses.append(f"{f.column} IS NOT NULL")
            elif f.op == "contains":
                clauses.append(f"{f.column} LIKE ? ESCAPE '\\'")
                params.append(f"%{_escape_like(str(f.value))}%")
            else:
                raise ValueError(f"Unknown filter operator: {f.op}")
        sql = " WHERE " + " AND ".join(clauses) if clauses else ""
        return sql, params

    # --- Reads ---

    def select(self, table: str, filters: Iterable[Filter] = (),
               order_by: str = None, descending: bool = False,
               limit: int = None) -> List[Dict]:
        where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            self._check_column(table, order_by)
            sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [dict(r) for r in rows]

    def first(self, table: str, filters: Iterable[Filter] = ()) -> Optional[Dict]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, filters: Iterable[Filter] = ()) -> int:
        where, params = self._where(table, filters)
        conn = self._get_conn()
        try:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}{where}", params).fetchone()
        finally:
            conn.close()
        return row["cnt"]

    # --- Mutations ---

    def insert(self, table: str, values: Dict, acting_as: Optional[str] = None) -> Dict:
        row = dict(values)
        row.setdefault("id", new_id())
        for column in row:
            self._check_column(table, column)
        columns = list(row)
        sql = (f"INSERT INTO {table} ({', '.join(columns)}) "
               f"VALUES ({', '.join('?' for _ in columns)})")
        conn = self._get_conn()
        try:
            conn.execute(sql, [_sql_value(row[c]) for c in columns])
            self._audit(conn, table, "INSERT", 1, acting_as)
            conn.commit()
        finally:
            conn.close()
        return row

    def update(self, table: str, filters: Iterable[Filter], values: Dict,
               acting_as: Optional[str] = None) -> int:
        if not values:
            return 0
        for column in values:
            self._check_column(table, column)
        where, params = self._where(table, filters)
        sets = ", ".join(f"{c} = ?" for c in values)
        sql = f"UPDATE {table} SET {sets}{where}"
        conn = self._get_conn()
        try:
            cur = conn.execute(sql, [_sql_value(v) for v in values.values()] + params)
            changed = cur.rowcount
            if changed:
                self._audit(conn, table, "UPDATE", changed, acting_as)
            conn.commit()
        finally:
            conn.close()
        return changed

    def delete(self, table: str, filters: Iterable[Filter],
               acting_as: Optional[str] = None) -> List[str]:
        """Delete matching rows and return their ids."""
        where, params = self._where(table, filters)
        conn = self._get_conn()
        try:
            ids = [r["id"] for r in conn.execute(f"SELECT id FROM {table}{where}", params).fetchall()]
            if ids:
                conn.execute(f"DELETE FROM {table}{where}", params)
                self._audit(conn, table, "DELETE", len(ids), acting_as)
            conn.commit()
        finally:
            conn.close()
        return ids

    @staticmethod
    def _audit(conn, table, action, row_count, acting_as):
        conn.execute(
            "INSERT INTO audit_log (timestamp, table_name, action, row_count, acting_as) "
            "VALUES (?, ?, ?, ?, ?)",
            (format_ts(datetime.datetime.now()), table, action, row_count, acting_as or "SYSTEM"),
        )

    def audit_entries(self, table: str = None, limit: int = 100) -> List[Dict]:
        conn = self._get_conn()
        try:
            if table:
                rows = conn.execute(
                    "SELECT * FROM audit_log WHERE table_name = ? ORDER BY id DESC LIMIT ?",
                    (table, limit)).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        finally:
            conn.close()
        return [dict(r) for r in rows]


# ============================================================================
# Process-wide instance
# ============================================================================

_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Get or create the storage bound to the configured database path."""
    global _storage
    db_path = str(get_config("db_path"))
    if _storage is None or _storage.db_path != db_path:
        _storage = Storage(db_path)
    return _storage
