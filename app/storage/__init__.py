"""
SpaceOps Storage
sqlite3-backed, filter-based access to the facility collections.
"""
from .database import (
    Storage, Filter, get_storage, init_database,
    format_ts, parse_ts, new_id,
    eq, lt, lte, gt, gte, in_, is_null, not_null, contains,
)

__all__ = [
    "Storage", "Filter", "get_storage", "init_database",
    "format_ts", "parse_ts", "new_id",
    "eq", "lt", "lte", "gt", "gte", "in_", "is_null", "not_null", "contains",
]
