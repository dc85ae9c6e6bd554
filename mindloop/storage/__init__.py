"""Persistent storage for mindloop."""

from mindloop.storage.schema import ALLOWED_TABLES, SCHEMA_VERSION
from mindloop.storage.sqlite import SQLiteStorage

__all__ = ["ALLOWED_TABLES", "SCHEMA_VERSION", "SQLiteStorage"]
