"""
Database adapters.
"""
from .schema import migrate_schema
from .sqlite import Sqlite

__all__ = ["Sqlite", "migrate_schema"]
