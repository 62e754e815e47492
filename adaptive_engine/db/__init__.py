"""SQLAlchemy persistence for review state, the item catalog and pattern snapshots."""

from .database import Database
from .models import Base, ItemRow, KeyValueRow, ReviewStateRow
from .stores import SqlKeyValueStore, SqlMasteryStore

__all__ = [
    "Base",
    "Database",
    "ItemRow",
    "KeyValueRow",
    "ReviewStateRow",
    "SqlKeyValueStore",
    "SqlMasteryStore",
]
