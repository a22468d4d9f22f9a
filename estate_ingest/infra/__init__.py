"""Infra layer: SQLite storage and the per-collection stores."""

from .jobs import JobStore
from .listings import ListingStore
from .optouts import OptOutStore
from .sources import SourceRegistry
from .storage import SQLiteManager

__all__ = ["JobStore", "ListingStore", "OptOutStore", "SQLiteManager", "SourceRegistry"]
