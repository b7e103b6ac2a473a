"""Storage layer: engine, sessions and declarative base."""

from teamsync.storage.db import Database, db
from teamsync.storage.models import Base, utcnow

__all__ = ["Base", "Database", "db", "utcnow"]
