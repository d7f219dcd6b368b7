"""Database module."""

from gotta_listen.db.database import (
    Database,
    close_database,
    get_database,
    get_db,
    open_database,
)
from gotta_listen.db.models import Base, User, UserSession

__all__ = [
    "Database",
    "open_database",
    "close_database",
    "get_database",
    "get_db",
    "Base",
    "User",
    "UserSession",
]
