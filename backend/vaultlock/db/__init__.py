"""Database module for the remote profile store."""

from .connection import configure_db, close_db
from .profiles import ProfileRepository, ActivityLogRepository

__all__ = [
    "configure_db",
    "close_db",
    "ProfileRepository",
    "ActivityLogRepository",
]
