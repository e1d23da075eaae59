"""
Session storage backends.
"""

from ..config import Settings, StorageMode, get_settings
from ..exceptions import ConfigurationError
from .base import (
    CompactionRecord,
    Entry,
    Session,
    SessionData,
    SessionStatus,
    SessionStore,
)
from .database import DatabaseStore
from .localfile import LocalFileStore


def create_store(mode: StorageMode, settings: Settings | None = None) -> SessionStore:
    """Create the store for a storage mode."""
    settings = settings or get_settings()

    if mode == "localfile":
        return LocalFileStore(settings.storage_dir)
    elif mode == "database":
        return DatabaseStore(settings.database_url)
    else:
        raise ConfigurationError(f"Unsupported storage mode: {mode}")


__all__ = [
    "CompactionRecord",
    "DatabaseStore",
    "Entry",
    "LocalFileStore",
    "Session",
    "SessionData",
    "SessionStatus",
    "SessionStore",
    "create_store",
]
