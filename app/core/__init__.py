"""Core app configuration, database, security and storage."""

from app.core.config import get_settings, settings
from app.core.database import get_db
from app.core.storage import get_storage

__all__ = ["get_settings", "settings", "get_db", "get_storage"]
