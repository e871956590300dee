"""SQLAlchemy ORM models."""

from app.models.annonce import Annonce
from app.models.base import Base
from app.models.user import User

__all__ = ["Annonce", "Base", "User"]
