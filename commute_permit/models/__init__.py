"""SQLAlchemy ORM models for the SQL record store."""

from .base import Base, TimestampMixin
from .records import StoreRecord

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Records
    "StoreRecord",
]
