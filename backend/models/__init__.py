from .base import Base, async_engine, async_session_factory, get_db
from .user import User
from .storage_item import StorageItem

__all__ = [
    "Base",
    "async_engine",
    "async_session_factory",
    "get_db",
    "User",
    "StorageItem",
]
