from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, ensure_utc, utcnow
from src.database.engine import async_session, engine
from src.database.insert import insert_or_ignore
from src.database.session import get_db

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "async_session",
    "engine",
    "ensure_utc",
    "get_db",
    "insert_or_ignore",
    "utcnow",
]
