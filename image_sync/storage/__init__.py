"""Storage package exports for SQLAlchemy helpers and the catalog store."""
from .catalog import CatalogStore  # noqa: F401
from .db import get_engine, init_db, session_scope  # noqa: F401
from .models import Base  # noqa: F401

__all__ = ["Base", "CatalogStore", "get_engine", "init_db", "session_scope"]
