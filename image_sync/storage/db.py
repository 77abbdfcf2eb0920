from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def _make_sqlite_url(path: Union[str, Path]) -> str:
    p = Path(path)
    if not p.is_absolute():
        p = p.resolve()
    # Use forward slashes for SQLAlchemy URL on Windows
    return f"sqlite:///{p.as_posix()}"


def get_engine(path: Optional[Union[str, Path]] = None) -> Engine:
    """Return a SQLAlchemy Engine for the given path.

    - If path is None or 'memory', return an in-memory SQLite engine shared
      across threads.
    - If path is a filesystem path, ensure parent directories exist and return
      a file-based SQLite engine.
    """
    if path is None or path == "memory":
        return sa.create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return sa.create_engine(
        _make_sqlite_url(path),
        connect_args={"check_same_thread": False},
        future=True,
    )


def init_db(engine: Engine) -> sessionmaker:
    """Create the schema and return a session factory bound to ``engine``."""
    Base.metadata.create_all(engine)
    logger.info("storage.init_db completed; engine=%s", engine.url)
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Yield a Session that commits on success, rolls back on error and always closes."""
    sess: Session = factory()
    try:
        yield sess
        sess.commit()
    except Exception:
        sess.rollback()
        raise
    finally:
        sess.close()
