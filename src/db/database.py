"""SQLAlchemy engine and session handling for form storage."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def make_engine(database_url: str) -> Engine:
    """Create an engine for a database URL.

    SQLite connections are shared with FastAPI worker threads, and an
    in-memory database is pinned to a single connection so every session
    sees the same tables.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **kwargs)


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Forms are read back after the session closes
)


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """Session scope: commit on success, roll back on error.

    Usage:
        with get_db() as db:
            FormService(db).load_form(form_id)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create form, submission and user tables if missing."""
    from .models import Base

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.debug(f"Database ready at {bind.url.render_as_string(hide_password=True)}")
