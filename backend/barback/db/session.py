"""
Database session management
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from barback.core.settings import settings
from barback.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.DATABASE_URL

# Log connection target (without credentials)
logger.info(
    f"Database connection: {connection_string.split('@')[-1]}",
    extra={"dialect": connection_string.split(':', 1)[0]},
)

_engine_kwargs = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
if connection_string.startswith("sqlite"):
    # Engine passes may be triggered from request threads
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_recycle"] = 3600

engine = create_engine(connection_string, **_engine_kwargs)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Transactional scope: commit on success, roll back on any exception.

    Usage from a sync job or script:
        with session_scope() as db:
            submit_count(db, submission)
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


def init_db() -> None:
    """Create all tables. Intended for local development and tests."""
    from barback.db.base import Base
    import barback.models  # noqa: F401 - register models with Base

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
