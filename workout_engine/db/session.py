from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from workout_engine.config.settings import settings
from workout_engine.scheduling.errors import SchedulingError


def _is_postgresql(url: str) -> bool:
    lowered = url.lower()
    return "postgresql" in lowered or "postgres" in lowered


def _validate_postgresql_driver() -> None:
    """Validate PostgreSQL driver is installed when using PostgreSQL.

    Must actually import psycopg2 (not just find_spec) because SQLAlchemy
    will try to import it when creating the engine.
    """
    try:
        import psycopg2  # noqa: F401

        logger.info("PostgreSQL driver (psycopg2) is available")
    except ImportError as e:
        logger.error("PostgreSQL driver (psycopg2) is not installed. Install the 'postgres' extra.")
        raise ImportError("PostgreSQL driver required. Install with: pip install psycopg2-binary") from e


# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        connect_args: dict = {}
        if _is_postgresql(settings.database_url):
            _validate_postgresql_driver()
            connect_args = {
                "connect_timeout": 10,
                "application_name": "workout-engine",
            }
        elif "sqlite" in settings.database_url.lower():
            logger.warning("Using SQLite database (local development only)")
            connect_args = {"check_same_thread": False}

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,  # Verify connections before using (important for cloud DBs)
            pool_recycle=3600,
        )
        logger.info("Database engine initialized")
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from workout_engine.db.models import Base

    Base.metadata.create_all(bind=_get_engine())
    logger.info("Database schema ensured")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits when the block exits cleanly, rolls back on any exception.
    SchedulingError is a business outcome, not a database failure, so it is
    re-raised without an error log.
    """
    session = _get_session_local()()
    try:
        yield session
        if session.dirty or session.new or session.deleted:
            session.flush()
        session.commit()
    except SchedulingError as e:
        logger.debug(f"{type(e).__name__} in session, rolling back")
        session.rollback()
        raise
    except IntegrityError as e:
        logger.warning(f"Constraint violation, rolling back: {e.orig}")
        session.rollback()
        raise
    except Exception as e:
        logger.error(
            f"Database session error, rolling back: {e}. "
            f"Error type: {type(e).__name__}, session state: "
            f"dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}"
        )
        session.rollback()
        raise
    finally:
        session.close()
