"""
Database connection and session management for BPMN Admin.

Provides:
- SessionLocal: Factory for creating database sessions
- get_db(): Context manager for DB sessions
- engine: SQLAlchemy engine instance
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings

DATABASE_URL = get_settings().database_url

# pool_pre_ping=True ensures connections are valid before using them
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=False  # Set to True for SQL query logging
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            template = db.get(WorkflowTemplate, 123)
            db.add(history)
            db.commit()

    The session is automatically closed when exiting the context,
    and rolled back if an exception occurs.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_session() -> Session:
    """
    Get a new database session (without context manager).

    Note: You must manually close the session after use.
    Prefer using get_db() context manager when possible.
    """
    return SessionLocal()
