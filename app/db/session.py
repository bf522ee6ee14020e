# File: app/db/session.py
"""
Database session management for LodgePay.

Usage:
    from app.db.session import get_db

    # In FastAPI dependency
    def some_endpoint(db: Session = Depends(get_db)):
        # Use db for database operations
        ...
"""

import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from app.core.config import settings
from app.db.models.base import Base

# Configure module logger
logger = logging.getLogger(__name__)


def build_engine(database_url: str, **kwargs) -> Engine:
    """
    Create an engine, enabling foreign keys for SQLite connections.

    Args:
        database_url: SQLAlchemy database URL
        **kwargs: Extra keyword arguments for ``create_engine``
    """
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})

    new_engine = create_engine(database_url, **kwargs)

    if database_url.startswith("sqlite"):

        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# -----------------------------------------------------------------------------
# FastAPI Dependency
# -----------------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session with proper resource management.

    Returns:
        SQLAlchemy Session for database operations
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -----------------------------------------------------------------------------
# Database Verification and Initialization
# -----------------------------------------------------------------------------


def verify_db_connection() -> bool:
    """
    Verify that we can connect to the database.

    Returns:
        True if connection succeeds, False otherwise
    """
    try:
        with engine.connect() as connection:
            result = connection.execute(text("SELECT 1")).scalar()
            logger.info(f"Database connection verified: {result}")
            return True
    except Exception as e:
        logger.error(f"Database connection verification failed: {e}")
        return False


def init_db(reset: bool = False, bind: Engine = None) -> None:
    """
    Create the database schema.

    Args:
        reset: Whether to drop every table first
        bind: Engine to use instead of the module engine
    """
    # Registers every model on Base.metadata
    import app.db.models  # noqa: F401

    target = bind or engine
    logger.info("Initializing database schema...")
    if reset:
        logger.info("Dropping all tables for reset...")
        Base.metadata.drop_all(bind=target)
    Base.metadata.create_all(bind=target)
    logger.info(f"Database schema initialized with {len(Base.metadata.tables)} tables")
