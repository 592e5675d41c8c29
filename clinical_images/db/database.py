"""Database configuration and session management."""

import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()

# Ensure a data directory exists if using SQLite
if settings.database_url.startswith("sqlite:///"):
    # Extract a path from sqlite URL (sqlite:///path/to/db.sqlite3)
    db_path = settings.database_url.replace("sqlite:///", "")
    if db_path and db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

_is_sqlite = settings.database_url.startswith("sqlite")

# Create engine
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    echo=settings.database_echo,  # Log SQL statements if configured
    pool_pre_ping=True,
    **({} if _is_sqlite else {"pool_size": 5, "max_overflow": 10, "pool_recycle": 3600}),
)

# Create sessionmaker
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def get_db() -> Generator[Session, None, None]:
    """Dependency to get database session.

    Yields a database session and ensures it's closed after use.
    This should be used as a FastAPI dependency.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
