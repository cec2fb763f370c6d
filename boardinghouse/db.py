import logging
import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger("boardinghouse.db")

_DEFAULT_URL = "sqlite:///./data.db"

# DATABASE_URL points at the relational store (Postgres in production).
# A missing value is not fatal: we log and fall back to a local SQLite file so the API can still boot.
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
if not DATABASE_URL:
    logger.warning("DATABASE_URL is not set; falling back to local store at %s", _DEFAULT_URL)
    DATABASE_URL = _DEFAULT_URL


def is_sqlite() -> bool:
    return DATABASE_URL.startswith("sqlite")


# - SQLite (dev/tests): allow cross-thread access for the TestClient and threadpool handlers.
# - Server DBs: pooled connections with pre-ping so dropped connections are replaced transparently.
if is_sqlite():
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
    )

# One session per request; commits are always explicit
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator:
    """
    FastAPI dependency.

    Yields a database session for the lifetime of the request and guarantees it
    is closed afterwards, even if an exception is raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
