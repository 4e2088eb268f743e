"""
Database setup for Papal Conquest game sessions.

DATABASE_URL selects the database (e.g. Heroku Postgres). Without it, games are
kept in a SQLite file: CONQUEST_DB_PATH, or conquest.db next to this module.
"""

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)


def database_url() -> str:
    """Resolve the SQLAlchemy URL from the environment."""
    raw = os.environ.get("DATABASE_URL")
    if raw:
        # Heroku still hands out postgres://; SQLAlchemy 2.x only accepts postgresql://
        if raw.startswith("postgres://"):
            return raw.replace("postgres://", "postgresql://", 1)
        return raw
    path = os.environ.get("CONQUEST_DB_PATH") or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), "conquest.db")
    return f"sqlite:///{path}"


DATABASE_URL = database_url()

# Sessions are used from FastAPI's worker threads
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create the games table if it does not exist."""
    from . import models  # noqa: F401  registers Game on Base.metadata
    Base.metadata.create_all(bind=engine)
    logger.info("Game store ready (%s)", engine.url.get_backend_name())
