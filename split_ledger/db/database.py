import logging
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from split_ledger.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine for DATABASE_URL, falling back to SQLite for local development"""
    database_url = database_url or get_settings().database_url

    # Create engine with appropriate connect_args based on database type
    if database_url.startswith("postgresql"):
        return create_engine(database_url)

    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory SQLite: every session must share the one connection
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # SQLite configuration
    return create_engine(database_url, connect_args={"check_same_thread": False})


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables"""
    # Register the ORM tables on Base.metadata
    from split_ledger.models import expenses, groups  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
