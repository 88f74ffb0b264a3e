import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from split_ledger.config import Settings, configure_logging, get_settings
from split_ledger.db.database import create_db_engine, create_session_factory, init_db
from split_ledger.repositories.sqlalchemy_repository import SqlAlchemyLedgerRepository
from split_ledger.services.cache import CacheBackend, InMemoryCache

logger = logging.getLogger(__name__)


@dataclass
class LedgerContext:
    """Everything a caller needs to run the ledger services against a database"""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    cache: CacheBackend = field(default_factory=InMemoryCache)

    @contextmanager
    def repository(self) -> Iterator[SqlAlchemyLedgerRepository]:
        """Yield a repository bound to a fresh session, closed afterwards"""
        db = self.session_factory()
        try:
            yield SqlAlchemyLedgerRepository(db)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def create_ledger_context(
    settings: Optional[Settings] = None,
    cache: Optional[CacheBackend] = None,
) -> LedgerContext:
    """Configure logging, connect to the database and create the tables"""
    settings = settings or get_settings()
    configure_logging(settings)

    engine = create_db_engine(settings.database_url)
    init_db(engine)

    logger.info(f"Ledger ready on {engine.url.render_as_string(hide_password=True)}")
    return LedgerContext(
        settings=settings,
        engine=engine,
        session_factory=create_session_factory(engine),
        cache=cache or InMemoryCache(),
    )
