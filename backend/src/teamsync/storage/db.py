"""Database connection and session management."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from teamsync.logging_config import get_logger
from teamsync.settings import settings
from teamsync.storage.models import Base

logger = get_logger(__name__)


def _load_models() -> None:
    """Import every model module so its tables register on ``Base.metadata``."""
    import teamsync.activity.models  # noqa: F401
    import teamsync.identity.models  # noqa: F401
    import teamsync.invitations.models  # noqa: F401
    import teamsync.membership.models  # noqa: F401
    import teamsync.teams.models  # noqa: F401


def _serialize_sqlite_writers(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock when it begins.

    SQLite has no row locks and ignores ``FOR UPDATE``; without this, two
    read-then-write membership changes could interleave.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        self.engine: Engine = create_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        if self.engine.dialect.name == "sqlite":
            _serialize_sqlite_writers(self.engine)
        logger.info("database_initialized", dialect=self.engine.dialect.name)

    def create_tables(self) -> None:
        """Create all tables in the database."""
        _load_models()
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        _load_models()
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Commits when the block exits normally and rolls back on any
        exception, so a failed block never leaves a partial write behind.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def scope(self, session: Session | None = None) -> Generator[Session, None, None]:
        """Join the caller's transaction, or open an owned one.

        Operations that can run on their own or as one step of a larger
        unit of work take an optional ``session``. When given, the caller
        owns commit and rollback; otherwise this opens ``session()``.

        Args:
            session: Session of an enclosing transaction, if any

        Yields:
            Database session
        """
        if session is not None:
            yield session
            return
        with self.session() as owned:
            yield owned

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()


# Global database instance
db = Database()
