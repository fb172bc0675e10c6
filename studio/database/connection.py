"""
SQLAlchemy engine and session lifecycle for the studio database.

SQLite URLs (development and the test suite) share a single connection
through StaticPool so `sqlite://` keeps its in-memory schema between
sessions. Any other URL, PostgreSQL in production, gets a pre-pinged
pool. Services open work with `get_database().get_session()`, which
commits on clean exit and rolls back on any exception.
"""
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from studio.core.config import get_settings
from studio.core.logging_config import get_logger

logger = get_logger(__name__)


def _engine_options(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
    }


class DatabaseConnection:
    """
    Engine plus session factory for one database URL.

    Example:
        >>> db = DatabaseConnection("sqlite://")
        >>> with db.get_session() as session:
        ...     session.execute(text("SELECT 1"))
    """

    def __init__(self, connection_url: Optional[str] = None):
        self.settings = get_settings()
        db_url = connection_url or self.settings.database_url

        self.engine = create_engine(db_url, echo=False, **_engine_options(db_url))

        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

        logger.info(f"Engine ready: {make_url(db_url).render_as_string(hide_password=True)}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Unit of work: commit on clean exit, roll back and re-raise otherwise."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """Return True when the database answers SELECT 1."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            logger.debug("Database connection check: OK")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def close(self):
        """Dispose of the pool."""
        self.engine.dispose()
        logger.info("Database connections closed")


_db_connection: Optional[DatabaseConnection] = None


def get_database() -> DatabaseConnection:
    """Process-wide connection, built on first use from DATABASE_URL."""
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection


def reset_database() -> None:
    """Dispose of the singleton so the next call builds a fresh engine."""
    global _db_connection
    if _db_connection is not None:
        _db_connection.close()
    _db_connection = None
