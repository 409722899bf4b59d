"""
Database initialization and connection management utilities.

This module provides the engine factory and the ``Database`` handle used by
the record store, the migration store, the local registry, and the backup
manager. Each handle owns its engine, so several databases can be open in
the same process.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, inspect, pool, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from provider_migration.client.exceptions import ConfigurationError, StoreUnavailableError
from provider_migration.config import StateConfig
from provider_migration.migration.models import Base
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _sqlite_foreign_keys_on(dbapi_conn, connection_record):
    # Record-to-provider links rely on foreign keys, which SQLite leaves off
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


def create_database_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 3600,
) -> Engine:
    """
    Build the engine for the state database.

    SQLite files get a NullPool (each session opens its own connection, so
    concurrent batch workers never share one); in-memory SQLite keeps a
    single StaticPool connection. Server databases get a pre-pinged,
    recycled connection pool sized from ``StateConfig``.

    Args:
        database_url: SQLAlchemy URL
        echo: Log every SQL statement
        pool_size: Pooled connections (server databases only)
        max_overflow: Extra connections allowed beyond ``pool_size``
        pool_timeout: Seconds to wait for a pooled connection
        pool_recycle: Seconds after which a pooled connection is replaced

    Raises:
        ConfigurationError: If the URL is empty or the engine cannot be built
    """
    if not database_url:
        raise ConfigurationError("State database URL is empty (set state.db_path)")

    backend = database_url.split(":", 1)[0].split("+", 1)[0]
    options: dict = {"echo": echo}
    if backend == "sqlite":
        options["poolclass"] = (
            pool.StaticPool if _is_memory_sqlite(database_url) else pool.NullPool
        )
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
        )

    try:
        engine = create_engine(database_url, **options)
    except Exception as e:
        logger.error("Could not create the state database engine", backend=backend, error=str(e))
        raise ConfigurationError(f"Invalid state database URL {database_url!r}: {e}") from e

    if backend == "sqlite":
        event.listen(engine, "connect", _sqlite_foreign_keys_on)

    logger.info("State database engine created", backend=backend, pool=type(engine.pool).__name__)
    return engine


class Database:
    """
    Engine and session factory for one state database.

    Usage:
        db = Database.from_config(config.state)
        with db.session() as session:
            session.add(row)  # committed on exit
    """

    def __init__(self, database_url: str, echo: bool = False, **engine_options: int):
        self.database_url = database_url
        self.engine = create_database_engine(database_url, echo=echo, **engine_options)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_config(cls, config: StateConfig) -> "Database":
        return cls(
            config.database_url,
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_recycle=config.db_pool_recycle,
        )

    def create_all(self) -> None:
        """Create all tables if they don't exist. Idempotent."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("Failed to initialize database", error=str(e))
            raise StoreUnavailableError(f"Failed to initialize database: {e}") from e

        logger.info("Database initialized successfully", tables=len(Base.metadata.tables))

    def table_exists(self, table_name: str) -> bool:
        return inspect(self.engine).has_table(table_name)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        One unit of work: committed when the block exits normally, rolled
        back otherwise. SQLAlchemy failures surface as StoreUnavailableError;
        any other exception is re-raised unchanged after the rollback.
        """
        session = self._session_factory()

        try:
            yield session
            session.commit()

        except SQLAlchemyError as e:
            session.rollback()
            logger.error("State database operation rolled back", error=str(e))
            raise StoreUnavailableError(f"Database operation failed: {e}") from e

        except Exception:
            session.rollback()
            raise

        finally:
            session.close()

    def validate_connection(self) -> bool:
        """True when a trivial query succeeds against the state database."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("Database connection validation failed", error=str(e))
            return False

    def dispose(self) -> None:
        self.engine.dispose()
