"""
Ledger store: database engine and session management.
The store is constructed explicitly and injected into the services that
need it; there is no module-level engine.
SQLite databases run in Write-Ahead Logging (WAL) mode, and write units of
work take the database write lock up front with BEGIN IMMEDIATE.
"""

from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine

from config import Settings, get_settings
from errors import ConcurrentModificationError, PersistenceError

logger = logging.getLogger(__name__)

# Execution option marking connections that belong to a write unit of work
WRITE_OPTION = "ledger_write"

# Driver errors meaning the database aborted the transaction to resolve a
# lock conflict: MySQL deadlock (1213), PostgreSQL serialization failure
# (40001) and deadlock (40P01)
MYSQL_CONFLICT_CODES = {1213}
SQLSTATE_CONFLICT_CODES = {"40001", "40P01"}


def is_conflict_abort(error: DBAPIError) -> bool:
    """True when the driver error is a deadlock or serialization failure."""
    orig = error.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in SQLSTATE_CONFLICT_CODES:
        return True
    args = getattr(orig, "args", ())
    return bool(args) and args[0] in MYSQL_CONFLICT_CODES


def _configure_sqlite(engine: Engine, busy_timeout_ms: int) -> None:
    """
    Take over transaction control from pysqlite.
    Writers open with BEGIN IMMEDIATE so the read-modify-write cycle on a
    holding is serialized; readers use a deferred BEGIN.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop pysqlite from emitting its own BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


class LedgerStore:
    """
    Durable record of transactions and holdings.
    Owns the engine; created once at process start and closed on shutdown.
    """

    def __init__(self, database_url: str, echo: bool = False, busy_timeout_ms: int = 5000):
        self.database_url = database_url
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args = {
                "check_same_thread": False,  # Allow use across threads
                "timeout": busy_timeout_ms / 1000,
            }

        self.engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        if self.is_sqlite:
            _configure_sqlite(self.engine, busy_timeout_ms)
            logger.info("SQLite ledger store opened with WAL mode and immediate write locks")

        self._write_engine = self.engine.execution_options(**{WRITE_OPTION: True})

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LedgerStore":
        """Build a store from application settings."""
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            echo=settings.db_echo,
            busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    @property
    def supports_row_locks(self) -> bool:
        """SELECT ... FOR UPDATE is honoured (SQLite relies on BEGIN IMMEDIATE instead)."""
        return not self.is_sqlite

    def create_schema(self) -> None:
        """Create all ledger tables and indexes if they do not exist."""
        import models  # noqa: F401  (registers the table metadata)

        try:
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create ledger schema: {e}") from e
        logger.info("Ledger schema initialized")

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """
        Open a write transaction that commits on success and rolls back on
        any exception. Store failures are raised as PersistenceError; a
        unique-constraint violation, deadlock or serialization failure is
        raised as ConcurrentModificationError. Nothing was committed in
        either case.
        """
        try:
            with Session(self._write_engine, expire_on_commit=False) as session:
                with session.begin():
                    yield session
        except IntegrityError as e:
            logger.warning(f"Unit of work hit a uniqueness conflict: {e.orig}")
            raise ConcurrentModificationError(
                "Holding was modified by a concurrent transaction"
            ) from e
        except DBAPIError as e:
            if not is_conflict_abort(e):
                logger.error(f"Unit of work failed: {e}")
                raise PersistenceError(f"Ledger store failure: {e}") from e
            logger.warning(f"Unit of work was aborted by a lock conflict: {e.orig}")
            raise ConcurrentModificationError(
                "Unit of work was aborted by a concurrent transaction"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Unit of work failed: {e}")
            raise PersistenceError(f"Ledger store failure: {e}") from e

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Open a read-only session; store failures are raised as PersistenceError."""
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Ledger read failed: {e}")
            raise PersistenceError(f"Ledger store failure: {e}") from e

    def close(self) -> None:
        """Release all pooled connections."""
        self.engine.dispose()
        logger.info("Ledger store closed")

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
