"""
Database session management.

Provides explicit ORM session handling with SQLAlchemy.
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stakeshame.core.config import Config
from stakeshame.core.errors import PersistenceError
from stakeshame.core.models import Base

logger = logging.getLogger(__name__)

READ_ONLY = "stakeshame_read_only"


@lru_cache(maxsize=8)
def _engine_for(database_path: str) -> Engine:
    db_path = Path(database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        # pysqlite must not open transactions on its own, SAVEPOINT relies on it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # Enable WAL mode for better concurrent access
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        # Writers take the write lock up front, a deferred transaction that
        # read first cannot wait for it and fails with SQLITE_BUSY instead
        if conn.get_execution_options().get(READ_ONLY):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def get_engine(config: Config) -> Engine:
    """
    Get the SQLAlchemy engine for the configured database.

    Uses SQLite with WAL mode. One engine per database path per process,
    so the watcher threads and request handlers share a pool.
    """
    return _engine_for(config.database_path)


def init_db(config: Config) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist.
    """
    engine = get_engine(config)
    Base.metadata.create_all(engine)
    logger.info(f"Database ready at {config.database_path}")


def get_session(config: Config) -> Session:
    """
    Create a new database session.

    Objects stay readable after commit so they can be returned to callers.
    Remember to close or use session_scope.
    """
    engine = get_engine(config)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    return SessionLocal()


@contextmanager
def session_scope(config: Config, read_only: bool = False) -> Generator[Session, None, None]:
    """
    Provide transactional scope around a series of operations.

    Store failures surface as PersistenceError, domain errors propagate
    unchanged. Either way nothing from the scope is committed.

    Scopes hold the database write lock from their first statement, so
    concurrent writers queue on the busy timeout. `read_only` scopes run
    on a WAL snapshot instead and never wait for a writer, which also
    makes them safe to open while another scope is active.

    Usage:
        with session_scope(config) as session:
            session.add(habit)
    """
    session = get_session(config)
    try:
        if read_only:
            session.connection(execution_options={READ_ONLY: True})
        yield session
        session.commit()
    except (OperationalError, DBAPIError) as e:
        session.rollback()
        if isinstance(e, IntegrityError):
            raise
        logger.error(f"Database error, rolled back: {e}")
        raise PersistenceError(str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
