"""
Engine and session factory for the stock kernel.

One process-wide engine is configured with ``init_engine_from_url()``;
everything else asks this module for sessions.  PostgreSQL runs at
READ COMMITTED with an optional per-transaction ``statement_timeout``.
SQLite (development and tests) runs with the pysqlite driver's implicit
transaction handling disabled so SAVEPOINTs nest correctly.

Services never commit.  ``session_scope()`` is the unit of work: commit on
success, rollback on any exception.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, make_url, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_engine(url: str, echo: bool, timeout: int) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": timeout},
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def _postgres_engine(
    url: str,
    echo: bool,
    *,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_timeout: int,
    pool_recycle: int,
    statement_timeout_ms: int | None,
) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )

    if statement_timeout_ms:
        timeout_sql = text(f"SET LOCAL statement_timeout = {int(statement_timeout_ms)}")

        @event.listens_for(engine, "begin")
        def _apply_deadline(conn):
            conn.execute(timeout_sql)

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    statement_timeout_ms: int | None = None,
) -> Engine:
    """
    Build the process-wide engine, replacing (and disposing) any previous one.

    Pool settings and ``statement_timeout_ms`` apply to PostgreSQL only;
    ``pool_timeout`` doubles as the SQLite busy timeout.
    """
    global _engine, _session_factory

    reset_engine()

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = _sqlite_engine(database_url, echo, pool_timeout)
    else:
        _engine = _postgres_engine(
            database_url,
            echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            statement_timeout_ms=statement_timeout_ms,
        )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "backend": backend,
            "pool_size": pool_size,
            "statement_timeout_ms": statement_timeout_ms,
        },
    )
    return _engine


def _require_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the current engine.  One session per thread."""
    if _session_factory is None:
        raise RuntimeError("No session factory; call init_engine_from_url() first")
    return _session_factory


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Unit of work around kernel calls::

        with session_scope() as session:
            StockLedgerService(session, gate).record_movement(request)
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _kernel_metadata():
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401  registers the mapped tables

    return Base.metadata


def create_tables() -> None:
    _kernel_metadata().create_all(_require_engine())


def drop_tables() -> None:
    _kernel_metadata().drop_all(_require_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
