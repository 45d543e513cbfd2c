"""
Per-call statement deadlines.

``statement_deadline(session, timeout_ms)`` caps every statement issued in
its block.  On PostgreSQL the cap is ``SET LOCAL statement_timeout`` inside
a SAVEPOINT: rolling back the savepoint discards the setting, and on
success the previous value is restored before the savepoint is released,
so the deadline never outlives the block.  Other backends have no
server-side statement timeout and run the block unchanged.

A statement that overruns is cancelled by the server; store_errors turns
the resulting OperationalError into StoreUnavailableError.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session

from stock_kernel.db.errors import store_errors

_SHOW_TIMEOUT = text("SHOW statement_timeout")
_RESTORE_TIMEOUT = text("SELECT set_config('statement_timeout', :value, true)")


def supports_statement_timeout(session: Session) -> bool:
    return session.get_bind().dialect.name == "postgresql"


@contextmanager
def statement_deadline(session: Session, timeout_ms: int | None) -> Iterator[None]:
    """
    Run the block with a ``timeout_ms`` millisecond deadline per statement.

    None means no per-call deadline (the engine-wide one, if any, applies).

    Raises:
        ValueError: ``timeout_ms`` is not a positive integer.
    """
    if timeout_ms is None:
        yield
        return
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        raise ValueError(f"timeout_ms must be a positive integer, got {timeout_ms!r}")
    if not supports_statement_timeout(session):
        yield
        return

    savepoint = session.begin_nested()
    try:
        with store_errors("statement_deadline"):
            previous = session.execute(_SHOW_TIMEOUT).scalar_one()
            session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        yield
        with store_errors("statement_deadline"):
            session.execute(_RESTORE_TIMEOUT, {"value": previous})
    except Exception:
        savepoint.rollback()
        raise
    savepoint.commit()
