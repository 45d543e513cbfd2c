"""
Translation of driver and pool failures into kernel errors.

Timeouts, disconnects and pool exhaustion surface to callers as
StoreUnavailableError (retryable).  Integrity and programming errors are
left alone: they indicate a bug or a constraint the caller must handle.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from stock_kernel.exceptions import StoreUnavailableError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.errors")


@contextmanager
def store_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise transient store failures as StoreUnavailableError."""
    try:
        yield
    except PoolTimeoutError as exc:
        logger.warning("store_pool_exhausted", extra={"operation": operation})
        raise StoreUnavailableError(operation, "connection pool exhausted") from exc
    except OperationalError as exc:
        logger.warning(
            "store_operational_error",
            extra={"operation": operation, "error": str(exc.orig)},
        )
        raise StoreUnavailableError(operation, str(exc.orig)) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("store_disconnected", extra={"operation": operation})
            raise StoreUnavailableError(operation, "connection lost") from exc
        raise
