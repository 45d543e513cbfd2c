"""
BatchProcessor -- bulk stock movements with per-item failure isolation.

Contract:
    ``process_batch()`` drives the stock ledger over a list of movement
    requests.  Each request runs in its own SAVEPOINT (inside the ledger),
    so one failure never aborts the rest of the batch.

Invariants enforced:
    - total_processed == len(requests)
    - len(success) + len(errors) == total_processed
    - every successful movement carries the batch's single batch_id
    - requests are processed sequentially, in input order

Failure modes:
    - BatchTooLargeError before any item is attempted when the batch
      exceeds ``max_batch_size``.
    - Per-item failures are captured as BatchItemError, never raised.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from uuid import UUID, uuid4

from stock_kernel.db.deadline import statement_deadline
from stock_kernel.domain.dtos import (
    BatchItemError,
    BatchResult,
    MovementRequest,
)
from stock_kernel.domain.outcomes import Failure, collect
from stock_kernel.exceptions import BatchTooLargeError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.stock_ledger import StockLedgerService
from stock_kernel.services.telemetry import (
    TelemetrySink,
    report_failure,
    report_success,
)

logger = get_logger("services.batch_processor")

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class BatchProcessor:
    """
    Bulk movement driver.

    Non-goals:
        - Not transactional across items: each item's write is atomic on
          its own and stays written even if later items fail.
        - Does NOT commit; the caller owns the outer transaction.
    """

    def __init__(
        self,
        ledger: StockLedgerService,
        max_batch_size: int | None = None,
        telemetry: TelemetrySink | None = None,
    ):
        self._ledger = ledger
        self._max_batch_size = max_batch_size
        self._telemetry = telemetry

    def process_batch(
        self,
        requests: Sequence[MovementRequest],
        batch_id: UUID | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> BatchResult:
        """
        Record every request under one batch id.

        ``timeout_ms`` caps each statement issued while the batch runs; an
        item whose statement overruns fails with STORE_UNAVAILABLE and the
        batch moves on.
        """
        requests = list(requests)
        if self._max_batch_size is not None and len(requests) > self._max_batch_size:
            report_failure(self._telemetry, "process_batch", "BATCH_TOO_LARGE")
            raise BatchTooLargeError(len(requests), self._max_batch_size)

        batch_id = batch_id or uuid4()
        started = time.monotonic()

        with LogContext.bind(batch_id=batch_id):
            logger.info(
                "batch_started",
                extra={"batch_id": str(batch_id), "item_count": len(requests)},
            )

            with statement_deadline(self._ledger.session, timeout_ms):
                outcome = collect(
                    requests,
                    lambda request: self._ledger.record_movement(request, batch_id=batch_id),
                    catch=(Exception,),
                    on_failure=self._log_item_failure,
                )

            errors = tuple(self._to_item_error(f) for f in outcome.failures)
            result = BatchResult(
                batch_id=batch_id,
                success=outcome.values,
                errors=errors,
                total_processed=len(requests),
            )

            logger.info(
                "batch_completed",
                extra={
                    "batch_id": str(batch_id),
                    "total_processed": result.total_processed,
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )

        if result.errors:
            report_failure(
                self._telemetry,
                "process_batch",
                f"{result.failed} of {result.total_processed} items failed",
            )
        else:
            report_success(self._telemetry, "process_batch")
        return result

    @staticmethod
    def _to_item_error(failure: Failure[MovementRequest]) -> BatchItemError:
        exc = failure.error
        return BatchItemError(
            index=failure.index,
            item_id=failure.source.inventory_item_id,
            error_code=getattr(exc, "code", UNHANDLED_EXCEPTION),
            error_message=str(exc),
            retryable=bool(getattr(exc, "retryable", False)),
        )

    @staticmethod
    def _log_item_failure(failure: Failure[MovementRequest]) -> None:
        exc = failure.error
        code = getattr(exc, "code", None)
        log_fn = logger.warning if code is not None else logger.error
        log_fn(
            "batch_item_failed",
            extra={
                "index": failure.index,
                "item_id": str(failure.source.inventory_item_id),
                "error_code": code or UNHANDLED_EXCEPTION,
                "error": str(exc),
            },
            exc_info=code is None,
        )
