"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the movement log: item history,
    filtered search, batch reconstruction, analytics, trends and summaries.
Architecture position: Kernel > Selectors.  Uses stores/movement_log for
    SQL, domain/analytics for aggregation, services/permission_gate for
    read authorization.

Invariants enforced:
    - Resilient decoding: a stored row that cannot be decoded is logged and
      skipped; it never fails the query.  ``total_processed`` counts every
      row read, skipped ones included.
    - Deterministic order: performed_at with id as tie-break.
    - Reads are idempotent: with no intervening write, the same call
      returns the same records in the same order.

Failure modes:
    - PermissionDeniedError for filter/batch/analytics/trend reads without
      ``read_movements``.
    - InvalidQueryError for bad limits, offsets, naive datetimes or
      inverted date ranges.
    - StoreUnavailableError on transient store failures.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy.engine import RowMapping
from sqlalchemy.orm import Session

from stock_kernel.db.deadline import statement_deadline
from stock_kernel.domain.analytics import aggregate_by_type, summarize, trend
from stock_kernel.domain.dtos import (
    MovementAnalytics,
    MovementFilter,
    MovementPage,
    MovementSummary,
    MovementTrends,
    StockMovementRecord,
)
from stock_kernel.domain.outcomes import Collected, Failure, collect
from stock_kernel.domain.values import MovementAction, TrendInterval
from stock_kernel.exceptions import InvalidQueryError
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.services.permission_gate import PermissionGate
from stock_kernel.services.telemetry import (
    TelemetrySink,
    report_failure,
    report_success,
)
from stock_kernel.stores.movement_log import MovementLog, MovementQuery

logger = get_logger("selectors.movement")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


class MovementQueryService(BaseSelector):
    """
    Read-only movement queries.

    Contract:
        Constructed with an explicit session and permission gate.  History
        and summary reads are item-scoped and ungated; cross-item reads
        require ``read_movements``.
    """

    def __init__(
        self,
        session: Session,
        permission_gate: PermissionGate,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        telemetry: TelemetrySink | None = None,
    ):
        super().__init__(session)
        self._gate = permission_gate
        self._log = MovementLog(session)
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size
        self._telemetry = telemetry

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def get_movement_history(
        self,
        item_id: UUID,
        limit: int | None = None,
        offset: int = 0,
        include_system_movements: bool = True,
        *,
        timeout_ms: int | None = None,
    ) -> MovementPage:
        """Movements of one item, newest first."""
        query = MovementQuery(
            inventory_item_id=item_id,
            exclude_system=not include_system_movements,
            descending=True,
            limit=self._page_size(limit),
            offset=self._offset(offset),
        )
        return self._page(self._read("get_movement_history", query, timeout_ms))

    def get_movements_by_filter(
        self,
        actor_id: UUID | None,
        movement_filter: MovementFilter,
        *,
        timeout_ms: int | None = None,
    ) -> MovementPage:
        """Movements matching every given criterion, newest first."""
        self._gate.require(actor_id, MovementAction.READ_MOVEMENTS)
        self._check_range(movement_filter.start_date, movement_filter.end_date)
        query = MovementQuery(
            inventory_item_id=movement_filter.inventory_item_id,
            movement_type=(
                movement_filter.movement_type.value
                if movement_filter.movement_type is not None
                else None
            ),
            performed_by=movement_filter.performed_by,
            start=movement_filter.start_date,
            end=movement_filter.end_date,
            descending=True,
            limit=self._page_size(movement_filter.limit),
        )
        return self._page(self._read("get_movements_by_filter", query, timeout_ms))

    def get_batch_movements(
        self,
        actor_id: UUID | None,
        batch_id: UUID,
        *,
        timeout_ms: int | None = None,
    ) -> MovementPage:
        """Every movement of a batch in chronological order."""
        self._gate.require(actor_id, MovementAction.READ_MOVEMENTS)
        query = MovementQuery(batch_id=batch_id, descending=False)
        return self._page(self._read("get_batch_movements", query, timeout_ms))

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def get_movement_analytics(
        self,
        actor_id: UUID | None,
        start_date: datetime,
        end_date: datetime,
        group_by: TrendInterval | str | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> MovementAnalytics:
        """Per-type totals over a window, optionally per day/week/month bucket."""
        self._gate.require(actor_id, MovementAction.READ_MOVEMENTS)
        interval = self._interval(group_by) if group_by is not None else None
        decoded = self._window("get_movement_analytics", start_date, end_date, timeout_ms)
        rows = aggregate_by_type(decoded.values, interval)
        return MovementAnalytics(
            success=tuple(rows),
            total_processed=decoded.total,
            skipped=len(decoded.failures),
        )

    def get_movement_trends(
        self,
        actor_id: UUID | None,
        start_date: datetime,
        end_date: datetime,
        group_by: TrendInterval | str = TrendInterval.DAY,
        *,
        timeout_ms: int | None = None,
    ) -> MovementTrends:
        """Net stock flow per bucket over a window."""
        self._gate.require(actor_id, MovementAction.READ_MOVEMENTS)
        interval = self._interval(group_by)
        decoded = self._window("get_movement_trends", start_date, end_date, timeout_ms)
        return MovementTrends(
            success=tuple(trend(decoded.values, interval)),
            total_processed=decoded.total,
            skipped=len(decoded.failures),
        )

    def get_movement_summary(
        self,
        item_id: UUID,
        *,
        timeout_ms: int | None = None,
    ) -> MovementSummary:
        """Total in, total out, net change and count for one item."""
        query = MovementQuery(inventory_item_id=item_id, descending=False)
        decoded = self._read("get_movement_summary", query, timeout_ms)
        return summarize(item_id, decoded.values)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read(
        self,
        operation: str,
        query: MovementQuery,
        timeout_ms: int | None,
    ) -> Collected[RowMapping, StockMovementRecord]:
        try:
            with statement_deadline(self.session, timeout_ms):
                rows = self._log.query_movements(query)
        except Exception as exc:
            report_failure(self._telemetry, operation, exc)
            raise
        decoded = self._decode(operation, rows)
        report_success(self._telemetry, operation)
        return decoded

    @staticmethod
    def _page(decoded: Collected[RowMapping, StockMovementRecord]) -> MovementPage:
        return MovementPage(
            success=decoded.values,
            total_processed=decoded.total,
            skipped=len(decoded.failures),
        )

    def _window(
        self,
        operation: str,
        start: datetime,
        end: datetime,
        timeout_ms: int | None,
    ) -> Collected[RowMapping, StockMovementRecord]:
        self._check_range(start, end)
        query = MovementQuery(start=start, end=end, descending=False)
        return self._read(operation, query, timeout_ms)

    def _decode(
        self,
        operation: str,
        rows: Sequence[RowMapping],
    ) -> Collected[RowMapping, StockMovementRecord]:
        def _skip(failure: Failure[RowMapping]) -> None:
            logger.warning(
                "movement_decode_skipped",
                extra={
                    "operation": operation,
                    "movement_id": str(failure.source.get("id")),
                    "error": str(failure.error),
                },
            )

        return collect(rows, StockMovementRecord.from_row, on_failure=_skip)

    def _page_size(self, limit: int | None) -> int:
        if limit is None:
            return self._default_page_size
        if limit <= 0:
            raise InvalidQueryError("limit", "must be positive")
        return min(limit, self._max_page_size)

    @staticmethod
    def _offset(offset: int) -> int:
        if offset < 0:
            raise InvalidQueryError("offset", "must be non-negative")
        return offset

    @staticmethod
    def _check_range(start: datetime | None, end: datetime | None) -> None:
        for name, value in (("start_date", start), ("end_date", end)):
            if value is not None and value.tzinfo is None:
                raise InvalidQueryError(name, "must be timezone-aware")
        if start is not None and end is not None and start > end:
            raise InvalidQueryError("start_date", "must not be after end_date")

    @staticmethod
    def _interval(group_by: TrendInterval | str) -> TrendInterval:
        try:
            return TrendInterval(group_by)
        except ValueError as exc:
            raise InvalidQueryError("group_by", f"unknown interval {group_by!r}") from exc
