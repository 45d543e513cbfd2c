"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that flow through the stock ledger: requests
    (MovementRequest, StockUpdate), enforcer output (MovementDraft),
    persisted records (StockMovementRecord, StockTransfer,
    InventoryItemRecord), batch results, and query results (MovementPage,
    analytics, trends, summary, alerts).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_row()`` / ``from_model()`` are boundary converters invoked only by
    stores and selectors.

Failure modes:
    - ValueError from ``StockMovementRecord.from_row`` when a stored row has
      an unknown movement type or a broken arithmetic link.  Readers treat
      this as a skippable decode failure.

Data flow:
    MovementRequest -> MovementDraft -> StockMovementRecord
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from stock_kernel.domain.values import (
    AlertSeverity,
    AlertType,
    Impact,
    MovementType,
    StockOperation,
)

if TYPE_CHECKING:
    from stock_kernel.models.inventory_item import InventoryItem as InventoryItemModel


# ---------------------------------------------------------------------------
# Balances and items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceSnapshot:
    """
    The balance fields of one inventory item at a point in time.

    Read fresh from the store for every write; never cached.
    """

    item_id: UUID
    current_stock: int
    reserved_stock: int
    is_active: bool = True

    @property
    def available_stock(self) -> int:
        return self.current_stock - self.reserved_stock


@dataclass(frozen=True)
class InventoryItemRecord:
    """Read-side DTO for an inventory item."""

    id: UUID
    product_id: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    minimum_threshold: int
    maximum_threshold: int | None
    is_active: bool
    is_visible_to_customers: bool
    last_stock_update: datetime | None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.available_stock <= self.minimum_threshold

    @classmethod
    def from_model(cls, model: InventoryItemModel) -> InventoryItemRecord:
        return cls(
            id=model.id,
            product_id=model.product_id,
            current_stock=model.current_stock,
            reserved_stock=model.reserved_stock,
            available_stock=model.available_stock,
            minimum_threshold=model.minimum_threshold,
            maximum_threshold=model.maximum_threshold,
            is_active=model.is_active,
            is_visible_to_customers=model.is_visible_to_customers,
            last_stock_update=model.last_stock_update,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# ---------------------------------------------------------------------------
# Write-side requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementRequest:
    """
    A request to move stock on one inventory item.

    Contract:
        ``quantity_change`` is signed.  ``performed_by`` is the acting user;
        None marks a system-generated movement.  When
        ``expected_previous_stock`` is given the write only succeeds if the
        item's stock still equals it.  ``idempotency_token`` makes retries of
        the same request return the movement already written.
    """

    inventory_item_id: UUID
    movement_type: MovementType
    quantity_change: int
    performed_by: UUID | None = None
    reason: str | None = None
    reference_order_id: str | None = None
    expected_previous_stock: int | None = None
    idempotency_token: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.movement_type, MovementType):
            object.__setattr__(self, "movement_type", MovementType(self.movement_type))
        if isinstance(self.quantity_change, bool) or not isinstance(
            self.quantity_change, int
        ):
            raise TypeError(
                f"quantity_change must be int, not {type(self.quantity_change).__name__}"
            )


@dataclass(frozen=True)
class StockUpdate:
    """
    Convenience balance update: add, subtract, or set an absolute level.

    ``movement_type`` defaults per operation (ADD -> restock, SUBTRACT and
    SET -> adjustment).
    """

    operation: StockOperation
    quantity: int
    movement_type: MovementType | None = None
    performed_by: UUID | None = None
    reason: str | None = None
    reference_order_id: str | None = None
    expected_previous_stock: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.operation, StockOperation):
            object.__setattr__(self, "operation", StockOperation(self.operation))
        if self.movement_type is not None and not isinstance(
            self.movement_type, MovementType
        ):
            object.__setattr__(self, "movement_type", MovementType(self.movement_type))
        if self.quantity < 0:
            raise ValueError("StockUpdate quantity must be non-negative")


@dataclass(frozen=True)
class MovementDraft:
    """
    A movement that passed the invariant enforcer and is ready to write.

    ``reserved_stock`` is the reserved level observed with the snapshot; the
    balance store uses it in the compare-and-set predicate.
    """

    inventory_item_id: UUID
    movement_type: MovementType
    quantity_change: int
    previous_stock: int
    new_stock: int
    reserved_stock: int


# ---------------------------------------------------------------------------
# Persisted movement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockMovementRecord:
    """
    A committed, immutable stock movement.

    Guarantees:
        - new_stock == previous_stock + quantity_change
        - quantity_change != 0
    """

    id: UUID
    inventory_item_id: UUID
    movement_type: MovementType
    quantity_change: int
    previous_stock: int
    new_stock: int
    performed_at: datetime
    reason: str | None = None
    performed_by: UUID | None = None
    reference_order_id: str | None = None
    batch_id: UUID | None = None
    idempotency_key: str | None = None
    created_at: datetime | None = None

    @property
    def is_system_movement(self) -> bool:
        return self.performed_by is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> StockMovementRecord:
        """
        Decode a ``stock_movements`` row.

        Raises:
            ValueError: unknown movement type or broken arithmetic link.
            KeyError: a required column is missing.
        """
        movement_type = MovementType(row["movement_type"])
        quantity_change = int(row["quantity_change"])
        previous_stock = int(row["previous_stock"])
        new_stock = int(row["new_stock"])
        if quantity_change == 0:
            raise ValueError(f"movement {row['id']} has zero quantity_change")
        if new_stock != previous_stock + quantity_change:
            raise ValueError(
                f"movement {row['id']} breaks arithmetic link: "
                f"{previous_stock} + {quantity_change} != {new_stock}"
            )
        return cls(
            id=row["id"],
            inventory_item_id=row["inventory_item_id"],
            movement_type=movement_type,
            quantity_change=quantity_change,
            previous_stock=previous_stock,
            new_stock=new_stock,
            performed_at=row["performed_at"],
            reason=row.get("reason"),
            performed_by=row.get("performed_by"),
            reference_order_id=row.get("reference_order_id"),
            batch_id=row.get("batch_id"),
            idempotency_key=row.get("idempotency_key"),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class StockTransfer:
    """The paired ``transfer`` movements that move stock between two items."""

    outgoing: StockMovementRecord
    incoming: StockMovementRecord

    @property
    def quantity(self) -> int:
        return self.incoming.quantity_change


# ---------------------------------------------------------------------------
# Batch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchItemError:
    """Failure of one request inside a batch."""

    index: int
    item_id: UUID | None
    error_code: str
    error_message: str
    retryable: bool = False


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of ``process_batch``.

    Guarantees:
        - len(success) + len(errors) == total_processed
        - every record in ``success`` carries ``batch_id``
    """

    batch_id: UUID
    success: tuple[StockMovementRecord, ...]
    errors: tuple[BatchItemError, ...]
    total_processed: int

    @property
    def succeeded(self) -> int:
        return len(self.success)

    @property
    def failed(self) -> int:
        return len(self.errors)


# ---------------------------------------------------------------------------
# Query inputs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementFilter:
    """Conjunctive movement search criteria.  None means "any"."""

    movement_type: MovementType | None = None
    performed_by: UUID | None = None
    inventory_item_id: UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.movement_type is not None and not isinstance(
            self.movement_type, MovementType
        ):
            object.__setattr__(self, "movement_type", MovementType(self.movement_type))


@dataclass(frozen=True)
class MovementPage:
    """
    Result of a movement read.

    ``total_processed`` counts the rows read from the log, including any
    ``skipped`` because they could not be decoded.
    """

    success: tuple[StockMovementRecord, ...]
    total_processed: int
    skipped: int = 0

    def __len__(self) -> int:
        return len(self.success)


@dataclass(frozen=True)
class MovementAnalyticsRow:
    """
    Aggregate of one movement type over an analytics window.

    ``total_quantity`` sums absolute changes; ``net_quantity`` sums signed
    changes.  ``period_start`` is set when the window is grouped by day,
    week or month.
    """

    movement_type: MovementType
    total_quantity: int
    movement_count: int
    average_quantity: Decimal
    net_quantity: int
    impact: Impact
    period_start: date | None = None


@dataclass(frozen=True)
class MovementTrendRow:
    """Net stock flow across all movement types in one time bucket."""

    period_start: date
    movement_count: int
    total_in: int
    total_out: int
    net_change: int


@dataclass(frozen=True)
class MovementAnalytics:
    """Analytics rows plus the count of log rows they were built from."""

    success: tuple[MovementAnalyticsRow, ...]
    total_processed: int
    skipped: int = 0


@dataclass(frozen=True)
class MovementTrends:
    success: tuple[MovementTrendRow, ...]
    total_processed: int
    skipped: int = 0


@dataclass(frozen=True)
class MovementSummary:
    """Totals of every movement on one item."""

    inventory_item_id: UUID
    total_in: int = 0
    total_out: int = 0
    net_change: int = 0
    movement_count: int = 0


@dataclass(frozen=True)
class StockAlert:
    inventory_item_id: UUID
    product_id: str
    alert_type: AlertType
    severity: AlertSeverity
    current_stock: int
    threshold: int | None
    message: str
    details: dict[str, Any] = field(default_factory=dict)
