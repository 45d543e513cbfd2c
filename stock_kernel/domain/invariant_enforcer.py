"""
Invariant enforcer -- validates a proposed movement against its balance.

Responsibility:
    Given the balance snapshot that precedes a write and the requested
    movement, either compute the exact previous/new stock for the movement
    (MovementDraft) or reject it with a typed reason (MovementRejection).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by the stock
    ledger before it touches the store.

Invariants enforced:
    - new_stock == previous_stock + quantity_change
    - quantity_change != 0
    - new_stock >= 0
    - new_stock - reserved_stock >= 0 (available never negative)
    - sign of quantity_change agrees with the movement type direction
    - caller's expected previous stock matches the snapshot
    - new_stock fits a BIGINT column (MAX_STOCK_LEVEL)
    - a replayed idempotency token describes the same movement it did first

Failure modes:
    None raised.  Every failure is returned as a MovementRejection.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from uuid import UUID

from stock_kernel.domain.dtos import (
    BalanceSnapshot,
    MovementDraft,
    MovementRequest,
    StockMovementRecord,
    StockUpdate,
)
from stock_kernel.domain.values import MovementType, StockOperation

# Largest value a BIGINT stock column holds
MAX_STOCK_LEVEL = 2**63 - 1


@unique
class RejectionKind(str, Enum):
    ZERO_QUANTITY = "ZERO_QUANTITY"
    NEGATIVE_RESULTING_STOCK = "NEGATIVE_RESULTING_STOCK"
    NEGATIVE_AVAILABLE_STOCK = "NEGATIVE_AVAILABLE_STOCK"
    WRONG_DIRECTION = "WRONG_DIRECTION"
    STALE_SNAPSHOT = "STALE_SNAPSHOT"
    NEGATIVE_RESERVATION = "NEGATIVE_RESERVATION"
    STOCK_OUT_OF_RANGE = "STOCK_OUT_OF_RANGE"
    IDEMPOTENCY_MISMATCH = "IDEMPOTENCY_MISMATCH"
    INVALID_TRANSFER = "INVALID_TRANSFER"
    INVALID_THRESHOLD = "INVALID_THRESHOLD"


@dataclass(frozen=True)
class MovementRejection:
    kind: RejectionKind
    detail: str

    @property
    def is_conflict(self) -> bool:
        """Stale snapshots are concurrency conflicts, not invalid requests."""
        return self.kind is RejectionKind.STALE_SNAPSHOT


def evaluate_movement(
    snapshot: BalanceSnapshot,
    proposal: MovementRequest,
) -> MovementDraft | MovementRejection:
    """
    Validate ``proposal`` against ``snapshot``.

    Checks run in a fixed order so the reported reason is deterministic:
    zero quantity, direction, stale snapshot, resulting stock, stock
    range, available stock.
    """
    change = proposal.quantity_change
    movement_type = proposal.movement_type

    if change == 0:
        return MovementRejection(
            RejectionKind.ZERO_QUANTITY,
            "quantity_change must be non-zero",
        )

    if not movement_type.permits(change):
        return MovementRejection(
            RejectionKind.WRONG_DIRECTION,
            f"{movement_type.value} movements must {movement_type.direction.value} "
            f"stock, got quantity_change {change}",
        )

    expected = proposal.expected_previous_stock
    if expected is not None and expected != snapshot.current_stock:
        return MovementRejection(
            RejectionKind.STALE_SNAPSHOT,
            f"expected previous stock {expected}, current stock is "
            f"{snapshot.current_stock}",
        )

    previous_stock = snapshot.current_stock
    new_stock = previous_stock + change
    if new_stock < 0:
        return MovementRejection(
            RejectionKind.NEGATIVE_RESULTING_STOCK,
            f"stock {previous_stock} cannot absorb change {change}",
        )

    if new_stock > MAX_STOCK_LEVEL:
        return MovementRejection(
            RejectionKind.STOCK_OUT_OF_RANGE,
            f"stock {previous_stock} plus change {change} exceeds {MAX_STOCK_LEVEL}",
        )

    if new_stock - snapshot.reserved_stock < 0:
        return MovementRejection(
            RejectionKind.NEGATIVE_AVAILABLE_STOCK,
            f"new stock {new_stock} is below reserved stock "
            f"{snapshot.reserved_stock}",
        )

    return MovementDraft(
        inventory_item_id=snapshot.item_id,
        movement_type=movement_type,
        quantity_change=change,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reserved_stock=snapshot.reserved_stock,
    )


def evaluate_reservation(
    snapshot: BalanceSnapshot,
    new_reserved_stock: int,
) -> MovementRejection | None:
    """Validate a change of reserved stock.  Returns None when acceptable."""
    if new_reserved_stock < 0:
        return MovementRejection(
            RejectionKind.NEGATIVE_RESERVATION,
            f"reserved stock cannot be negative, got {new_reserved_stock}",
        )
    if snapshot.current_stock - new_reserved_stock < 0:
        return MovementRejection(
            RejectionKind.NEGATIVE_AVAILABLE_STOCK,
            f"reserved stock {new_reserved_stock} exceeds current stock "
            f"{snapshot.current_stock}",
        )
    return None


def evaluate_replay(
    existing: StockMovementRecord,
    proposal: MovementRequest,
) -> MovementRejection | None:
    """
    Check that a request reusing an idempotency token repeats the movement
    stored under it.  Returns None when it does.
    """
    expected = proposal.expected_previous_stock
    if (
        existing.movement_type is proposal.movement_type
        and existing.quantity_change == proposal.quantity_change
        and (expected is None or expected == existing.previous_stock)
    ):
        return None
    return MovementRejection(
        RejectionKind.IDEMPOTENCY_MISMATCH,
        f"token already used for {existing.movement_type.value} "
        f"{existing.quantity_change:+d} from stock {existing.previous_stock}; "
        f"request is {proposal.movement_type.value} {proposal.quantity_change:+d}",
    )


def evaluate_transfer(
    source_item_id: UUID,
    destination_item_id: UUID,
    quantity: int,
) -> MovementRejection | None:
    if source_item_id == destination_item_id:
        return MovementRejection(
            RejectionKind.INVALID_TRANSFER,
            "source and destination must be different items",
        )
    if quantity <= 0:
        return MovementRejection(
            RejectionKind.INVALID_TRANSFER,
            f"transfer quantity must be positive, got {quantity}",
        )
    return None


def evaluate_thresholds(
    minimum_threshold: int,
    maximum_threshold: int | None,
) -> MovementRejection | None:
    """Validate an item's restock thresholds as they will be stored."""
    if not 0 <= minimum_threshold <= MAX_STOCK_LEVEL:
        return MovementRejection(
            RejectionKind.INVALID_THRESHOLD,
            f"minimum_threshold must be between 0 and {MAX_STOCK_LEVEL}, "
            f"got {minimum_threshold}",
        )
    if maximum_threshold is not None and not (
        minimum_threshold <= maximum_threshold <= MAX_STOCK_LEVEL
    ):
        return MovementRejection(
            RejectionKind.INVALID_THRESHOLD,
            f"maximum_threshold {maximum_threshold} must be between "
            f"minimum_threshold {minimum_threshold} and {MAX_STOCK_LEVEL}",
        )
    return None


_DEFAULT_UPDATE_TYPES: dict[StockOperation, MovementType] = {
    StockOperation.ADD: MovementType.RESTOCK,
    StockOperation.SUBTRACT: MovementType.ADJUSTMENT,
    StockOperation.SET: MovementType.ADJUSTMENT,
}


def plan_stock_update(
    snapshot: BalanceSnapshot,
    update: StockUpdate,
) -> MovementRequest:
    """
    Translate an add/subtract/set update into a signed movement request.

    SET computes the difference from the snapshot; a SET to the current
    level yields a zero change, which the enforcer rejects.
    """
    if update.operation is StockOperation.ADD:
        change = update.quantity
    elif update.operation is StockOperation.SUBTRACT:
        change = -update.quantity
    else:
        change = update.quantity - snapshot.current_stock

    return MovementRequest(
        inventory_item_id=snapshot.item_id,
        movement_type=update.movement_type or _DEFAULT_UPDATE_TYPES[update.operation],
        quantity_change=change,
        performed_by=update.performed_by,
        reason=update.reason,
        reference_order_id=update.reference_order_id,
        expected_previous_stock=update.expected_previous_stock,
    )
