"""
Stock ledger -- atomic balance update plus movement record.

Responsibility:
    The only write path for stock.  ``record_movement`` authorizes, reads
    the balance, asks the invariant enforcer for a draft, then applies the
    compare-and-set and the movement insert inside one SAVEPOINT.  Either
    both rows change or neither does.

    Item lifecycle helpers (create, settings, deactivate, reserved stock)
    live here too, so every mutation of ``inventory_items`` goes through
    one service.

Architecture position:
    Kernel > Services.  Uses stores/, domain/, services/permission_gate and
    services/telemetry.  Flushes, never commits the outer transaction.

Invariants enforced:
    - No balance change without a movement (update_stock always records one;
      create_inventory_item books initial stock as a restock movement).
    - Same-item writers are serialized by compare-and-set on the balance.
    - A retried request with the same idempotency token returns the
      movement already written instead of applying it twice; a different
      request reusing the token is rejected.
    - A transfer books both legs or neither.

Failure modes:
    - PermissionDeniedError, ItemNotFoundError, ItemAlreadyExistsError
    - InvariantViolationError (enforcer rejection)
    - ConcurrentModificationError (stale snapshot or lost compare-and-set)
    - StoreUnavailableError (timeouts, disconnects, pool exhaustion)

Audit relevance:
    Every success and failure is logged and reported to the telemetry sink.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.db.deadline import statement_deadline
from stock_kernel.db.errors import store_errors
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    BalanceSnapshot,
    InventoryItemRecord,
    MovementDraft,
    MovementRequest,
    StockMovementRecord,
    StockTransfer,
    StockUpdate,
)
from stock_kernel.domain.invariant_enforcer import (
    MovementRejection,
    evaluate_movement,
    evaluate_replay,
    evaluate_reservation,
    evaluate_thresholds,
    evaluate_transfer,
    plan_stock_update,
)
from stock_kernel.domain.values import MovementAction, MovementType, StockOperation
from stock_kernel.exceptions import (
    ConcurrentModificationError,
    InvariantViolationError,
    ItemAlreadyExistsError,
    ItemNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.services.base import BaseService
from stock_kernel.services.permission_gate import PermissionGate
from stock_kernel.services.telemetry import (
    TelemetrySink,
    report_failure,
    report_success,
)
from stock_kernel.stores.balance_store import BalanceStore
from stock_kernel.stores.movement_log import MovementLog
from stock_kernel.utils.idempotency import generate_movement_key

logger = get_logger("services.stock_ledger")

T = TypeVar("T")


class StockLedgerService(BaseService):
    """
    Write-side service for stock balances.

    Contract:
        Constructed with an explicit session and permission gate.  Each
        public method runs in its own SAVEPOINT of the caller's transaction.

    Guarantees:
        - On success the returned movement's ``new_stock`` equals the item's
          ``current_stock`` as visible in the caller's transaction.
        - On failure no partial write is visible.

    Non-goals:
        - Does NOT retry conflicts; the caller decides.
        - Does NOT commit; wrap calls in ``session_scope()``.
    """

    def __init__(
        self,
        session: Session,
        permission_gate: PermissionGate,
        clock: Clock | None = None,
        telemetry: TelemetrySink | None = None,
        balance_store: BalanceStore | None = None,
        movement_log: MovementLog | None = None,
    ):
        super().__init__(session)
        self._gate = permission_gate
        self._clock = clock or SystemClock()
        self._telemetry = telemetry
        self._balances = balance_store or BalanceStore(session)
        self._log = movement_log or MovementLog(session)

    # =========================================================================
    # Movements
    # =========================================================================

    def record_movement(
        self,
        request: MovementRequest,
        *,
        batch_id: UUID | None = None,
        timeout_ms: int | None = None,
    ) -> StockMovementRecord:
        """Apply one movement atomically and return the committed record."""
        with LogContext.bind(
            actor_id=request.performed_by,
            item_id=request.inventory_item_id,
            batch_id=batch_id,
        ):
            return self._instrumented(
                "record_movement",
                lambda: self._record_movement(request, batch_id),
                timeout_ms,
            )

    def update_stock(
        self,
        item_id: UUID,
        update: StockUpdate,
        *,
        timeout_ms: int | None = None,
    ) -> InventoryItemRecord:
        """
        Add, subtract, or set an item's stock and return the updated item.

        Always goes through ``record_movement``; a SET is pinned to the
        balance it was computed from, so a concurrent change surfaces as
        ConcurrentModificationError instead of a wrong delta.
        """
        with LogContext.bind(actor_id=update.performed_by, item_id=item_id):
            return self._instrumented(
                "update_stock",
                lambda: self._update_stock(item_id, update),
                timeout_ms,
            )

    def transfer_stock(
        self,
        source_item_id: UUID,
        destination_item_id: UUID,
        quantity: int,
        *,
        performed_by: UUID | None = None,
        reason: str | None = None,
        reference_order_id: str | None = None,
        idempotency_token: str | None = None,
        batch_id: UUID | None = None,
        timeout_ms: int | None = None,
    ) -> StockTransfer:
        """
        Move ``quantity`` units from one item to another.

        Books a ``transfer`` movement of ``-quantity`` on the source and
        ``+quantity`` on the destination inside one SAVEPOINT.  If either
        leg is rejected or loses its compare-and-set, neither balance
        changes.  With an idempotency token, a retried transfer returns the
        legs already written.
        """
        with LogContext.bind(actor_id=performed_by, batch_id=batch_id):
            return self._instrumented(
                "transfer_stock",
                lambda: self._transfer_stock(
                    source_item_id,
                    destination_item_id,
                    quantity,
                    performed_by=performed_by,
                    reason=reason,
                    reference_order_id=reference_order_id,
                    idempotency_token=idempotency_token,
                    batch_id=batch_id,
                ),
                timeout_ms,
            )

    # =========================================================================
    # Item lifecycle
    # =========================================================================

    def create_inventory_item(
        self,
        product_id: str,
        *,
        initial_stock: int = 0,
        minimum_threshold: int = 0,
        maximum_threshold: int | None = None,
        is_visible_to_customers: bool = True,
        performed_by: UUID | None = None,
        item_id: UUID | None = None,
    ) -> InventoryItemRecord:
        """
        Create an inventory item.

        A positive ``initial_stock`` is booked as a ``restock`` movement so
        the movement log can reproduce the balance from zero.  The item row
        and that movement are written in one SAVEPOINT.
        """
        with LogContext.bind(actor_id=performed_by):
            return self._instrumented(
                "create_inventory_item",
                lambda: self._create_inventory_item(
                    product_id=product_id,
                    initial_stock=initial_stock,
                    minimum_threshold=minimum_threshold,
                    maximum_threshold=maximum_threshold,
                    is_visible_to_customers=is_visible_to_customers,
                    performed_by=performed_by,
                    item_id=item_id or uuid4(),
                ),
            )

    def update_item_settings(
        self,
        item_id: UUID,
        *,
        performed_by: UUID | None = None,
        minimum_threshold: int | None = None,
        maximum_threshold: int | None = None,
        clear_maximum_threshold: bool = False,
        is_visible_to_customers: bool | None = None,
        is_active: bool | None = None,
    ) -> InventoryItemRecord:
        """
        Change non-balance fields of an item.

        None leaves a field unchanged; ``clear_maximum_threshold=True``
        removes the maximum.  The resulting thresholds must satisfy
        ``0 <= minimum_threshold <= maximum_threshold``.
        """
        with LogContext.bind(actor_id=performed_by, item_id=item_id):
            return self._instrumented(
                "update_item_settings",
                lambda: self._update_item_settings(
                    item_id,
                    performed_by=performed_by,
                    minimum_threshold=minimum_threshold,
                    maximum_threshold=maximum_threshold,
                    clear_maximum_threshold=clear_maximum_threshold,
                    is_visible_to_customers=is_visible_to_customers,
                    is_active=is_active,
                ),
            )

    def deactivate_item(
        self,
        item_id: UUID,
        performed_by: UUID | None = None,
    ) -> InventoryItemRecord:
        """Soft-delete: items referenced by movements are never removed."""
        return self.update_item_settings(
            item_id,
            performed_by=performed_by,
            is_active=False,
            is_visible_to_customers=False,
        )

    def set_reserved_stock(
        self,
        item_id: UUID,
        reserved_stock: int,
        *,
        performed_by: UUID | None = None,
        expected_reserved_stock: int | None = None,
    ) -> InventoryItemRecord:
        """
        Compare-and-set the reserved level of an item.

        Reserved stock does not change ``current_stock`` and so produces no
        movement; ``available_stock`` is recomputed.
        """
        with LogContext.bind(actor_id=performed_by, item_id=item_id):
            return self._instrumented(
                "set_reserved_stock",
                lambda: self._set_reserved_stock(
                    item_id, reserved_stock, performed_by, expected_reserved_stock
                ),
            )

    # =========================================================================
    # Internals
    # =========================================================================

    def _instrumented(
        self,
        operation: str,
        fn: Callable[[], T],
        timeout_ms: int | None = None,
    ) -> T:
        try:
            with statement_deadline(self.session, timeout_ms):
                result = fn()
        except Exception as exc:
            report_failure(self._telemetry, operation, exc)
            raise
        report_success(self._telemetry, operation)
        return result

    def _record_movement(
        self,
        request: MovementRequest,
        batch_id: UUID | None,
    ) -> StockMovementRecord:
        self._gate.require(request.performed_by, MovementAction.RECORD_MOVEMENTS)

        idempotency_key = None
        if request.idempotency_token:
            idempotency_key = generate_movement_key(
                batch_id, request.inventory_item_id, request.idempotency_token
            )

        savepoint = self.session.begin_nested()
        try:
            if idempotency_key is not None:
                existing = self._replay(idempotency_key, request)
                if existing is not None:
                    savepoint.commit()
                    return existing
            snapshot = self._balances.get_balance(request.inventory_item_id)
            draft = self._enforce(snapshot, request)
            record = self._apply(draft, snapshot, request, batch_id, idempotency_key)
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if idempotency_key is not None:
                # Lost an insert race on the same idempotency key
                existing = self._replay(idempotency_key, request)
                if existing is not None:
                    return existing
            raise
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(record.id),
                "item_id": str(record.inventory_item_id),
                "movement_type": record.movement_type.value,
                "quantity_change": record.quantity_change,
                "previous_stock": record.previous_stock,
                "new_stock": record.new_stock,
                "batch_id": str(batch_id) if batch_id else None,
            },
        )
        return record

    def _enforce(
        self,
        snapshot: BalanceSnapshot,
        request: MovementRequest,
    ) -> MovementDraft:
        outcome = evaluate_movement(snapshot, request)
        if not isinstance(outcome, MovementRejection):
            return outcome

        logger.warning(
            "movement_rejected",
            extra={
                "item_id": str(snapshot.item_id),
                "rejection_kind": outcome.kind.value,
                "detail": outcome.detail,
                "movement_type": request.movement_type.value,
                "quantity_change": request.quantity_change,
            },
        )
        if outcome.is_conflict:
            raise ConcurrentModificationError(
                snapshot.item_id,
                expected_stock=request.expected_previous_stock,
                actual_stock=snapshot.current_stock,
            )
        raise InvariantViolationError(snapshot.item_id, outcome.kind.value, outcome.detail)

    def _apply(
        self,
        draft: MovementDraft,
        snapshot: BalanceSnapshot,
        request: MovementRequest,
        batch_id: UUID | None,
        idempotency_key: str | None,
    ) -> StockMovementRecord:
        now = self._clock.now()
        if not self._balances.compare_and_set_balance(
            snapshot,
            new_current_stock=draft.new_stock,
            updated_at=now,
        ):
            raise ConcurrentModificationError(
                snapshot.item_id, expected_stock=snapshot.current_stock
            )

        return self._log.insert_movement(
            draft,
            movement_id=uuid4(),
            performed_at=now,
            performed_by=request.performed_by,
            reason=request.reason,
            reference_order_id=request.reference_order_id,
            batch_id=batch_id,
            idempotency_key=idempotency_key,
        )

    def _replay(
        self,
        idempotency_key: str,
        request: MovementRequest,
    ) -> StockMovementRecord | None:
        row = self._log.find_by_idempotency_key(idempotency_key)
        if row is None:
            return None
        existing = StockMovementRecord.from_row(row)

        mismatch = evaluate_replay(existing, request)
        if mismatch is not None:
            logger.warning(
                "movement_rejected",
                extra={
                    "item_id": str(request.inventory_item_id),
                    "rejection_kind": mismatch.kind.value,
                    "detail": mismatch.detail,
                    "idempotency_key": idempotency_key,
                    "movement_id": str(existing.id),
                },
            )
            raise InvariantViolationError(
                request.inventory_item_id, mismatch.kind.value, mismatch.detail
            )

        logger.info(
            "movement_idempotent_replay",
            extra={"idempotency_key": idempotency_key, "movement_id": str(existing.id)},
        )
        return existing

    def _update_stock(self, item_id: UUID, update: StockUpdate) -> InventoryItemRecord:
        self._gate.require(update.performed_by, MovementAction.RECORD_MOVEMENTS)
        snapshot = self._balances.get_balance(item_id)
        request = plan_stock_update(snapshot, update)
        if (
            update.operation is StockOperation.SET
            and request.expected_previous_stock is None
        ):
            request = MovementRequest(
                inventory_item_id=request.inventory_item_id,
                movement_type=request.movement_type,
                quantity_change=request.quantity_change,
                performed_by=request.performed_by,
                reason=request.reason,
                reference_order_id=request.reference_order_id,
                expected_previous_stock=snapshot.current_stock,
            )
        self._record_movement(request, batch_id=None)
        return self._item_record(item_id)

    def _transfer_stock(
        self,
        source_item_id: UUID,
        destination_item_id: UUID,
        quantity: int,
        *,
        performed_by: UUID | None,
        reason: str | None,
        reference_order_id: str | None,
        idempotency_token: str | None,
        batch_id: UUID | None,
    ) -> StockTransfer:
        self._gate.require(performed_by, MovementAction.RECORD_MOVEMENTS)
        rejection = evaluate_transfer(source_item_id, destination_item_id, quantity)
        if rejection is not None:
            raise InvariantViolationError(
                source_item_id, rejection.kind.value, rejection.detail
            )

        legs = {
            source_item_id: MovementRequest(
                inventory_item_id=source_item_id,
                movement_type=MovementType.TRANSFER,
                quantity_change=-quantity,
                performed_by=performed_by,
                reason=reason or f"transfer to {destination_item_id}",
                reference_order_id=reference_order_id,
                idempotency_token=f"{idempotency_token}/out" if idempotency_token else None,
            ),
            destination_item_id: MovementRequest(
                inventory_item_id=destination_item_id,
                movement_type=MovementType.TRANSFER,
                quantity_change=quantity,
                performed_by=performed_by,
                reason=reason or f"transfer from {source_item_id}",
                reference_order_id=reference_order_id,
                idempotency_token=f"{idempotency_token}/in" if idempotency_token else None,
            ),
        }

        # Legs are written in item-id order so opposite transfers cannot deadlock
        recorded: dict[UUID, StockMovementRecord] = {}
        savepoint = self.session.begin_nested()
        try:
            for item_id in sorted(legs, key=str):
                recorded[item_id] = self._record_movement(legs[item_id], batch_id)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.warning(
                "transfer_rolled_back",
                extra={
                    "source_item_id": str(source_item_id),
                    "destination_item_id": str(destination_item_id),
                    "quantity": quantity,
                },
            )
            raise

        transfer = StockTransfer(
            outgoing=recorded[source_item_id],
            incoming=recorded[destination_item_id],
        )
        logger.info(
            "stock_transferred",
            extra={
                "source_item_id": str(source_item_id),
                "destination_item_id": str(destination_item_id),
                "quantity": quantity,
                "outgoing_movement_id": str(transfer.outgoing.id),
                "incoming_movement_id": str(transfer.incoming.id),
            },
        )
        return transfer

    def _create_inventory_item(
        self,
        *,
        product_id: str,
        initial_stock: int,
        minimum_threshold: int,
        maximum_threshold: int | None,
        is_visible_to_customers: bool,
        performed_by: UUID | None,
        item_id: UUID,
    ) -> InventoryItemRecord:
        self._gate.require(performed_by, MovementAction.RECORD_MOVEMENTS)
        if initial_stock < 0:
            raise InvariantViolationError(
                item_id, "NEGATIVE_RESULTING_STOCK", "initial_stock must be non-negative"
            )
        self._check_thresholds(item_id, minimum_threshold, maximum_threshold)

        exists = self.session.execute(
            select(InventoryItem.id).where(InventoryItem.product_id == product_id)
        ).first()
        if exists is not None:
            raise ItemAlreadyExistsError(product_id)

        now = self._clock.now()
        savepoint = self.session.begin_nested()
        try:
            item = InventoryItem(
                id=item_id,
                product_id=product_id,
                current_stock=0,
                reserved_stock=0,
                available_stock=0,
                minimum_threshold=minimum_threshold,
                maximum_threshold=maximum_threshold,
                is_active=True,
                is_visible_to_customers=is_visible_to_customers,
                last_stock_update=now,
                created_at=now,
                updated_at=now,
            )
            try:
                with store_errors("create_inventory_item"):
                    self.session.add(item)
                    self.session.flush()
            except IntegrityError as exc:
                raise ItemAlreadyExistsError(product_id) from exc

            if initial_stock > 0:
                self._record_movement(
                    MovementRequest(
                        inventory_item_id=item_id,
                        movement_type=MovementType.RESTOCK,
                        quantity_change=initial_stock,
                        performed_by=performed_by,
                        reason="initial stock",
                    ),
                    batch_id=None,
                )
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "inventory_item_created",
            extra={
                "item_id": str(item_id),
                "product_id": product_id,
                "initial_stock": initial_stock,
            },
        )
        return self._item_record(item_id)

    def _update_item_settings(
        self,
        item_id: UUID,
        *,
        performed_by: UUID | None,
        minimum_threshold: int | None,
        maximum_threshold: int | None,
        clear_maximum_threshold: bool,
        is_visible_to_customers: bool | None,
        is_active: bool | None,
    ) -> InventoryItemRecord:
        self._gate.require(performed_by, MovementAction.RECORD_MOVEMENTS)
        if clear_maximum_threshold and maximum_threshold is not None:
            raise InvariantViolationError(
                item_id,
                "INVALID_THRESHOLD",
                "maximum_threshold cannot be set and cleared at once",
            )

        item = self._load_item(item_id)
        if (
            minimum_threshold is not None
            or maximum_threshold is not None
            or clear_maximum_threshold
        ):
            minimum = item.minimum_threshold if minimum_threshold is None else minimum_threshold
            if clear_maximum_threshold:
                maximum = None
            elif maximum_threshold is not None:
                maximum = maximum_threshold
            else:
                maximum = item.maximum_threshold
            self._check_thresholds(item_id, minimum, maximum)
            item.minimum_threshold = minimum
            item.maximum_threshold = maximum
        if is_visible_to_customers is not None:
            item.is_visible_to_customers = is_visible_to_customers
        if is_active is not None:
            item.is_active = is_active
        item.updated_at = self._clock.now()

        with store_errors("update_item_settings"):
            self.session.flush()

        logger.info(
            "item_settings_updated",
            extra={
                "item_id": str(item_id),
                "minimum_threshold": item.minimum_threshold,
                "maximum_threshold": item.maximum_threshold,
                "is_active": item.is_active,
            },
        )
        return InventoryItemRecord.from_model(item)

    @staticmethod
    def _check_thresholds(
        item_id: UUID,
        minimum_threshold: int,
        maximum_threshold: int | None,
    ) -> None:
        rejection = evaluate_thresholds(minimum_threshold, maximum_threshold)
        if rejection is not None:
            raise InvariantViolationError(item_id, rejection.kind.value, rejection.detail)

    def _set_reserved_stock(
        self,
        item_id: UUID,
        reserved_stock: int,
        performed_by: UUID | None,
        expected_reserved_stock: int | None,
    ) -> InventoryItemRecord:
        self._gate.require(performed_by, MovementAction.RECORD_MOVEMENTS)
        savepoint = self.session.begin_nested()
        try:
            snapshot = self._balances.get_balance(item_id)
            if (
                expected_reserved_stock is not None
                and expected_reserved_stock != snapshot.reserved_stock
            ):
                raise ConcurrentModificationError(
                    item_id,
                    expected_stock=expected_reserved_stock,
                    actual_stock=snapshot.reserved_stock,
                )
            rejection = evaluate_reservation(snapshot, reserved_stock)
            if rejection is not None:
                raise InvariantViolationError(
                    item_id, rejection.kind.value, rejection.detail
                )
            if not self._balances.compare_and_set_balance(
                snapshot,
                new_current_stock=snapshot.current_stock,
                new_reserved_stock=reserved_stock,
                updated_at=self._clock.now(),
            ):
                raise ConcurrentModificationError(item_id)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "reserved_stock_set",
            extra={
                "item_id": str(item_id),
                "previous_reserved_stock": snapshot.reserved_stock,
                "reserved_stock": reserved_stock,
            },
        )
        return self._item_record(item_id)

    def _load_item(self, item_id: UUID) -> InventoryItem:
        with store_errors("load_item"):
            item = self.session.execute(
                select(InventoryItem)
                .where(InventoryItem.id == item_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _item_record(self, item_id: UUID) -> InventoryItemRecord:
        return InventoryItemRecord.from_model(self._load_item(item_id))
