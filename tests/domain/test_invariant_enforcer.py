"""
Tests for the invariant enforcer (stock_kernel/domain/invariant_enforcer.py).

Covers:
- Arithmetic link on accepted movements
- Zero quantity, negative stock, negative available stock
- Movement type direction
- Stale snapshots
- Reserved stock validation
- Stock range, idempotent replays, transfers and thresholds
- add/subtract/set planning
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import (
    BalanceSnapshot,
    MovementDraft,
    MovementRequest,
    StockMovementRecord,
    StockUpdate,
)
from stock_kernel.domain.invariant_enforcer import (
    MAX_STOCK_LEVEL,
    MovementRejection,
    RejectionKind,
    evaluate_movement,
    evaluate_replay,
    evaluate_reservation,
    evaluate_thresholds,
    evaluate_transfer,
    plan_stock_update,
)
from stock_kernel.domain.values import MovementType, StockOperation


def _snapshot(current=100, reserved=0) -> BalanceSnapshot:
    return BalanceSnapshot(item_id=uuid4(), current_stock=current, reserved_stock=reserved)


def _request(snapshot, movement_type, change, expected=None) -> MovementRequest:
    return MovementRequest(
        inventory_item_id=snapshot.item_id,
        movement_type=movement_type,
        quantity_change=change,
        expected_previous_stock=expected,
    )


class TestAcceptedMovements:
    def test_sale_computes_previous_and_new_stock(self):
        snapshot = _snapshot(current=100, reserved=10)
        draft = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -5))

        assert isinstance(draft, MovementDraft)
        assert draft.previous_stock == 100
        assert draft.new_stock == 95
        assert draft.reserved_stock == 10

    @pytest.mark.parametrize(
        "movement_type,change",
        [
            (MovementType.RESTOCK, 7),
            (MovementType.RELEASE, 3),
            (MovementType.SALE, -4),
            (MovementType.RESERVATION, -2),
            (MovementType.ADJUSTMENT, 6),
            (MovementType.ADJUSTMENT, -6),
            (MovementType.TRANSFER, 9),
            (MovementType.TRANSFER, -9),
        ],
    )
    def test_arithmetic_link_holds(self, movement_type, change):
        snapshot = _snapshot(current=50)
        draft = evaluate_movement(snapshot, _request(snapshot, movement_type, change))

        assert isinstance(draft, MovementDraft)
        assert draft.new_stock == draft.previous_stock + draft.quantity_change

    def test_can_drain_stock_to_zero(self):
        snapshot = _snapshot(current=5)
        draft = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -5))
        assert isinstance(draft, MovementDraft)
        assert draft.new_stock == 0

    def test_matching_expected_previous_stock_is_accepted(self):
        snapshot = _snapshot(current=50)
        draft = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -5, expected=50))
        assert isinstance(draft, MovementDraft)


class TestRejections:
    def test_zero_quantity(self):
        snapshot = _snapshot()
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.ADJUSTMENT, 0))

        assert isinstance(result, MovementRejection)
        assert result.kind is RejectionKind.ZERO_QUANTITY

    def test_negative_resulting_stock(self):
        snapshot = _snapshot(current=3)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -4))

        assert result.kind is RejectionKind.NEGATIVE_RESULTING_STOCK

    def test_negative_available_stock(self):
        snapshot = _snapshot(current=10, reserved=8)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -3))

        assert result.kind is RejectionKind.NEGATIVE_AVAILABLE_STOCK

    @pytest.mark.parametrize(
        "movement_type,change",
        [
            (MovementType.RESTOCK, -1),
            (MovementType.RELEASE, -1),
            (MovementType.SALE, 1),
            (MovementType.RESERVATION, 1),
        ],
    )
    def test_wrong_direction(self, movement_type, change):
        snapshot = _snapshot()
        result = evaluate_movement(snapshot, _request(snapshot, movement_type, change))

        assert result.kind is RejectionKind.WRONG_DIRECTION

    def test_stale_snapshot_is_a_conflict(self):
        snapshot = _snapshot(current=45)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -5, expected=50))

        assert result.kind is RejectionKind.STALE_SNAPSHOT
        assert result.is_conflict

    def test_invariant_rejections_are_not_conflicts(self):
        snapshot = _snapshot(current=1)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, -2))
        assert not result.is_conflict

    def test_zero_quantity_reported_before_direction(self):
        snapshot = _snapshot()
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.SALE, 0))
        assert result.kind is RejectionKind.ZERO_QUANTITY


class TestReservation:
    def test_valid_reservation(self):
        assert evaluate_reservation(_snapshot(current=10), 10) is None

    def test_negative_reservation(self):
        result = evaluate_reservation(_snapshot(current=10), -1)
        assert result.kind is RejectionKind.NEGATIVE_RESERVATION

    def test_reservation_above_current_stock(self):
        result = evaluate_reservation(_snapshot(current=10), 11)
        assert result.kind is RejectionKind.NEGATIVE_AVAILABLE_STOCK


class TestStockRange:
    def test_change_past_column_range(self):
        snapshot = _snapshot(current=0)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.RESTOCK, 2**63))

        assert result.kind is RejectionKind.STOCK_OUT_OF_RANGE

    def test_overflow_from_existing_stock(self):
        snapshot = _snapshot(current=MAX_STOCK_LEVEL)
        result = evaluate_movement(snapshot, _request(snapshot, MovementType.RESTOCK, 1))

        assert result.kind is RejectionKind.STOCK_OUT_OF_RANGE

    def test_exact_maximum_accepted(self):
        snapshot = _snapshot(current=1)
        draft = evaluate_movement(
            snapshot, _request(snapshot, MovementType.RESTOCK, MAX_STOCK_LEVEL - 1)
        )

        assert draft.new_stock == MAX_STOCK_LEVEL


class TestReplay:
    @staticmethod
    def _stored(movement_type=MovementType.SALE, change=-2, previous=10):
        return StockMovementRecord(
            id=uuid4(),
            inventory_item_id=uuid4(),
            movement_type=movement_type,
            quantity_change=change,
            previous_stock=previous,
            new_stock=previous + change,
            performed_at=datetime(2024, 1, 1, tzinfo=UTC),
        )

    def _retry(self, stored, movement_type=None, change=None, expected=None):
        return MovementRequest(
            inventory_item_id=stored.inventory_item_id,
            movement_type=movement_type or stored.movement_type,
            quantity_change=stored.quantity_change if change is None else change,
            expected_previous_stock=expected,
        )

    def test_identical_retry(self):
        stored = self._stored()
        assert evaluate_replay(stored, self._retry(stored)) is None

    def test_retry_with_original_expectation(self):
        stored = self._stored(previous=10)
        assert evaluate_replay(stored, self._retry(stored, expected=10)) is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"change": -3},
            {"movement_type": MovementType.RESERVATION},
            {"expected": 8},
        ],
    )
    def test_different_movement(self, overrides):
        stored = self._stored()
        result = evaluate_replay(stored, self._retry(stored, **overrides))

        assert result.kind is RejectionKind.IDEMPOTENCY_MISMATCH
        assert not result.is_conflict


class TestTransfer:
    def test_valid(self):
        assert evaluate_transfer(uuid4(), uuid4(), 5) is None

    def test_same_item(self):
        item_id = uuid4()
        assert evaluate_transfer(item_id, item_id, 5).kind is RejectionKind.INVALID_TRANSFER

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, quantity):
        result = evaluate_transfer(uuid4(), uuid4(), quantity)
        assert result.kind is RejectionKind.INVALID_TRANSFER


class TestThresholds:
    @pytest.mark.parametrize(
        "minimum,maximum",
        [(0, None), (5, 5), (5, 50), (0, MAX_STOCK_LEVEL)],
    )
    def test_valid(self, minimum, maximum):
        assert evaluate_thresholds(minimum, maximum) is None

    @pytest.mark.parametrize(
        "minimum,maximum",
        [(-1, None), (10, 9), (0, MAX_STOCK_LEVEL + 1), (MAX_STOCK_LEVEL + 1, None)],
    )
    def test_invalid(self, minimum, maximum):
        assert evaluate_thresholds(minimum, maximum).kind is RejectionKind.INVALID_THRESHOLD


class TestPlanStockUpdate:
    def test_add_defaults_to_restock(self):
        request = plan_stock_update(_snapshot(current=10), StockUpdate(StockOperation.ADD, 5))
        assert request.movement_type is MovementType.RESTOCK
        assert request.quantity_change == 5

    def test_subtract_is_negative_adjustment(self):
        request = plan_stock_update(_snapshot(current=10), StockUpdate("subtract", 4))
        assert request.movement_type is MovementType.ADJUSTMENT
        assert request.quantity_change == -4

    def test_set_computes_difference(self):
        request = plan_stock_update(_snapshot(current=10), StockUpdate(StockOperation.SET, 3))
        assert request.quantity_change == -7

    def test_explicit_movement_type_wins(self):
        update = StockUpdate(StockOperation.SUBTRACT, 2, movement_type=MovementType.SALE)
        request = plan_stock_update(_snapshot(current=10), update)
        assert request.movement_type is MovementType.SALE

    def test_negative_update_quantity_rejected(self):
        with pytest.raises(ValueError):
            StockUpdate(StockOperation.ADD, -1)
