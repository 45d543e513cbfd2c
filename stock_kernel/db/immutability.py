"""
ORM-level immutability enforcement for the stock kernel.

Protected entities:

    Entity          | Rule                                       | Why
    ----------------|--------------------------------------------|---------------------------
    StockMovement   | never updated, never deleted               | it is the audit trail
    InventoryItem   | balance fields never changed via the ORM   | balances move only with a
                    |                                            | paired movement (CAS path)
    InventoryItem   | never deleted while movements reference it | history must stay resolvable

The balance store writes balances with a Core UPDATE, which does not fire
mapper events, so the ledger's own path is unaffected.  These listeners
catch everything else that goes through a Session.

Listeners are registered explicitly with ``register_immutability_listeners``
(applications call it at start-up; tests from conftest).
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm import attributes

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_stock_movement_immutability(mapper, connection, target):
    """Prevent any updates to StockMovement records."""
    _blocked(
        "StockMovement",
        target.id,
        "UPDATE",
        "Stock movements are immutable and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Prevent deletion of StockMovement records."""
    _blocked(
        "StockMovement",
        target.id,
        "DELETE",
        "Stock movements cannot be deleted",
    )


def _check_inventory_balance_immutability(mapper, connection, target):
    """Block ORM edits of balance fields; settings remain editable."""
    from stock_kernel.models.inventory_item import BALANCE_FIELDS

    for field_name in BALANCE_FIELDS:
        history = attributes.get_history(target, field_name)
        if history.has_changes():
            _blocked(
                "InventoryItem",
                target.id,
                "UPDATE",
                f"{field_name} may only change through a recorded stock movement",
            )


def _check_inventory_item_delete(mapper, connection, target):
    """Block deletion of an item that movements still reference."""
    from stock_kernel.models.stock_movement import StockMovement

    referenced = connection.execute(
        select(func.count())
        .select_from(StockMovement.__table__)
        .where(StockMovement.__table__.c.inventory_item_id == str(target.id))
    ).scalar_one()
    if referenced:
        _blocked(
            "InventoryItem",
            target.id,
            "DELETE",
            f"Item is referenced by {referenced} stock movements; deactivate it instead",
        )


def register_immutability_listeners():
    """Register all immutability enforcement event listeners."""
    from stock_kernel.models.inventory_item import InventoryItem
    from stock_kernel.models.stock_movement import StockMovement

    for target, event_name, fn in _listeners(InventoryItem, StockMovement):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _listeners(inventory_item, stock_movement):
    return (
        (stock_movement, "before_update", _check_stock_movement_immutability),
        (stock_movement, "before_delete", _check_stock_movement_delete),
        (inventory_item, "before_update", _check_inventory_balance_immutability),
        (inventory_item, "before_delete", _check_inventory_item_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate immutability.
    """
    from stock_kernel.models.inventory_item import InventoryItem
    from stock_kernel.models.stock_movement import StockMovement

    for target, event_name, fn in _listeners(InventoryItem, StockMovement):
        _safe_remove_listener(target, event_name, fn)
