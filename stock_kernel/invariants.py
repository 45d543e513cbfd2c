"""
Stock ledger invariants.

These invariants are structural law.  They are enforced by the invariant
enforcer before any write, by check constraints on both tables, and by ORM
listeners on the movement log.  No configuration may switch them off.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the stock kernel."""

    ARITHMETIC_LINK = "arithmetic_link"
    """new_stock == previous_stock + quantity_change on every movement.
    Enforced by the invariant enforcer and a table check constraint."""

    NONZERO_CHANGE = "nonzero_change"
    """A movement always changes stock; quantity_change is never zero."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """previous_stock, new_stock and current_stock are never negative."""

    BALANCE_CONTINUITY = "balance_continuity"
    """A movement's previous_stock equals the item's current_stock
    immediately before the write, and current_stock equals new_stock after
    it.  Enforced by compare-and-set in the balance store."""

    NON_NEGATIVE_AVAILABLE = "non_negative_available"
    """available_stock = current_stock - reserved_stock is never negative."""

    DIRECTION = "direction"
    """The sign of quantity_change agrees with the movement type's direction."""

    IMMUTABILITY = "immutability"
    """Movements are append-only.  Enforced by ORM listeners
    (stock_kernel.db.immutability)."""


ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = ("stock_config",)
