"""
Values -- closed vocabularies of the stock ledger.

Responsibility:
    Enumerations shared by the domain, services and selectors: movement
    types (with their direction encoded once), stock-update operations,
    movement actions checked by the permission gate, analytics impact,
    trend intervals and stock alert kinds.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class MovementDirection(str, Enum):
    """Which way a movement type is allowed to move stock."""

    INCREASE = "increase"
    DECREASE = "decrease"
    EITHER = "either"


@unique
class MovementType(str, Enum):
    """
    Kind of stock movement.

    Contract:
        Closed set.  Each member has exactly one direction:
        RESTOCK and RELEASE increase stock, SALE and RESERVATION decrease
        it, ADJUSTMENT and TRANSFER may move it either way.
    """

    RESTOCK = "restock"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"
    RELEASE = "release"
    TRANSFER = "transfer"

    @property
    def direction(self) -> MovementDirection:
        return _DIRECTIONS[self]

    def permits(self, quantity_change: int) -> bool:
        """True if the sign of ``quantity_change`` matches this type's direction."""
        direction = self.direction
        if direction is MovementDirection.INCREASE:
            return quantity_change > 0
        if direction is MovementDirection.DECREASE:
            return quantity_change < 0
        return True


_DIRECTIONS: dict[MovementType, MovementDirection] = {
    MovementType.RESTOCK: MovementDirection.INCREASE,
    MovementType.RELEASE: MovementDirection.INCREASE,
    MovementType.SALE: MovementDirection.DECREASE,
    MovementType.RESERVATION: MovementDirection.DECREASE,
    MovementType.ADJUSTMENT: MovementDirection.EITHER,
    MovementType.TRANSFER: MovementDirection.EITHER,
}


@unique
class StockOperation(str, Enum):
    """How ``update_stock`` interprets its quantity."""

    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


@unique
class MovementAction(str, Enum):
    """Actions checked by the permission gate."""

    READ_MOVEMENTS = "read_movements"
    RECORD_MOVEMENTS = "record_movements"


@unique
class Impact(str, Enum):
    """Net effect of a movement type on stock over an analytics window."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@unique
class TrendInterval(str, Enum):
    """Bucket width for movement trends."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@unique
class AlertType(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    OVERSTOCK = "overstock"


@unique
class AlertSeverity(str, Enum):
    """Alert severity, most urgent first."""

    CRITICAL = "critical"
    WARNING = "warning"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.LOW: 2,
}
