"""Narrow persistence seams: the balance store and the movement log."""

from stock_kernel.stores.balance_store import BalanceStore
from stock_kernel.stores.movement_log import MovementLog, MovementQuery

__all__ = ["BalanceStore", "MovementLog", "MovementQuery"]
