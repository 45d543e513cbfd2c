"""ORM models of the stock kernel."""

from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.models.stock_movement import StockMovement

__all__ = ["InventoryItem", "StockMovement"]
