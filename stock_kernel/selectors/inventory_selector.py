"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: Read-only access to inventory items: lookups, filtered
    listing, low-stock detection and stock alerts.
Architecture position: Kernel > Selectors.

Reads always refresh from the database (populate_existing) so a balance
changed by the ledger's Core UPDATE earlier in the same session is never
served stale from the identity map.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.errors import store_errors
from stock_kernel.domain.alerts import DEFAULT_OVERSTOCK_RATIO, classify_item, sort_alerts
from stock_kernel.domain.dtos import InventoryItemRecord, StockAlert
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.models.inventory_item import InventoryItem
from stock_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector):
    """Inventory item reads returning InventoryItemRecord DTOs."""

    def __init__(
        self,
        session: Session,
        overstock_ratio: Decimal = DEFAULT_OVERSTOCK_RATIO,
    ):
        super().__init__(session)
        self._overstock_ratio = overstock_ratio

    def get_item(self, item_id: UUID) -> InventoryItemRecord:
        item = self._fetch_one(InventoryItem.id == item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return InventoryItemRecord.from_model(item)

    def find_by_product(self, product_id: str) -> InventoryItemRecord | None:
        item = self._fetch_one(InventoryItem.product_id == product_id)
        return InventoryItemRecord.from_model(item) if item else None

    def list_items(
        self,
        *,
        active_only: bool = True,
        visible_only: bool = False,
        low_stock_only: bool = False,
    ) -> list[InventoryItemRecord]:
        stmt = select(InventoryItem)
        if active_only:
            stmt = stmt.where(InventoryItem.is_active.is_(True))
        if visible_only:
            stmt = stmt.where(InventoryItem.is_visible_to_customers.is_(True))
        if low_stock_only:
            stmt = stmt.where(InventoryItem.available_stock <= InventoryItem.minimum_threshold)
        stmt = stmt.order_by(InventoryItem.product_id)

        with store_errors("list_items"):
            items = self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars().all()
        return [InventoryItemRecord.from_model(i) for i in items]

    def get_low_stock_items(self) -> list[InventoryItemRecord]:
        """Active items whose available stock is at or below their minimum."""
        return self.list_items(active_only=True, low_stock_only=True)

    def get_stock_alerts(self) -> list[StockAlert]:
        """Alerts for every active item, most severe first."""
        alerts: list[StockAlert] = []
        for item in self.list_items(active_only=True):
            alerts.extend(classify_item(item, self._overstock_ratio))
        return sort_alerts(alerts)

    def _fetch_one(self, criterion) -> InventoryItem | None:
        with store_errors("get_item"):
            return self.session.execute(
                select(InventoryItem)
                .where(criterion)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
