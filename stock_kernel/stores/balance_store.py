"""
Module: stock_kernel.stores.balance_store
Responsibility: Read and compare-and-set the balance fields of an inventory
    item inside the caller's transaction.
Architecture position: Kernel > Stores.  Imports models and domain DTOs.

Invariants enforced:
    - No caching: every read is a column SELECT, never the identity map.
    - A write succeeds only if current_stock and reserved_stock still hold
      the values the caller read; otherwise nothing changes and the caller
      gets a conflict.  This serializes same-item writers without holding
      a row lock across the enforcer.

Failure modes:
    - ItemNotFoundError when the item does not exist.
    - StoreUnavailableError on timeouts, disconnects, pool exhaustion.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stock_kernel.db.errors import store_errors
from stock_kernel.domain.dtos import BalanceSnapshot
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_item import InventoryItem

logger = get_logger("stores.balance")

_items = InventoryItem.__table__


class BalanceStore:
    """
    Balance read / compare-and-set interface.

    Contract:
        Operates on the session it was given and never commits.
    """

    def __init__(self, session: Session):
        self._session = session

    def get_balance(self, item_id: UUID) -> BalanceSnapshot:
        with store_errors("get_balance"):
            row = self._session.execute(
                select(
                    _items.c.id,
                    _items.c.current_stock,
                    _items.c.reserved_stock,
                    _items.c.is_active,
                ).where(_items.c.id == item_id)
            ).one_or_none()
        if row is None:
            raise ItemNotFoundError(item_id)
        return BalanceSnapshot(
            item_id=row.id,
            current_stock=row.current_stock,
            reserved_stock=row.reserved_stock,
            is_active=row.is_active,
        )

    def compare_and_set_balance(
        self,
        expected: BalanceSnapshot,
        *,
        new_current_stock: int,
        new_reserved_stock: int | None = None,
        updated_at: datetime,
    ) -> bool:
        """
        Write new balance values if the row still matches ``expected``.

        Returns:
            True if the row was updated, False on a conflict.
        """
        reserved = (
            expected.reserved_stock if new_reserved_stock is None else new_reserved_stock
        )
        stmt = (
            update(_items)
            .where(
                _items.c.id == expected.item_id,
                _items.c.current_stock == expected.current_stock,
                _items.c.reserved_stock == expected.reserved_stock,
            )
            .values(
                current_stock=new_current_stock,
                reserved_stock=reserved,
                available_stock=new_current_stock - reserved,
                last_stock_update=updated_at,
                updated_at=updated_at,
            )
        )
        with store_errors("compare_and_set_balance"):
            result = self._session.execute(stmt)

        if result.rowcount != 1:
            logger.info(
                "balance_cas_conflict",
                extra={
                    "item_id": str(expected.item_id),
                    "expected_current_stock": expected.current_stock,
                    "expected_reserved_stock": expected.reserved_stock,
                },
            )
            return False
        return True
