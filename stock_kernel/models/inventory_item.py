"""
Module: stock_kernel.models.inventory_item
Responsibility: ORM persistence for the balance record of a sellable item.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (check constraints):
    - current_stock >= 0, reserved_stock >= 0
    - available_stock == current_stock - reserved_stock
    - available_stock >= 0
    - minimum_threshold >= 0
    - product_id is unique

Failure modes:
    - IntegrityError on a second item for the same product_id.
    - IntegrityError if a raw write breaks a balance constraint.

Audit relevance:
    Balance fields are written only by the balance store's compare-and-set,
    always paired with a stock_movements row.  ORM-level edits of balance
    fields are blocked by db/immutability.py.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TimestampedBase, UTCDateTime

BALANCE_FIELDS: tuple[str, ...] = ("current_stock", "reserved_stock", "available_stock")


class InventoryItem(TimestampedBase):
    """
    Authoritative stock balance for one product.

    Contract:
        Owned by the stock ledger.  Never hard-deleted while movements
        reference it; deactivate with ``is_active = False`` instead.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_current_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint(
            "available_stock = current_stock - reserved_stock",
            name="ck_inventory_available_derived",
        ),
        CheckConstraint("available_stock >= 0", name="ck_inventory_available_non_negative"),
        CheckConstraint("minimum_threshold >= 0", name="ck_inventory_min_threshold"),
        Index("idx_inventory_active", "is_active"),
    )

    product_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_stock: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reserved_stock: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    available_stock: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    minimum_threshold: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    maximum_threshold: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_visible_to_customers: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    last_stock_update: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryItem {self.product_id}: current={self.current_stock} "
            f"reserved={self.reserved_stock}>"
        )
