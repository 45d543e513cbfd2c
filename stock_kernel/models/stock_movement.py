"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only movement log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (check constraints):
    - quantity_change <> 0
    - new_stock = previous_stock + quantity_change
    - previous_stock >= 0, new_stock >= 0
    - idempotency_key unique when present

Failure modes:
    - IntegrityError on a duplicate idempotency_key.
    - ImmutabilityViolationError on UPDATE or DELETE (db/immutability.py).

Audit relevance:
    Replaying the movements of an item in performed_at order reproduces its
    current_stock exactly.  movement_type is stored as plain text so that a
    row written by another system with an unknown type can still be read
    (and skipped) instead of breaking the query.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UTCDateTime, UUIDString


class StockMovement(Base):
    """
    One signed, attributable change of an item's stock.

    Contract:
        Created exactly once by the movement log in the same transaction as
        the balance update it describes.  Never updated or deleted.
        ``performed_by`` is NULL for system-generated movements.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity_change <> 0", name="ck_movement_nonzero"),
        CheckConstraint(
            "new_stock = previous_stock + quantity_change",
            name="ck_movement_arithmetic_link",
        ),
        CheckConstraint("previous_stock >= 0", name="ck_movement_previous_non_negative"),
        CheckConstraint("new_stock >= 0", name="ck_movement_new_non_negative"),
        Index("idx_movement_item_performed", "inventory_item_id", "performed_at"),
        Index("idx_movement_batch", "batch_id"),
        Index("idx_movement_performer", "performed_by"),
        Index("idx_movement_type", "movement_type"),
        Index("idx_movement_performed_at", "performed_at"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id", ondelete="RESTRICT"),
        nullable=False,
    )
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity_change: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reference_order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(300), nullable=True, unique=True
    )
    performed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} {self.quantity_change:+d} "
            f"({self.previous_stock}->{self.new_stock})>"
        )
