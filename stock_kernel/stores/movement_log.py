"""
Module: stock_kernel.stores.movement_log
Responsibility: Append-only insertion and filtered querying of stock
    movements.
Architecture position: Kernel > Stores.  Imports models and domain DTOs.

Invariants enforced:
    - Insert only.  There is no update or delete method; ORM listeners
      block both anyway.
    - Query results come back as raw row mappings.  Decoding (and skipping
      of undecodable rows) is the reader's job.
    - Ordering is total: ties on performed_at are broken by id.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import RowMapping
from sqlalchemy.orm import Session

from stock_kernel.db.errors import store_errors
from stock_kernel.domain.dtos import MovementDraft, StockMovementRecord
from stock_kernel.models.stock_movement import StockMovement

_movements = StockMovement.__table__


@dataclass(frozen=True)
class MovementQuery:
    """
    Conjunctive filter over the movement log.  None means "any".

    ``start``/``end`` are inclusive bounds on performed_at.
    """

    inventory_item_id: UUID | None = None
    batch_id: UUID | None = None
    movement_type: str | None = None
    performed_by: UUID | None = None
    start: datetime | None = None
    end: datetime | None = None
    exclude_system: bool = False
    descending: bool = True
    limit: int | None = None
    offset: int = 0


class MovementLog:
    """Append-only movement log bound to a session.  Never commits."""

    def __init__(self, session: Session):
        self._session = session

    def insert_movement(
        self,
        draft: MovementDraft,
        *,
        movement_id: UUID,
        performed_at: datetime,
        performed_by: UUID | None = None,
        reason: str | None = None,
        reference_order_id: str | None = None,
        batch_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> StockMovementRecord:
        movement = StockMovement(
            id=movement_id,
            inventory_item_id=draft.inventory_item_id,
            movement_type=draft.movement_type.value,
            quantity_change=draft.quantity_change,
            previous_stock=draft.previous_stock,
            new_stock=draft.new_stock,
            reason=reason,
            performed_by=performed_by,
            reference_order_id=reference_order_id,
            batch_id=batch_id,
            idempotency_key=idempotency_key,
            performed_at=performed_at,
            created_at=performed_at,
        )
        with store_errors("insert_movement"):
            self._session.add(movement)
            self._session.flush()

        return StockMovementRecord(
            id=movement_id,
            inventory_item_id=draft.inventory_item_id,
            movement_type=draft.movement_type,
            quantity_change=draft.quantity_change,
            previous_stock=draft.previous_stock,
            new_stock=draft.new_stock,
            performed_at=performed_at,
            reason=reason,
            performed_by=performed_by,
            reference_order_id=reference_order_id,
            batch_id=batch_id,
            idempotency_key=idempotency_key,
            created_at=performed_at,
        )

    def find_by_idempotency_key(self, key: str) -> RowMapping | None:
        with store_errors("find_by_idempotency_key"):
            return self._session.execute(
                select(_movements).where(_movements.c.idempotency_key == key)
            ).mappings().one_or_none()

    def query_movements(self, query: MovementQuery) -> Sequence[RowMapping]:
        stmt = select(_movements)

        if query.inventory_item_id is not None:
            stmt = stmt.where(_movements.c.inventory_item_id == query.inventory_item_id)
        if query.batch_id is not None:
            stmt = stmt.where(_movements.c.batch_id == query.batch_id)
        if query.movement_type is not None:
            stmt = stmt.where(_movements.c.movement_type == query.movement_type)
        if query.performed_by is not None:
            stmt = stmt.where(_movements.c.performed_by == query.performed_by)
        if query.exclude_system:
            stmt = stmt.where(_movements.c.performed_by.is_not(None))
        if query.start is not None:
            stmt = stmt.where(_movements.c.performed_at >= query.start)
        if query.end is not None:
            stmt = stmt.where(_movements.c.performed_at <= query.end)

        if query.descending:
            stmt = stmt.order_by(_movements.c.performed_at.desc(), _movements.c.id.desc())
        else:
            stmt = stmt.order_by(_movements.c.performed_at.asc(), _movements.c.id.asc())

        if query.offset:
            stmt = stmt.offset(query.offset)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        with store_errors("query_movements"):
            return self._session.execute(stmt).mappings().all()
