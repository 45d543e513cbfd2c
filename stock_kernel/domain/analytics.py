"""
Movement analytics -- pure aggregation over decoded movement records.

Impact classification:
    positive   stock-increasing types (restock, release)
    negative   stock-decreasing types (sale, reservation)
    either-way types (adjustment, transfer) follow the sign of their net
    aggregate over the window, neutral when it nets to zero.

Averages are Decimal, rounded half-up to two places.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from stock_kernel.domain.dtos import (
    MovementAnalyticsRow,
    MovementSummary,
    MovementTrendRow,
    StockMovementRecord,
)
from stock_kernel.domain.values import (
    Impact,
    MovementDirection,
    MovementType,
    TrendInterval,
)

_AVERAGE_PLACES = Decimal("0.01")

# Stable output order for analytics rows
_TYPE_ORDER = {t: i for i, t in enumerate(MovementType)}


def period_start(moment: datetime, interval: TrendInterval) -> date:
    """First day of the bucket containing ``moment`` (weeks start Monday)."""
    day = moment.date()
    if interval is TrendInterval.DAY:
        return day
    if interval is TrendInterval.WEEK:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def classify_impact(movement_type: MovementType, net_quantity: int) -> Impact:
    direction = movement_type.direction
    if direction is MovementDirection.INCREASE:
        return Impact.POSITIVE
    if direction is MovementDirection.DECREASE:
        return Impact.NEGATIVE
    if net_quantity > 0:
        return Impact.POSITIVE
    if net_quantity < 0:
        return Impact.NEGATIVE
    return Impact.NEUTRAL


def average(total: int, count: int) -> Decimal:
    if count == 0:
        return Decimal("0.00")
    return (Decimal(total) / Decimal(count)).quantize(_AVERAGE_PLACES, rounding=ROUND_HALF_UP)


def aggregate_by_type(
    records: Iterable[StockMovementRecord],
    group_by: TrendInterval | None = None,
) -> list[MovementAnalyticsRow]:
    """
    One row per movement type (per bucket when ``group_by`` is given).

    Rows are ordered by bucket, then by movement type declaration order.
    """
    totals: dict[tuple[date | None, MovementType], list[int]] = defaultdict(
        lambda: [0, 0, 0]
    )
    for record in records:
        bucket = period_start(record.performed_at, group_by) if group_by else None
        acc = totals[(bucket, record.movement_type)]
        acc[0] += abs(record.quantity_change)
        acc[1] += 1
        acc[2] += record.quantity_change

    rows = [
        MovementAnalyticsRow(
            movement_type=movement_type,
            total_quantity=total,
            movement_count=count,
            average_quantity=average(total, count),
            net_quantity=net,
            impact=classify_impact(movement_type, net),
            period_start=bucket,
        )
        for (bucket, movement_type), (total, count, net) in totals.items()
    ]
    rows.sort(key=lambda r: (r.period_start or date.min, _TYPE_ORDER[r.movement_type]))
    return rows


def trend(
    records: Iterable[StockMovementRecord],
    interval: TrendInterval,
) -> list[MovementTrendRow]:
    """Net stock flow per time bucket, oldest bucket first."""
    buckets: dict[date, list[int]] = defaultdict(lambda: [0, 0, 0])
    for record in records:
        acc = buckets[period_start(record.performed_at, interval)]
        acc[0] += 1
        if record.quantity_change > 0:
            acc[1] += record.quantity_change
        else:
            acc[2] += -record.quantity_change

    return [
        MovementTrendRow(
            period_start=start,
            movement_count=count,
            total_in=total_in,
            total_out=total_out,
            net_change=total_in - total_out,
        )
        for start, (count, total_in, total_out) in sorted(buckets.items())
    ]


def summarize(item_id: UUID, records: Iterable[StockMovementRecord]) -> MovementSummary:
    total_in = total_out = count = 0
    for record in records:
        count += 1
        if record.quantity_change > 0:
            total_in += record.quantity_change
        else:
            total_out += -record.quantity_change
    return MovementSummary(
        inventory_item_id=item_id,
        total_in=total_in,
        total_out=total_out,
        net_change=total_in - total_out,
        movement_count=count,
    )
