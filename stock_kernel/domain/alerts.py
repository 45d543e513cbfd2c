"""
Stock alert classification.

Pure rules deriving alerts from an inventory item's balance and thresholds:

    out_of_stock  critical  current_stock == 0
    low_stock     warning   0 < current_stock <= minimum_threshold
    overstock     low       current_stock >= overstock_ratio * maximum_threshold
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from stock_kernel.domain.dtos import InventoryItemRecord, StockAlert
from stock_kernel.domain.values import AlertSeverity, AlertType

DEFAULT_OVERSTOCK_RATIO = Decimal("0.9")


def classify_item(
    item: InventoryItemRecord,
    overstock_ratio: Decimal = DEFAULT_OVERSTOCK_RATIO,
) -> list[StockAlert]:
    alerts: list[StockAlert] = []

    if item.current_stock == 0:
        alerts.append(
            StockAlert(
                inventory_item_id=item.id,
                product_id=item.product_id,
                alert_type=AlertType.OUT_OF_STOCK,
                severity=AlertSeverity.CRITICAL,
                current_stock=item.current_stock,
                threshold=0,
                message=f"{item.product_id} is out of stock",
            )
        )
    elif item.current_stock <= item.minimum_threshold:
        alerts.append(
            StockAlert(
                inventory_item_id=item.id,
                product_id=item.product_id,
                alert_type=AlertType.LOW_STOCK,
                severity=AlertSeverity.WARNING,
                current_stock=item.current_stock,
                threshold=item.minimum_threshold,
                message=(
                    f"{item.product_id} is low on stock "
                    f"({item.current_stock} <= {item.minimum_threshold})"
                ),
            )
        )

    if item.maximum_threshold:
        limit = overstock_ratio * item.maximum_threshold
        if item.current_stock >= limit:
            alerts.append(
                StockAlert(
                    inventory_item_id=item.id,
                    product_id=item.product_id,
                    alert_type=AlertType.OVERSTOCK,
                    severity=AlertSeverity.LOW,
                    current_stock=item.current_stock,
                    threshold=item.maximum_threshold,
                    message=(
                        f"{item.product_id} is near maximum capacity "
                        f"({item.current_stock} of {item.maximum_threshold})"
                    ),
                    details={"overstock_ratio": str(overstock_ratio)},
                )
            )

    return alerts


def sort_alerts(alerts: Iterable[StockAlert]) -> list[StockAlert]:
    """Most severe first; ties ordered by product id."""
    return sorted(alerts, key=lambda a: (a.severity.rank, a.product_id, a.alert_type.value))
