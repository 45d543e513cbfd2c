"""Tests for InventorySelector: lookups, listing, low stock and alerts."""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.values import AlertSeverity, AlertType
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.selectors.inventory_selector import InventorySelector


class TestLookups:
    def test_get_item(self, inventory_selector, make_item):
        item = make_item(current_stock=7, reserved_stock=2, product_id="SKU-LOOKUP")

        record = inventory_selector.get_item(item.id)

        assert record.product_id == "SKU-LOOKUP"
        assert record.current_stock == 7
        assert record.reserved_stock == 2
        assert record.available_stock == 5
        assert record.is_active is True

    def test_get_missing_item(self, inventory_selector):
        with pytest.raises(ItemNotFoundError):
            inventory_selector.get_item(uuid4())

    def test_find_by_product(self, inventory_selector, make_item):
        item = make_item(product_id="SKU-FIND")

        assert inventory_selector.find_by_product("SKU-FIND").id == item.id
        assert inventory_selector.find_by_product("SKU-NOPE") is None


class TestListing:
    def test_ordered_by_product_and_active_only(self, inventory_selector, make_item, ledger, staff_id):
        make_item(product_id="SKU-B")
        make_item(product_id="SKU-A")
        retired = make_item(product_id="SKU-C")
        ledger.deactivate_item(retired.id, performed_by=staff_id)

        active = inventory_selector.list_items()
        everything = inventory_selector.list_items(active_only=False)

        assert [i.product_id for i in active] == ["SKU-A", "SKU-B"]
        assert [i.product_id for i in everything] == ["SKU-A", "SKU-B", "SKU-C"]

    def test_visible_only(self, inventory_selector, make_item):
        make_item(product_id="SKU-SHOWN")
        make_item(product_id="SKU-HIDDEN", is_visible_to_customers=False)

        visible = inventory_selector.list_items(visible_only=True)

        assert [i.product_id for i in visible] == ["SKU-SHOWN"]

    def test_low_stock_uses_available(self, inventory_selector, make_item):
        make_item(current_stock=10, reserved_stock=8, product_id="SKU-RESERVED", minimum_threshold=3)
        make_item(current_stock=10, product_id="SKU-PLENTY", minimum_threshold=3)

        low = inventory_selector.get_low_stock_items()

        assert [i.product_id for i in low] == ["SKU-RESERVED"]
        assert low[0].is_low_stock


class TestAlerts:
    def test_alerts_sorted_by_severity(self, inventory_selector, make_item):
        make_item(current_stock=95, product_id="SKU-FULL", maximum_threshold=100)
        make_item(current_stock=2, product_id="SKU-LOW", minimum_threshold=5)
        make_item(current_stock=0, product_id="SKU-EMPTY")
        make_item(current_stock=50, product_id="SKU-FINE", minimum_threshold=5, maximum_threshold=100)

        alerts = inventory_selector.get_stock_alerts()

        assert [(a.product_id, a.alert_type) for a in alerts] == [
            ("SKU-EMPTY", AlertType.OUT_OF_STOCK),
            ("SKU-LOW", AlertType.LOW_STOCK),
            ("SKU-FULL", AlertType.OVERSTOCK),
        ]
        assert [a.severity for a in alerts] == [
            AlertSeverity.CRITICAL,
            AlertSeverity.WARNING,
            AlertSeverity.LOW,
        ]

    def test_inactive_items_raise_no_alerts(self, inventory_selector, make_item, ledger, staff_id):
        item = make_item(current_stock=0)
        ledger.deactivate_item(item.id, performed_by=staff_id)

        assert inventory_selector.get_stock_alerts() == []

    def test_custom_overstock_ratio(self, session, make_item):
        make_item(current_stock=60, product_id="SKU-HALF", maximum_threshold=100)

        strict = InventorySelector(session, overstock_ratio=Decimal("0.5"))

        alerts = strict.get_stock_alerts()
        assert [a.alert_type for a in alerts] == [AlertType.OVERSTOCK]
        assert alerts[0].details == {"overstock_ratio": "0.5"}
