"""Tests for the inventory ledger, product catalog and stock alerts."""

from unittest.mock import patch

import pytest

from invoice_workbench.models.inventory import ProductCatalogItem, StockAlert
from invoice_workbench.services.inventory_service import (
    apply_transaction,
    compute_alerts,
    replay_stock,
    stock_status,
)
from invoice_workbench.storage.key_value_store import (
    INVENTORY_TRANSACTIONS_KEY,
    PRODUCTS_KEY,
    STOCK_ALERTS_KEY,
)
from invoice_workbench.utils.exceptions import (
    AlertNotFoundError,
    ProductNotFoundError,
    StorageWriteError,
)


class TestApplyTransaction:
    """Tests for the single-step stock rule."""

    def test_stock_in(self):
        """Test that stock-in adds."""
        assert apply_transaction(5, "stock-in", 3) == 8

    def test_stock_out_floors_at_zero(self):
        """Test that stock-out never goes negative."""
        assert apply_transaction(5, "stock-out", 10) == 0

    def test_adjustment_is_signed_and_floored(self):
        """Test positive and negative adjustments."""
        assert apply_transaction(5, "adjustment", 2) == 7
        assert apply_transaction(5, "adjustment", -9) == 0

    def test_unknown_type(self):
        """Test that an unknown type raises ValueError."""
        with pytest.raises(ValueError, match="Unknown transaction type"):
            apply_transaction(5, "theft", 1)


class TestRecordTransaction:
    """Tests for InventoryService.record_transaction."""

    def test_interleaved_sequence_floors_every_step(self, inventory):
        """Test stock-in 5, stock-out 10, stock-in 3 ends at 3, not -2."""
        product = inventory.add_product("Gadget", stock_quantity=0, min_stock_level=1)

        inventory.record_transaction(product.id, "stock-in", 5)
        inventory.record_transaction(product.id, "stock-out", 10)
        assert inventory.get_product(product.id).stock_quantity == 0

        inventory.record_transaction(product.id, "stock-in", 3)
        assert inventory.get_product(product.id).stock_quantity == 3

    def test_replay_matches_stored_stock(self, inventory, widget):
        """Test that replaying the ledger reproduces stored stock."""
        for type, quantity in [("stock-out", 7), ("adjustment", -30), ("stock-in", 4), ("adjustment", 2)]:
            inventory.record_transaction(widget.id, type, quantity)

        assert inventory.get_product(widget.id).stock_quantity == 6
        assert inventory.replay_product_stock(widget.id) == 6
        assert inventory.ledger_discrepancies() == {}

    def test_transaction_is_appended(self, inventory, widget):
        """Test that the ledger keeps every transaction in order."""
        t = inventory.record_transaction(widget.id, "stock-out", 2, reason="Damaged", notes="dropped")
        history = inventory.get_product_transactions(widget.id)

        assert [h.type for h in history] == ["stock-in", "stock-out"]
        assert history[-1].id == t.id
        assert history[0].reason == "Initial stock"
        assert t.notes == "dropped"

    def test_stock_in_sets_restock_date(self, inventory, widget):
        """Test that stock-in updates last_restocked_date."""
        inventory.record_transaction(widget.id, "stock-in", 1)
        t = inventory.get_product_transactions(widget.id)[-1]
        assert inventory.get_product(widget.id).last_restocked_date == t.date

    def test_unknown_product_is_still_recorded(self, inventory, widget):
        """Test that a dangling product id is logged to the ledger only."""
        inventory.record_transaction("ghost", "stock-in", 4)

        assert [t.product_id for t in inventory.load_transactions()][-1] == "ghost"
        assert inventory.get_product(widget.id).stock_quantity == 20
        assert inventory.get_product("ghost") is None

    def test_negative_stock_in_rejected(self, inventory, widget):
        """Test that a negative stock-in is rejected before anything is stored."""
        with pytest.raises(ValueError, match="Quantity cannot be negative"):
            inventory.record_transaction(widget.id, "stock-in", -1)

        assert len(inventory.load_transactions()) == 1

    def test_one_batched_write(self, inventory, widget, store):
        """Test that products, ledger and alerts are written together."""
        with patch.object(store, "set_many", wraps=store.set_many) as set_many:
            inventory.record_transaction(widget.id, "stock-out", 1)

        set_many.assert_called_once()
        assert set(set_many.call_args[0][0]) == {PRODUCTS_KEY, INVENTORY_TRANSACTIONS_KEY, STOCK_ALERTS_KEY}

    def test_failed_write_leaves_state_untouched(self, inventory, widget, store):
        """Test that a failed batch write changes nothing."""
        with patch.object(store, "_write_all", side_effect=StorageWriteError("disk full")):
            with pytest.raises(StorageWriteError):
                inventory.record_transaction(widget.id, "stock-out", 20)

        assert inventory.get_product(widget.id).stock_quantity == 20
        assert len(inventory.load_transactions()) == 1
        assert inventory.load_alerts() == []

    def test_unreadable_history_is_never_dropped(self, inventory, widget, store):
        """Test that a stored transaction the model rejects survives later writes."""
        legacy = {
            "id": "t-legacy", "productId": widget.id, "type": "stock-out",
            "quantity": -5, "date": "2024-01-01T00:00:00.000Z",
        }
        store.set(INVENTORY_TRANSACTIONS_KEY, store.get(INVENTORY_TRANSACTIONS_KEY) + [legacy])

        inventory.record_transaction(widget.id, "stock-in", 1)

        stored = store.get(INVENTORY_TRANSACTIONS_KEY)
        assert len(stored) == 3
        assert stored[1] == legacy
        assert inventory.get_product(widget.id).stock_quantity == 21

    def test_movement_summary(self, inventory, widget):
        """Test the per-product movement totals."""
        inventory.record_transaction(widget.id, "stock-out", 5)
        inventory.record_transaction(widget.id, "adjustment", -2)

        summary = inventory.get_stock_movement_summary(widget.id)

        assert summary == {"stock_in": 20, "stock_out": 5, "adjustments": -2, "total_movement": 13}


class TestStockAlerts:
    """Tests for alert derivation and acknowledgement."""

    def test_compute_alerts_scenario(self):
        """Test out-of-stock, low-stock and healthy products."""
        products = [
            ProductCatalogItem(id="out", name="Out", stock_quantity=0, min_stock_level=10),
            ProductCatalogItem(id="low", name="Low", stock_quantity=5, min_stock_level=10),
            ProductCatalogItem(id="ok", name="Ok", stock_quantity=20, min_stock_level=10),
        ]

        alerts = {a.product_id: a for a in compute_alerts(products)}

        assert set(alerts) == {"out", "low"}
        assert alerts["out"].type == "out-of-stock"
        assert alerts["out"].threshold == 0
        assert alerts["low"].type == "low-stock"
        assert alerts["low"].threshold == 10
        assert alerts["low"].current_stock == 5
        assert alerts["low"].id == "low-low-stock"

    def test_stock_status(self):
        """Test stock status boundaries."""
        assert stock_status(ProductCatalogItem(id="a", name="A", stock_quantity=0)) == "out-of-stock"
        assert stock_status(ProductCatalogItem(id="a", name="A", stock_quantity=5, min_stock_level=5)) == "low-stock"
        assert stock_status(ProductCatalogItem(id="a", name="A", stock_quantity=6, min_stock_level=5)) == "in-stock"

    def test_alerts_follow_transactions(self, inventory, widget):
        """Test that alerts are recomputed after each transaction."""
        assert inventory.load_alerts() == []

        inventory.record_transaction(widget.id, "stock-out", 16)
        assert [a.type for a in inventory.load_alerts()] == ["low-stock"]

        inventory.record_transaction(widget.id, "stock-out", 10)
        assert [a.type for a in inventory.load_alerts()] == ["out-of-stock"]

        inventory.record_transaction(widget.id, "stock-in", 50)
        assert inventory.load_alerts() == []

    def test_acknowledgement_survives_recompute(self, inventory, widget):
        """Test that an acknowledged alert stays acknowledged for the same condition."""
        inventory.record_transaction(widget.id, "stock-out", 16)
        alert_id = inventory.load_alerts()[0].id

        inventory.acknowledge_alert(alert_id)
        inventory.record_transaction(widget.id, "stock-out", 1)

        alerts = inventory.load_alerts()
        assert alerts[0].acknowledged is True
        assert alerts[0].current_stock == 3
        assert inventory.active_alerts() == []

    def test_acknowledgement_does_not_carry_to_new_type(self, inventory, widget):
        """Test that running out raises a fresh, unacknowledged alert."""
        inventory.record_transaction(widget.id, "stock-out", 16)
        inventory.acknowledge_alert(inventory.load_alerts()[0].id)

        inventory.record_transaction(widget.id, "stock-out", 4)

        assert [(a.type, a.acknowledged) for a in inventory.load_alerts()] == [("out-of-stock", False)]

    def test_acknowledge_unknown_alert(self, inventory):
        """Test that an unknown alert id raises AlertNotFoundError."""
        with pytest.raises(AlertNotFoundError):
            inventory.acknowledge_alert("nope")

    def test_previous_alerts_argument(self):
        """Test compute_alerts carrying acknowledgement from a previous set."""
        product = ProductCatalogItem(id="p", name="P", stock_quantity=0)
        previous = [StockAlert(id="p-out-of-stock", product_id="p", type="out-of-stock",
                               threshold=0, current_stock=0, date=None, acknowledged=True)]

        assert compute_alerts([product], previous)[0].acknowledged is True


class TestStockAvailability:
    """Tests for the advisory stock check."""

    def test_insufficient_stock(self, inventory):
        """Test that 3 on hand is short for 5."""
        product = inventory.add_product("Short", stock_quantity=3)
        assert inventory.check_stock_availability(product.id, 5) is True

    def test_sufficient_stock(self, inventory):
        """Test that 10 on hand is enough for 5."""
        product = inventory.add_product("Plenty", stock_quantity=10)
        assert inventory.check_stock_availability(product.id, 5) is False

    def test_unknown_product_never_warns(self, inventory):
        """Test that unknown products are not reported short."""
        assert inventory.check_stock_availability("ghost", 5) is False


class TestCatalog:
    """Tests for product catalog operations."""

    def test_add_product_records_opening_stock(self, inventory, widget):
        """Test that opening stock goes through the ledger."""
        assert widget.stock_quantity == 20
        [t] = inventory.get_product_transactions(widget.id)
        assert (t.type, t.quantity, t.reason, t.cost_price) == ("stock-in", 20, "Initial stock", 4)

    def test_add_product_without_stock(self, inventory):
        """Test adding a product without opening stock."""
        product = inventory.add_product("Empty")

        assert product.stock_quantity == 0
        assert inventory.get_product_transactions(product.id) == []
        assert [a.type for a in inventory.load_alerts()] == ["out-of-stock"]

    def test_add_product_empty_name(self, inventory):
        """Test that an empty name raises ValueError."""
        with pytest.raises(ValueError, match="Product name cannot be empty"):
            inventory.add_product("")

    def test_update_product(self, inventory, widget):
        """Test changing catalog fields."""
        updated = inventory.update_product(widget.id, price=12, min_stock_level=25)

        assert updated.price == 12
        assert inventory.get_product(widget.id).price == 12
        assert [a.type for a in inventory.load_alerts()] == ["low-stock"]

    def test_update_product_rejects_stock_change(self, inventory, widget):
        """Test that stock cannot be edited directly."""
        with pytest.raises(ValueError, match="inventory transactions"):
            inventory.update_product(widget.id, stock_quantity=99)

    def test_update_unknown_product(self, inventory):
        """Test that updating an unknown product raises ProductNotFoundError."""
        with pytest.raises(ProductNotFoundError):
            inventory.update_product("ghost", price=1)

    def test_delete_product_keeps_history(self, inventory, widget):
        """Test that deleting a product keeps its transactions."""
        inventory.delete_product(widget.id)

        assert inventory.get_product(widget.id) is None
        assert len(inventory.get_product_transactions(widget.id)) == 1

    def test_list_products_filters(self, inventory, widget):
        """Test search, category and stock filters."""
        empty = inventory.add_product("Gizmo", category="Electronics")

        assert [p.id for p in inventory.list_products(search="widg")] == [widget.id]
        assert [p.id for p in inventory.list_products(category="Electronics")] == [empty.id]
        assert [p.id for p in inventory.list_products(stock_filter="available")] == [widget.id]
        assert [p.id for p in inventory.list_products(stock_filter="out")] == [empty.id]
        assert [p.id for p in inventory.list_products(stock_filter="low")] == [empty.id]


def test_replay_stock_ignores_other_products(inventory, widget):
    """Test that replay only folds the requested product."""
    other = inventory.add_product("Other", stock_quantity=3)
    transactions = inventory.load_transactions()

    assert replay_stock(transactions, widget.id) == 20
    assert replay_stock(transactions, other.id) == 3
