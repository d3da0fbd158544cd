"""Pytest configuration and fixtures."""

import os

# Keep test runs from writing rotating log files
os.environ.setdefault("WORKBENCH_LOG_TO_FILE", "false")

from datetime import date

import pytest

from invoice_workbench.models.invoice import Invoice, LineItem, Party, PaymentRecord
from invoice_workbench.services.inventory_service import InventoryService
from invoice_workbench.services.invoice_service import InvoiceService
from invoice_workbench.services.settings_service import SettingsService
from invoice_workbench.storage.key_value_store import MemoryStore
from invoice_workbench.utils import logger as app_logger

# Create handlers up front so console output binds to the real stdout
for _get_logger in (
    app_logger.get_invoice_logger,
    app_logger.get_inventory_logger,
    app_logger.get_storage_logger,
    app_logger.get_error_logger,
    app_logger.get_api_logger,
):
    _get_logger()


@pytest.fixture
def store():
    """Create an empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def inventory(store):
    """Create an InventoryService over the test store."""
    return InventoryService(store)


@pytest.fixture
def settings_service(store):
    """Create a SettingsService over the test store."""
    return SettingsService(store)


@pytest.fixture
def invoice_service(store, inventory, settings_service):
    """Create an InvoiceService sharing the test store."""
    return InvoiceService(store, inventory, settings_service)


@pytest.fixture
def widget(inventory):
    """A catalog product with 20 units on hand and a minimum level of 5."""
    return inventory.add_product("Widget", price=10, cost_price=4, stock_quantity=20, min_stock_level=5)


@pytest.fixture
def sample_line_items():
    """Create two line items: one percentage-discounted, one flat."""
    return (
        LineItem(id="li-1", name="Consulting", quantity=3, unit="hours", price=10,
                 discount=10, discount_type="percentage"),
        LineItem(id="li-2", name="Cable", quantity=2, price=5, discount=1, discount_type="flat"),
    )


@pytest.fixture
def sample_invoice(sample_line_items):
    """
    Create an invoice with known totals.

    Line totals 27 + 9 = 36; 10% tax = 3.6; shipping 5; total 44.6.
    """
    return Invoice(
        id="INV-1700000000000-42",
        date=date(2024, 1, 15),
        due_date=date(2024, 2, 14),
        status="sent",
        business=Party(name="Acme Supplies", email="billing@acme.test"),
        customer=Party(name="Jane Customer", address="1 Main St"),
        line_items=sample_line_items,
        tax_rate=10,
        shipping_amount=5,
    )


@pytest.fixture
def sample_payment():
    """Create a payment of 20."""
    return PaymentRecord(id="pay-1", amount=20, method="Bank Transfer", date=date(2024, 1, 20))
