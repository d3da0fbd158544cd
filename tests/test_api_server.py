"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from invoice_workbench.api_server import app, get_invoice_service


@pytest.fixture
def client(invoice_service):
    """Create a TestClient bound to the test store."""
    app.dependency_overrides[get_invoice_service] = lambda: invoice_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def invoice_payload():
    """A create-invoice body totalling 34.7."""
    return {
        "business": {"name": "Acme Supplies"},
        "customer": {"name": "Bob Buyer"},
        "line_items": [
            {"name": "Consulting", "quantity": 3, "price": 10, "discount": 10, "discount_type": "percentage"},
        ],
        "tax_rate": 10,
        "shipping_amount": 5,
        "due_date": "2024-02-01",
    }


class TestService:
    """Tests for service endpoints."""

    def test_root(self, client):
        """Test the root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        """Test the health endpoint."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["timestamp"].endswith("Z")


class TestInvoiceEndpoints:
    """Tests for invoice endpoints."""

    def test_create_invoice(self, client, invoice_payload):
        """Test that totals are computed on create."""
        response = client.post("/invoices", json=invoice_payload)
        data = response.json()

        assert response.status_code == 201
        assert data["id"].startswith("INV-")
        assert data["status"] == "draft"
        assert data["subtotal"] == pytest.approx(27)
        assert data["total"] == pytest.approx(34.7)
        assert data["paymentStatus"] == "unpaid"
        assert data["dueDate"] == "2024-02-01"

    def test_get_and_list(self, client, invoice_payload):
        """Test reading invoices back."""
        created = client.post("/invoices", json=invoice_payload).json()

        assert client.get(f"/invoices/{created['id']}").json()["total"] == pytest.approx(34.7)
        assert [inv["id"] for inv in client.get("/invoices", params={"search": "bob"}).json()] == [created["id"]]

    def test_unknown_invoice(self, client):
        """Test that an unknown id returns 404 with an error body."""
        response = client.get("/invoices/INV-missing")

        assert response.status_code == 404
        assert "Invoice not found" in response.json()["error"]

    def test_catalog_line_item(self, client, widget):
        """Test a line item taken from the catalog."""
        body = {"line_items": [{"product_id": widget.id, "quantity": 30}]}

        data = client.post("/invoices", json=body).json()

        assert data["lineItems"][0]["productId"] == widget.id
        assert data["lineItems"][0]["internalNotes"] == "Warning: Low stock"
        assert data["subtotal"] == pytest.approx(300)

    def test_unknown_catalog_product(self, client):
        """Test that an unknown product id returns 404."""
        response = client.post("/invoices", json={"line_items": [{"product_id": "ghost"}]})
        assert response.status_code == 404

    def test_payments(self, client, invoice_payload):
        """Test recording and removing a payment."""
        invoice_id = client.post("/invoices", json=invoice_payload).json()["id"]

        response = client.post(f"/invoices/{invoice_id}/payments", json={"amount": 10, "method": "UPI"})
        data = response.json()

        assert response.status_code == 201
        assert data["amountPaid"] == 10
        assert data["balanceRemaining"] == pytest.approx(24.7)
        assert data["paymentStatus"] == "partially-paid"

        payment_id = data["payments"][0]["id"]
        data = client.delete(f"/invoices/{invoice_id}/payments/{payment_id}").json()
        assert data["payments"] == []

    def test_invalid_payment(self, client, invoice_payload):
        """Test that a zero payment is rejected with 400."""
        invoice_id = client.post("/invoices", json=invoice_payload).json()["id"]

        response = client.post(f"/invoices/{invoice_id}/payments", json={"amount": 0})

        assert response.status_code == 400
        assert response.json()["error"] == "Payment amount must be positive"

    def test_replace_invoice_recomputes(self, client, invoice_payload):
        """Test that stored totals in a PUT body are ignored."""
        created = client.post("/invoices", json=invoice_payload).json()
        created.update({"total": 1, "shippingAmount": 0})

        data = client.put(f"/invoices/{created['id']}", json=created).json()

        assert data["total"] == pytest.approx(29.7)

    def test_replace_invoice_keeps_created_at(self, client, invoice_payload):
        """Test that a PUT body without createdAt keeps the stored creation time."""
        created = client.post("/invoices", json=invoice_payload).json()
        body = {k: v for k, v in created.items() if k != "createdAt"}

        data = client.put(f"/invoices/{created['id']}", json=body).json()

        assert data["createdAt"] == created["createdAt"]
        assert client.get(f"/invoices/{created['id']}").json()["createdAt"] == created["createdAt"]

    def test_status_and_overdue(self, client, invoice_payload):
        """Test setting a status and flagging overdue invoices."""
        invoice_id = client.post("/invoices", json=invoice_payload).json()["id"]
        client.post(f"/invoices/{invoice_id}/status", json={"status": "sent"})

        response = client.post("/invoices/mark-overdue", params={"as_of": "2024-03-01"})

        assert response.json() == {"marked": [invoice_id]}
        assert client.get(f"/invoices/{invoice_id}").json()["status"] == "overdue"

    def test_invalid_status(self, client, invoice_payload):
        """Test that an unknown status returns 400."""
        invoice_id = client.post("/invoices", json=invoice_payload).json()["id"]
        response = client.post(f"/invoices/{invoice_id}/status", json={"status": "lost"})
        assert response.status_code == 400

    def test_duplicate_and_delete(self, client, invoice_payload):
        """Test duplicating then deleting an invoice."""
        invoice_id = client.post("/invoices", json=invoice_payload).json()["id"]

        copy = client.post(f"/invoices/{invoice_id}/duplicate")
        assert copy.status_code == 201
        assert copy.json()["id"] != invoice_id

        assert client.delete(f"/invoices/{invoice_id}").json()["status"] == "deleted"
        assert client.get(f"/invoices/{invoice_id}").status_code == 404


class TestInventoryEndpoints:
    """Tests for product and stock endpoints."""

    def test_add_and_list_products(self, client):
        """Test adding a product with opening stock."""
        response = client.post("/products", json={"name": "Bolt", "price": 0.5, "stock_quantity": 3, "min_stock_level": 5})
        product = response.json()

        assert response.status_code == 201
        assert product["stockQuantity"] == 3
        assert product["stockStatus"] == "low-stock"
        assert [p["id"] for p in client.get("/products", params={"stock": "low"}).json()] == [product["id"]]

    def test_invalid_product(self, client):
        """Test that an empty product name returns 400."""
        assert client.post("/products", json={"name": ""}).status_code == 400

    def test_update_product(self, client, widget):
        """Test patching catalog fields."""
        data = client.patch(f"/products/{widget.id}", json={"price": 11}).json()
        assert data["price"] == 11

    def test_update_product_requires_changes(self, client, widget):
        """Test that stock cannot be patched directly."""
        response = client.patch(f"/products/{widget.id}", json={"stock_quantity": 99})

        assert response.status_code == 400
        assert client.get(f"/products/{widget.id}").json()["stockQuantity"] == 20

    def test_record_transaction_and_alerts(self, client, widget):
        """Test that a stock-out raises an alert that can be acknowledged."""
        response = client.post("/inventory/transactions", json={
            "product_id": widget.id, "type": "stock-out", "quantity": 20, "reason": "Sold",
        })
        assert response.status_code == 201
        assert client.get(f"/products/{widget.id}").json()["stockQuantity"] == 0

        [alert] = client.get("/inventory/alerts").json()
        assert alert["type"] == "out-of-stock"

        acked = client.post(f"/inventory/alerts/{alert['id']}/acknowledge").json()
        assert acked["acknowledged"] is True
        assert client.get("/inventory/alerts").json() == []
        assert len(client.get("/inventory/alerts", params={"include_acknowledged": True}).json()) == 1

    def test_invalid_transaction(self, client, widget):
        """Test that a negative stock-out returns 400."""
        response = client.post("/inventory/transactions", json={
            "product_id": widget.id, "type": "stock-out", "quantity": -1,
        })
        assert response.status_code == 400

    def test_unknown_alert(self, client):
        """Test acknowledging an unknown alert."""
        assert client.post("/inventory/alerts/nope/acknowledge").status_code == 404

    def test_product_transactions(self, client, widget):
        """Test the product history endpoint."""
        data = client.get(f"/products/{widget.id}/transactions").json()

        assert len(data["transactions"]) == 1
        assert data["summary"]["stock_in"] == 20

    def test_delete_product(self, client, widget):
        """Test deleting a product."""
        assert client.delete(f"/products/{widget.id}").status_code == 200
        assert client.get(f"/products/{widget.id}").status_code == 404


class TestSettingsAndBackup:
    """Tests for settings, backup and statistics endpoints."""

    def test_settings(self, client):
        """Test merging settings."""
        data = client.put("/settings", json={"currencySymbol": "€", "theme": "dark"}).json()

        assert data["currencySymbol"] == "€"
        assert data["invoicePrefix"] == "INV-"
        assert client.get("/settings").json()["theme"] == "dark"

    def test_export_import(self, client, invoice_payload):
        """Test exporting and re-importing."""
        client.post("/invoices", json=invoice_payload)
        exported = client.get("/backup/export").json()

        response = client.post("/backup/import", json=exported)

        assert response.status_code == 200
        assert response.json()["imported_count"] == 1

    def test_import_malformed(self, client):
        """Test that malformed JSON returns 400."""
        response = client.post("/backup/import", content=b"{not json")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid file format"

    def test_stats(self, client, invoice_payload):
        """Test the statistics endpoint."""
        client.post("/invoices", json=invoice_payload)

        data = client.get("/stats", params={"period": "all"}).json()

        assert data["summary"]["total_invoices"] == 1
        assert data["top_customers"][0]["name"] == "Bob Buyer"
