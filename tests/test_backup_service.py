"""Tests for backup export and import."""

import json
from unittest.mock import patch

import pytest

from invoice_workbench.services.backup_service import BackupService
from invoice_workbench.services.invoice_service import InvoiceService
from invoice_workbench.storage.key_value_store import MemoryStore
from invoice_workbench.utils.exceptions import ImportFailedError, StorageWriteError


@pytest.fixture
def backup(invoice_service):
    """Create a BackupService over the test invoice service."""
    return BackupService(invoice_service)


class TestExport:
    """Tests for exporting data."""

    def test_export_data(self, backup, invoice_service, sample_invoice):
        """Test the snapshot layout."""
        invoice_service.save_invoice(sample_invoice)

        data = backup.export_data()

        assert set(data) == {"invoices", "settings", "exportDate"}
        assert data["invoices"][0]["id"] == sample_invoice.id
        assert data["settings"]["invoicePrefix"] == "INV-"
        assert data["exportDate"].endswith("Z")

    def test_export_to_file(self, backup, invoice_service, sample_invoice, tmp_path):
        """Test writing a backup file."""
        invoice_service.save_invoice(sample_invoice)

        path = backup.export_to_file(tmp_path / "backups" / "backup.json")

        assert json.loads(path.read_text())["invoices"][0]["id"] == sample_invoice.id


class TestImport:
    """Tests for importing data."""

    def test_round_trip_into_empty_store(self, backup, invoice_service, sample_invoice, settings_service):
        """Test that an export imports into a fresh store unchanged."""
        settings_service.update_settings(currency_symbol="€")
        invoice_service.save_invoice(sample_invoice)
        document = json.dumps(backup.export_data())

        target = InvoiceService(MemoryStore())
        result = BackupService(target).import_data(document)

        assert result.success is True
        assert result.imported_count == 1
        assert result.settings_replaced is True
        assert target.get_invoice(sample_invoice.id).total == pytest.approx(44.6)
        assert target.settings.load_settings().currency_symbol == "€"

    def test_invalid_json(self, backup):
        """Test that malformed JSON raises ImportFailedError."""
        with pytest.raises(ImportFailedError, match="Invalid file format"):
            backup.import_data("{broken")

    def test_non_object_document(self, backup):
        """Test that a JSON list is rejected."""
        with pytest.raises(ImportFailedError, match="Invalid file format"):
            backup.import_data(b"[]")

    def test_bad_invoice_is_reported(self, backup, invoice_service, sample_invoice):
        """Test that an unparseable invoice is skipped and reported."""
        document = {"invoices": [sample_invoice.to_dict(), {"id": "INV-bad", "status": "lost", "date": "2024-01-01"}]}

        result = backup.import_data(document)

        assert result.success is False
        assert result.imported_count == 1
        assert result.failed_count == 1
        assert result.errors[0].invoice_id == "INV-bad"
        assert result.settings_replaced is False
        assert [inv.id for inv in invoice_service.load_invoices()] == [sample_invoice.id]

    def test_import_upserts(self, backup, invoice_service, sample_invoice):
        """Test that importing an existing id replaces it."""
        invoice_service.save_invoice(sample_invoice)
        data = sample_invoice.to_dict()
        data["notes"] = "from backup"

        backup.import_data({"invoices": [data]})

        [invoice] = invoice_service.load_invoices()
        assert invoice.notes == "from backup"

    def test_import_does_not_deduct_stock(self, backup, invoice_service, settings_service, inventory, widget):
        """Test that imported invoices never move stock."""
        settings_service.update_settings(auto_deduct_inventory=True)
        invoice = invoice_service.add_line_item_from_catalog(invoice_service.new_invoice(), widget, 5)

        backup.import_data({"invoices": [invoice.to_dict()]})

        assert inventory.get_product(widget.id).stock_quantity == 20

    def test_write_failure_aborts(self, backup, sample_invoice, store):
        """Test that a store failure raises ImportFailedError."""
        with patch.object(store, "_write_all", side_effect=StorageWriteError("disk full")):
            with pytest.raises(ImportFailedError, match="Import failed"):
                backup.import_data({"invoices": [sample_invoice.to_dict()]})

    def test_import_from_missing_file(self, backup, tmp_path):
        """Test that an unreadable file raises ImportFailedError."""
        with pytest.raises(ImportFailedError, match="Cannot read backup file"):
            backup.import_from_file(tmp_path / "missing.json")
