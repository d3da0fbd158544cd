"""Whole-state export and import of invoices and settings."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..models.import_result import ImportResult
from ..models.invoice import Invoice
from ..models.settings import AppSettings
from ..utils.exceptions import ImportFailedError, StorageWriteError
from ..utils.logger import get_error_logger, get_invoice_logger
from ..utils.time_utils import to_utc_z, utcnow
from .invoice_service import InvoiceService


class BackupService:
    """
    Snapshot format: ``{"invoices": [...], "settings": {...}, "exportDate": "..."}``.

    There is no schema version. Import upserts invoices one at a time and
    replaces settings wholesale; nothing is rolled back when a later step
    fails.
    """

    def __init__(self, invoices: Optional[InvoiceService] = None):
        self.invoices = invoices or InvoiceService()
        self.logger = get_invoice_logger()
        self.error_logger = get_error_logger()

    def export_data(self) -> Dict[str, Any]:
        return {
            "invoices": [invoice.to_dict() for invoice in self.invoices.load_invoices()],
            "settings": self.invoices.settings.load_settings().to_dict(),
            "exportDate": to_utc_z(utcnow()),
        }

    def export_to_file(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.export_data()
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        self.logger.info(f"Exported {len(data['invoices'])} invoice(s) to {path}")
        return path

    def import_data(self, document: Union[str, bytes, Dict[str, Any]]) -> ImportResult:
        """
        Apply a backup document.

        Individual invoices that fail to parse are reported in the result and
        skipped.

        Raises:
            ImportFailedError: If the document is not a JSON object, or a
                store write fails part way
        """
        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except ValueError as e:
                self.error_logger.error(f"Import failed: invalid JSON ({str(e)})")
                raise ImportFailedError("Invalid file format", details={"error": str(e)})

        if not isinstance(document, dict):
            raise ImportFailedError("Invalid file format", details={"error": "expected a JSON object"})

        result = ImportResult(success=True, export_date=document.get("exportDate"))
        invoices = document.get("invoices") or []
        result.total_items = len(invoices) if isinstance(invoices, list) else 0

        try:
            for raw in invoices if isinstance(invoices, list) else ():
                invoice_id = str(raw.get("id")) if isinstance(raw, dict) else "?"
                try:
                    invoice = Invoice.from_dict(raw)
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    result.add_error(invoice_id, type(e).__name__, str(e))
                    self.logger.warning(f"Skipping invoice {invoice_id} from backup: {str(e)}")
                    continue

                self.invoices.save_invoice(invoice, deduct_stock=False)
                result.imported_count += 1

            settings = document.get("settings")
            if isinstance(settings, dict):
                self.invoices.settings.save_settings(AppSettings.from_dict(settings))
                result.settings_replaced = True

        except (StorageWriteError, ValueError, TypeError) as e:
            message = e.message if isinstance(e, StorageWriteError) else str(e)
            self.error_logger.error(
                f"Import failed after {result.imported_count} invoice(s): {message}"
            )
            raise ImportFailedError(
                f"Import failed: {message}",
                details={"imported_count": result.imported_count}
            )

        result.finalize()
        self.logger.info(result.get_summary())
        return result

    def import_from_file(self, path: Union[str, Path]) -> ImportResult:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ImportFailedError(f"Cannot read backup file: {str(e)}", details={"path": str(path)})
        return self.import_data(text)
