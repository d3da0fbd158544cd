"""Invoice persistence and editing operations."""

import random
import time
import uuid
from dataclasses import replace
from datetime import date
from typing import List, Optional

from ..models.inventory import ProductCatalogItem
from ..models.invoice import Invoice, LineItem, Party, PaymentRecord
from ..storage.key_value_store import INVOICES_KEY, KeyValueStore, dump_collection, get_store, load_collection
from ..utils.exceptions import InvoiceNotFoundError, StorageWriteError
from ..utils.logger import get_error_logger, get_invoice_logger
from ..utils.time_utils import today, utcnow
from . import calculator
from .calculator import Number, to_number
from .inventory_service import InventoryService
from .settings_service import SettingsService

OVERDUE_CANDIDATES = ("sent", "unpaid")


def generate_invoice_id(prefix: str) -> str:
    """``{prefix}{epoch milliseconds}-{0..999}``"""
    timestamp = int(time.time() * 1000)
    return f"{prefix}{timestamp}-{random.randint(0, 999)}"


class InvoiceService:
    """Load, save and edit invoices stored under the invoices key."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        inventory: Optional[InventoryService] = None,
        settings: Optional[SettingsService] = None,
    ):
        self.store = store or get_store()
        self.inventory = inventory or InventoryService(self.store)
        self.settings = settings or SettingsService(self.store)
        self.logger = get_invoice_logger()
        self.error_logger = get_error_logger()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load_invoices(self) -> List[Invoice]:
        return load_collection(self.store, INVOICES_KEY, Invoice.from_dict, self.logger)

    def get_invoice(self, invoice_id: str) -> Invoice:
        for invoice in self.load_invoices():
            if invoice.id == invoice_id:
                return invoice
        raise InvoiceNotFoundError(f"Invoice not found: {invoice_id}", details={"invoice_id": invoice_id})

    def search_invoices(self, term: str = "") -> List[Invoice]:
        """Case-insensitive match on invoice id, customer name or business name."""
        term = term.lower()
        return [
            invoice for invoice in self.load_invoices()
            if term in invoice.id.lower()
            or term in invoice.customer.name.lower()
            or term in invoice.business.name.lower()
        ]

    # ------------------------------------------------------------------
    # Creating
    # ------------------------------------------------------------------

    def new_invoice(
        self,
        business: Optional[Party] = None,
        customer: Optional[Party] = None,
        **fields,
    ) -> Invoice:
        """Draft invoice dated today, seeded from the stored settings."""
        settings = self.settings.load_settings()
        values = {
            "status": "draft",
            "currency": settings.currency_symbol,
            "tax_rate": settings.default_tax_rate,
            "discount_type": settings.default_discount_mode,
        }
        values.update(fields)
        return Invoice(
            id=generate_invoice_id(settings.invoice_prefix),
            date=today(),
            business=business or Party(),
            customer=customer or Party(),
            **values,
        )

    def duplicate_invoice(self, invoice: Invoice) -> Invoice:
        """Unsaved copy with a new id, today's date and draft status."""
        settings = self.settings.load_settings()
        return calculator.recompute_invoice(
            invoice,
            id=generate_invoice_id(settings.invoice_prefix),
            date=today(),
            status="draft",
            payments=(),
            created_at=None,
            updated_at=None,
        )

    def make_line_item(
        self,
        name: str,
        quantity: Number = 1,
        price: Number = 0,
        discount: Number = 0,
        discount_type: Optional[str] = None,
        unit: str = "pcs",
        **fields,
    ) -> LineItem:
        if discount_type is None:
            discount_type = self.settings.load_settings().default_discount_mode
        return LineItem(
            id=uuid.uuid4().hex,
            name=name,
            quantity=to_number(quantity),
            price=to_number(price),
            discount=to_number(discount),
            discount_type=discount_type,
            unit=unit,
            **fields,
        )

    def add_line_item_from_catalog(
        self, invoice: Invoice, product: ProductCatalogItem, quantity: Number = 1
    ) -> Invoice:
        """
        Append a line item copied from a catalog product.

        A short-stock warning is written to the item's internal notes. It
        never blocks the line item.
        """
        settings = self.settings.load_settings()
        warning = ""
        if settings.low_stock_warnings and self.inventory.check_stock_availability(product.id, quantity):
            warning = "Warning: Low stock"
            self.logger.warning(f"Product {product.id} ({product.name}) is short for quantity {quantity}")

        item = LineItem(
            id=uuid.uuid4().hex,
            name=product.name,
            description=product.description,
            quantity=to_number(quantity),
            unit=product.unit,
            price=product.price,
            discount=0,
            discount_type=calculator.PERCENTAGE,
            product_id=product.id,
            tags=product.tags,
            internal_notes=warning,
        )
        return calculator.add_line_item(invoice, item)

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def save_invoice(self, invoice: Invoice, deduct_stock: bool = True) -> Invoice:
        """
        Insert or replace an invoice by id.

        ``updated_at`` is refreshed on every save; ``created_at`` is set on
        the first save only. An invoice that carries its own ``created_at``
        (imported backups) keeps it; one that carries none keeps the stored
        value. With ``auto_deduct_inventory`` on, the first save
        also records stock-outs for catalog-linked line items.

        Raises:
            StorageWriteError: If the invoices cannot be written
        """
        invoices = self.load_invoices()
        now = utcnow()
        index = next((i for i, inv in enumerate(invoices) if inv.id == invoice.id), None)

        if index is not None:
            created_at = invoice.created_at or invoices[index].created_at
            saved = calculator.recompute_invoice(invoice, created_at=created_at, updated_at=now)
            invoices[index] = saved
        else:
            saved = calculator.recompute_invoice(invoice, created_at=invoice.created_at or now, updated_at=now)
            invoices.append(saved)

        try:
            self.store.set(INVOICES_KEY, dump_collection(self.store, INVOICES_KEY, Invoice.from_dict, invoices))
        except StorageWriteError as e:
            self.error_logger.error(f"Error saving invoice {invoice.id}: {e.message}")
            raise StorageWriteError("Failed to save invoice", details={"invoice_id": invoice.id, **e.details})

        self.logger.info(f"Invoice {saved.id} saved (total {saved.total}, balance {saved.balance_remaining})")

        if index is None and deduct_stock and self.settings.load_settings().auto_deduct_inventory:
            self.inventory.deduct_for_invoice(saved)

        return saved

    def delete_invoice(self, invoice_id: str) -> None:
        invoices = self.load_invoices()
        remaining = [inv for inv in invoices if inv.id != invoice_id]
        if len(remaining) == len(invoices):
            raise InvoiceNotFoundError(f"Invoice not found: {invoice_id}", details={"invoice_id": invoice_id})

        try:
            self.store.set(INVOICES_KEY, dump_collection(self.store, INVOICES_KEY, Invoice.from_dict, remaining))
        except StorageWriteError as e:
            self.error_logger.error(f"Error deleting invoice {invoice_id}: {e.message}")
            raise StorageWriteError("Failed to delete invoice", details={"invoice_id": invoice_id, **e.details})

        self.logger.info(f"Invoice {invoice_id} deleted")

    # ------------------------------------------------------------------
    # Payments and status
    # ------------------------------------------------------------------

    def record_payment(
        self,
        invoice_id: str,
        amount: Number,
        method: str = "Cash",
        paid_on: Optional[date] = None,
        notes: str = "",
    ) -> Invoice:
        """
        Append a payment to a stored invoice and save it.

        Raises:
            ValueError: If the amount is not positive
        """
        invoice = self.get_invoice(invoice_id)
        payment = PaymentRecord(
            id=uuid.uuid4().hex,
            amount=to_number(amount),
            method=method,
            date=paid_on or today(),
            notes=notes,
        )
        return self.save_invoice(calculator.add_payment(invoice, payment))

    def remove_payment(self, invoice_id: str, payment_id: str) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        return self.save_invoice(calculator.remove_payment(invoice, payment_id))

    def set_status(self, invoice_id: str, status: str) -> Invoice:
        return self.save_invoice(replace(self.get_invoice(invoice_id), status=status))

    def mark_overdue(self, as_of: Optional[date] = None) -> List[Invoice]:
        """Flag sent or unpaid invoices past their due date with a balance left."""
        as_of = as_of or today()
        flagged = []

        for invoice in self.load_invoices():
            if (
                invoice.status in OVERDUE_CANDIDATES
                and invoice.due_date is not None
                and invoice.due_date < as_of
                and invoice.balance_remaining > 0
            ):
                flagged.append(self.save_invoice(replace(invoice, status="overdue")))

        if flagged:
            self.logger.info(f"Marked {len(flagged)} invoice(s) overdue")
        return flagged
