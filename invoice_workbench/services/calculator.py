"""Line-item calculator and invoice totals engine.

Pure functions only; nothing here touches the store. Every numeric input the
engine reads goes through ``to_number`` first, so missing or garbled values
count as zero instead of raising.

Items and invoices may be model instances or plain mappings with the stored
camelCase keys, which lets raw imported data be totalled before it is parsed.
"""

import math
import numbers
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Union

if TYPE_CHECKING:
    from ..models.invoice import Invoice, LineItem, PaymentRecord

Number = Union[int, float]

PERCENTAGE = "percentage"
FLAT = "flat"
DISCOUNT_TYPES = (PERCENTAGE, FLAT)

UNPAID = "unpaid"
PARTIALLY_PAID = "partially-paid"
FULLY_PAID = "fully-paid"


def to_number(value: Any) -> Number:
    """
    Coerce external numeric input.

    ``None``, NaN, infinities, booleans and unparseable strings become ``0``.
    Numeric strings are parsed; integral strings come back as ``int``.
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
        if math.isfinite(value) and value.is_integer():
            return int(value)

    if isinstance(value, numbers.Integral):
        return int(value)

    if isinstance(value, numbers.Number):
        try:
            value = float(value)
        except TypeError:
            return 0
        return value if math.isfinite(value) else 0

    return 0


def _read(obj: Any, name: str, alias: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(alias, obj.get(name, default))
    return getattr(obj, name, default)


def compute_line_total(item: Any) -> Number:
    """
    Total of a single line item.

    Percentage discounts are not floored, so a discount above 100% yields a
    negative total. Flat discounts are floored at zero. No rounding.
    """
    quantity = to_number(_read(item, "quantity", "quantity"))
    price = to_number(_read(item, "price", "price"))
    discount = to_number(_read(item, "discount", "discount"))
    base = quantity * price

    if _read(item, "discount_type", "discountType") == PERCENTAGE:
        return base - base * discount / 100
    return max(0, base - discount)


@dataclass(frozen=True)
class InvoiceTotals:
    """Derived financial fields of an invoice."""

    subtotal: Number = 0
    discount_amount: Number = 0
    tax_amount: Number = 0
    total: Number = 0
    amount_paid: Number = 0
    balance_remaining: Number = 0

    @property
    def taxable_amount(self) -> Number:
        return self.subtotal - self.discount_amount

    def to_dict(self) -> Dict[str, Number]:
        return {
            "subtotal": self.subtotal,
            "discountAmount": self.discount_amount,
            "taxAmount": self.tax_amount,
            "total": self.total,
            "amountPaid": self.amount_paid,
            "balanceRemaining": self.balance_remaining,
        }


def compute_invoice_totals(invoice: Any) -> InvoiceTotals:
    """
    Aggregate line items, invoice-level discount, tax, shipping and payments.

    The invoice discount is not clamped: a flat discount larger than the
    subtotal drives the taxable amount (and the tax) negative. Only the
    balance remaining is floored at zero.
    """
    line_items: Iterable[Any] = _read(invoice, "line_items", "lineItems") or ()
    payments: Iterable[Any] = _read(invoice, "payments", "payments") or ()

    subtotal = sum((compute_line_total(item) for item in line_items), 0)

    discount_value = to_number(_read(invoice, "discount_value", "discountValue"))
    if _read(invoice, "discount_type", "discountType") == PERCENTAGE:
        discount_amount = subtotal * discount_value / 100
    else:
        discount_amount = discount_value

    taxable_amount = subtotal - discount_amount
    tax_amount = taxable_amount * to_number(_read(invoice, "tax_rate", "taxRate")) / 100
    total = taxable_amount + tax_amount + to_number(_read(invoice, "shipping_amount", "shippingAmount"))

    amount_paid = sum((to_number(_read(p, "amount", "amount")) for p in payments), 0)

    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=total,
        amount_paid=amount_paid,
        balance_remaining=max(0, total - amount_paid),
    )


# ------------------------------------------------------------------
# Updaters: the only way derived invoice fields change
# ------------------------------------------------------------------

def recompute_invoice(invoice: "Invoice", **changes) -> "Invoice":
    """
    Return a new invoice with ``changes`` applied and every derived field
    recomputed. Calling it twice gives the same value as calling it once.
    """
    return replace(invoice, **changes)


def add_line_item(invoice: "Invoice", item: "LineItem") -> "Invoice":
    return recompute_invoice(invoice, line_items=tuple(invoice.line_items) + (item,))


def update_line_item(invoice: "Invoice", item_id: str, **updates) -> "Invoice":
    """Replace fields of one line item; unknown ids leave the invoice as is."""
    items = tuple(
        replace(item, **updates) if item.id == item_id else item
        for item in invoice.line_items
    )
    return recompute_invoice(invoice, line_items=items)


def remove_line_item(invoice: "Invoice", item_id: str) -> "Invoice":
    items = tuple(item for item in invoice.line_items if item.id != item_id)
    return recompute_invoice(invoice, line_items=items)


def move_line_item(invoice: "Invoice", item_id: str, target_id: str) -> "Invoice":
    """Move a line item to the position currently held by ``target_id``."""
    items = list(invoice.line_items)
    ids = [item.id for item in items]
    if item_id == target_id or item_id not in ids or target_id not in ids:
        return recompute_invoice(invoice)

    target_index = ids.index(target_id)
    moved = items.pop(ids.index(item_id))
    items.insert(target_index, moved)
    return recompute_invoice(invoice, line_items=tuple(items))


def add_payment(invoice: "Invoice", payment: "PaymentRecord") -> "Invoice":
    return recompute_invoice(invoice, payments=tuple(invoice.payments) + (payment,))


def remove_payment(invoice: "Invoice", payment_id: str) -> "Invoice":
    payments = tuple(p for p in invoice.payments if p.id != payment_id)
    return recompute_invoice(invoice, payments=payments)


def payment_status(invoice: Any) -> str:
    """Classify an invoice as unpaid, partially paid or fully paid."""
    paid = to_number(_read(invoice, "amount_paid", "amountPaid"))
    total = to_number(_read(invoice, "total", "total"))

    if paid == 0:
        return UNPAID
    if paid >= total:
        return FULLY_PAID
    return PARTIALLY_PAID
