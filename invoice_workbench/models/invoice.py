"""Invoice, line item, party and payment data models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from ..services.calculator import (
    DISCOUNT_TYPES,
    PERCENTAGE,
    Number,
    compute_invoice_totals,
    compute_line_total,
    to_number,
)
from ..utils.time_utils import parse_iso_date, parse_iso_datetime, to_iso_date, to_utc_z

INVOICE_STATUSES = ("draft", "sent", "paid", "unpaid", "overdue")

UNIT_TYPES = (
    "pcs", "hours", "kg", "liters", "meters", "boxes", "sets",
    "units", "days", "months", "yards", "feet", "dozen",
)

PAYMENT_METHODS = (
    "Cash", "Bank Transfer", "Credit Card", "UPI", "PayPal", "Stripe", "Check", "Other",
)

# Stored keys the Invoice model owns; anything else lands in ``metadata``.
_INVOICE_KEYS = {
    "id", "date", "dueDate", "status", "business", "customer", "lineItems",
    "subtotal", "taxRate", "taxAmount", "discountType", "discountValue",
    "discountAmount", "shippingAmount", "total", "currency", "payments",
    "amountPaid", "balanceRemaining", "notes", "terms", "paymentInstructions",
    "internalNotes", "createdAt", "updatedAt",
}


@dataclass(frozen=True)
class Party:
    """Business or customer block printed on an invoice."""

    name: str = ""
    address: str = ""
    email: str = ""
    phone: str = ""
    logo: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "address": self.address,
            "email": self.email,
            "phone": self.phone,
        }
        if self.logo is not None:
            data["logo"] = self.logo
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Party":
        data = data or {}
        return cls(
            name=data.get("name") or "",
            address=data.get("address") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            logo=data.get("logo"),
        )


@dataclass(frozen=True)
class LineItem:
    """One priced row on an invoice. ``total`` is always derived."""

    id: str
    name: str = ""
    quantity: Number = 1
    unit: str = "pcs"
    price: Number = 0
    discount: Number = 0
    discount_type: str = PERCENTAGE
    description: str = ""
    product_id: Optional[str] = None
    tags: Tuple[str, ...] = ()
    internal_notes: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Line item id cannot be empty")

        if self.discount_type not in DISCOUNT_TYPES:
            raise ValueError("Discount type must be 'percentage' or 'flat'")

        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def total(self) -> Number:
        return compute_line_total(self)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "price": self.price,
            "discount": self.discount,
            "discountType": self.discount_type,
            "total": self.total,
            "tags": list(self.tags),
            "internalNotes": self.internal_notes,
        }
        if self.product_id is not None:
            data["productId"] = self.product_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        """Create instance from dictionary. A stored ``total`` is ignored."""
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            quantity=to_number(data.get("quantity")),
            unit=data.get("unit") or "pcs",
            price=to_number(data.get("price")),
            discount=to_number(data.get("discount")),
            discount_type=data.get("discountType") or PERCENTAGE,
            description=data.get("description") or "",
            product_id=data.get("productId"),
            tags=tuple(data.get("tags") or ()),
            internal_notes=data.get("internalNotes") or "",
        )


@dataclass(frozen=True)
class PaymentRecord:
    """A payment received against an invoice."""

    id: str
    amount: Number
    method: str = "Cash"
    date: Optional[date] = None
    notes: str = ""

    def __post_init__(self):
        if to_number(self.amount) <= 0:
            raise ValueError("Payment amount must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "method": self.method,
            "date": to_iso_date(self.date),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentRecord":
        return cls(
            id=str(data["id"]),
            amount=to_number(data.get("amount")),
            method=data.get("method") or "Cash",
            date=parse_iso_date(data.get("date")),
            notes=data.get("notes") or "",
        )


@dataclass(frozen=True)
class Invoice:
    """
    An invoice and its derived totals.

    The derived fields (``subtotal`` through ``balance_remaining``) cannot be
    passed to the constructor. They are filled in by the totals engine every
    time an instance is built, so use ``recompute_invoice`` (or
    ``dataclasses.replace``) to change inputs and get a consistent value back.
    """

    id: str
    date: date
    business: Party = field(default_factory=Party)
    customer: Party = field(default_factory=Party)
    line_items: Tuple[LineItem, ...] = ()
    status: str = "draft"
    due_date: Optional[date] = None
    tax_rate: Number = 0
    discount_type: str = PERCENTAGE
    discount_value: Number = 0
    shipping_amount: Number = 0
    currency: str = "$"
    payments: Tuple[PaymentRecord, ...] = ()
    notes: str = ""
    terms: str = ""
    payment_instructions: str = ""
    internal_notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False)

    subtotal: Number = field(init=False, default=0)
    discount_amount: Number = field(init=False, default=0)
    tax_amount: Number = field(init=False, default=0)
    total: Number = field(init=False, default=0)
    amount_paid: Number = field(init=False, default=0)
    balance_remaining: Number = field(init=False, default=0)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Invoice id cannot be empty")

        if self.status not in INVOICE_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(INVOICE_STATUSES)}")

        if self.discount_type not in DISCOUNT_TYPES:
            raise ValueError("Discount type must be 'percentage' or 'flat'")

        object.__setattr__(self, "line_items", tuple(self.line_items))
        object.__setattr__(self, "payments", tuple(self.payments))

        totals = compute_invoice_totals(self)
        object.__setattr__(self, "subtotal", totals.subtotal)
        object.__setattr__(self, "discount_amount", totals.discount_amount)
        object.__setattr__(self, "tax_amount", totals.tax_amount)
        object.__setattr__(self, "total", totals.total)
        object.__setattr__(self, "amount_paid", totals.amount_paid)
        object.__setattr__(self, "balance_remaining", totals.balance_remaining)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored camelCase representation."""
        data = dict(self.metadata)
        data.update({
            "id": self.id,
            "date": to_iso_date(self.date),
            "dueDate": to_iso_date(self.due_date),
            "status": self.status,
            "business": self.business.to_dict(),
            "customer": self.customer.to_dict(),
            "lineItems": [item.to_dict() for item in self.line_items],
            "subtotal": self.subtotal,
            "taxRate": self.tax_rate,
            "taxAmount": self.tax_amount,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "discountAmount": self.discount_amount,
            "shippingAmount": self.shipping_amount,
            "total": self.total,
            "currency": self.currency,
            "payments": [payment.to_dict() for payment in self.payments],
            "amountPaid": self.amount_paid,
            "balanceRemaining": self.balance_remaining,
            "notes": self.notes,
            "terms": self.terms,
            "paymentInstructions": self.payment_instructions,
            "internalNotes": self.internal_notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        """
        Create instance from dictionary.

        Stored derived fields are ignored and recomputed; unknown keys are
        kept in ``metadata``.
        """
        return cls(
            id=str(data["id"]),
            date=parse_iso_date(data["date"]),
            due_date=parse_iso_date(data.get("dueDate")),
            status=data.get("status") or "draft",
            business=Party.from_dict(data.get("business")),
            customer=Party.from_dict(data.get("customer")),
            line_items=tuple(LineItem.from_dict(item) for item in data.get("lineItems") or ()),
            tax_rate=to_number(data.get("taxRate")),
            discount_type=data.get("discountType") or PERCENTAGE,
            discount_value=to_number(data.get("discountValue")),
            shipping_amount=to_number(data.get("shippingAmount")),
            currency=data.get("currency") or "$",
            payments=tuple(PaymentRecord.from_dict(p) for p in data.get("payments") or ()),
            notes=data.get("notes") or "",
            terms=data.get("terms") or "",
            payment_instructions=data.get("paymentInstructions") or "",
            internal_notes=data.get("internalNotes") or "",
            created_at=parse_iso_datetime(data.get("createdAt")),
            updated_at=parse_iso_datetime(data.get("updatedAt")),
            metadata={k: v for k, v in data.items() if k not in _INVOICE_KEYS},
        )
