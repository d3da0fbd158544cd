"""Product catalog, inventory transaction and stock alert data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ..services.calculator import Number, to_number
from ..utils.time_utils import parse_iso_datetime, to_utc_z

STOCK_IN = "stock-in"
STOCK_OUT = "stock-out"
ADJUSTMENT = "adjustment"
TRANSACTION_TYPES = (STOCK_IN, STOCK_OUT, ADJUSTMENT)

LOW_STOCK = "low-stock"
OUT_OF_STOCK = "out-of-stock"
ALERT_TYPES = (LOW_STOCK, OUT_OF_STOCK)

PRODUCT_CATEGORIES = (
    "Electronics", "Clothing", "Food & Beverage", "Health & Beauty", "Home & Garden",
    "Books", "Sports", "Tools", "Services", "Other",
)


def _optional_number(value: Any) -> Optional[Number]:
    return None if value is None else to_number(value)


@dataclass(frozen=True)
class ProductCatalogItem:
    """
    A catalog product.

    ``stock_quantity`` is ``None`` for products whose stock is not tracked.
    When tracked it only changes through the inventory ledger.
    """

    id: str
    name: str
    price: Number = 0
    unit: str = "pcs"
    description: str = ""
    cost_price: Optional[Number] = None
    category: Optional[str] = None
    stock_quantity: Optional[Number] = None
    min_stock_level: Optional[Number] = None
    supplier: Optional[str] = None
    barcode: Optional[str] = None
    last_restocked_date: Optional[datetime] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("Product id cannot be empty")

        if not self.name:
            raise ValueError("Product name cannot be empty")

        if self.stock_quantity is not None and self.stock_quantity < 0:
            raise ValueError("Stock quantity cannot be negative")

        object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def current_stock(self) -> Number:
        """Stock on hand, counting untracked stock as zero."""
        return to_number(self.stock_quantity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "costPrice": self.cost_price,
            "unit": self.unit,
            "category": self.category,
            "stockQuantity": self.stock_quantity,
            "minStockLevel": self.min_stock_level,
            "supplier": self.supplier,
            "barcode": self.barcode,
            "lastRestockedDate": to_utc_z(self.last_restocked_date),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductCatalogItem":
        stock = _optional_number(data.get("stockQuantity"))
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            price=to_number(data.get("price")),
            unit=data.get("unit") or "pcs",
            description=data.get("description") or "",
            cost_price=_optional_number(data.get("costPrice")),
            category=data.get("category"),
            stock_quantity=max(0, stock) if stock is not None else None,
            min_stock_level=_optional_number(data.get("minStockLevel")),
            supplier=data.get("supplier"),
            barcode=data.get("barcode"),
            last_restocked_date=parse_iso_datetime(data.get("lastRestockedDate")),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class InventoryTransaction:
    """An append-only ledger entry. Never mutated once recorded."""

    id: str
    product_id: str
    type: str
    quantity: Number
    date: datetime
    reason: str = ""
    cost_price: Optional[Number] = None
    reference: Optional[str] = None  # invoice id for stock-outs
    notes: Optional[str] = None

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("Product id cannot be empty")

        if self.type not in TRANSACTION_TYPES:
            raise ValueError("Type must be 'stock-in', 'stock-out' or 'adjustment'")

        # Only adjustments carry a sign
        if self.type != ADJUSTMENT and self.quantity < 0:
            raise ValueError("Quantity cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "date": to_utc_z(self.date),
            "costPrice": self.cost_price,
            "reference": self.reference,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InventoryTransaction":
        return cls(
            id=str(data["id"]),
            product_id=str(data["productId"]),
            type=data["type"],
            quantity=to_number(data.get("quantity")),
            date=parse_iso_datetime(data["date"]),
            reason=data.get("reason") or "",
            cost_price=_optional_number(data.get("costPrice")),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class StockAlert:
    """A derived low-stock or out-of-stock warning for one product."""

    id: str
    product_id: str
    type: str
    threshold: Number
    current_stock: Number
    date: datetime
    acknowledged: bool = False

    def __post_init__(self):
        if self.type not in ALERT_TYPES:
            raise ValueError("Type must be 'low-stock' or 'out-of-stock'")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.product_id, self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "type": self.type,
            "threshold": self.threshold,
            "currentStock": self.current_stock,
            "date": to_utc_z(self.date),
            "acknowledged": self.acknowledged,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockAlert":
        return cls(
            id=str(data["id"]),
            product_id=str(data["productId"]),
            type=data["type"],
            threshold=to_number(data.get("threshold")),
            current_stock=to_number(data.get("currentStock")),
            date=parse_iso_datetime(data["date"]),
            acknowledged=bool(data.get("acknowledged", False)),
        )
