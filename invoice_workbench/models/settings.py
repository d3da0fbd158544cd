"""Application settings data model."""

from dataclasses import dataclass, field
from typing import Any, Dict

from ..services.calculator import DISCOUNT_TYPES, PERCENTAGE, Number, to_number
from ..utils.config import get_config

# Keys owned by AppSettings; the rest (print layout, theme, QR options)
# belong to presentation and are passed through in ``metadata``.
_SETTINGS_KEYS = {
    "currencySymbol", "decimalPrecision", "invoicePrefix", "defaultTaxRate",
    "defaultDiscountMode", "lowStockWarnings", "autoDeductInventory",
}


@dataclass(frozen=True)
class AppSettings:
    """User-editable settings that affect invoices and the inventory ledger."""

    currency_symbol: str = "$"
    decimal_precision: int = 2
    invoice_prefix: str = "INV-"
    default_tax_rate: Number = 0
    default_discount_mode: str = PERCENTAGE
    low_stock_warnings: bool = True
    auto_deduct_inventory: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if self.default_discount_mode not in DISCOUNT_TYPES:
            raise ValueError("Default discount mode must be 'percentage' or 'flat'")

    @classmethod
    def defaults(cls) -> "AppSettings":
        """Settings used before anything has been stored."""
        d = get_config().settings_defaults
        return cls(
            currency_symbol=d.currency_symbol,
            decimal_precision=d.decimal_precision,
            invoice_prefix=d.invoice_prefix,
            default_tax_rate=d.default_tax_rate,
            default_discount_mode=d.default_discount_mode,
            low_stock_warnings=d.low_stock_warnings,
            auto_deduct_inventory=d.auto_deduct_inventory,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.metadata)
        data.update({
            "currencySymbol": self.currency_symbol,
            "decimalPrecision": self.decimal_precision,
            "invoicePrefix": self.invoice_prefix,
            "defaultTaxRate": self.default_tax_rate,
            "defaultDiscountMode": self.default_discount_mode,
            "lowStockWarnings": self.low_stock_warnings,
            "autoDeductInventory": self.auto_deduct_inventory,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        """Create instance from dictionary, filling gaps from the defaults."""
        base = cls.defaults()
        precision = data.get("decimalPrecision")
        return cls(
            currency_symbol=data.get("currencySymbol", base.currency_symbol),
            decimal_precision=int(to_number(precision)) if precision is not None else base.decimal_precision,
            invoice_prefix=data.get("invoicePrefix", base.invoice_prefix),
            default_tax_rate=to_number(data.get("defaultTaxRate", base.default_tax_rate)),
            default_discount_mode=data.get("defaultDiscountMode") or base.default_discount_mode,
            low_stock_warnings=bool(data.get("lowStockWarnings", base.low_stock_warnings)),
            auto_deduct_inventory=bool(data.get("autoDeductInventory", base.auto_deduct_inventory)),
            metadata={k: v for k, v in data.items() if k not in _SETTINGS_KEYS},
        )
