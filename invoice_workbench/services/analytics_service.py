"""Revenue and inventory statistics."""

from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, Optional

from ..models.invoice import Invoice
from ..utils.time_utils import today
from .calculator import to_number
from .inventory_service import InventoryService
from .invoice_service import InvoiceService

PERIOD_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "1y": 12}


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    # Clamp the day for shorter months
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month + 1, candidate)
        except ValueError:
            continue
    raise ValueError(f"Cannot step back {months} months from {day}")


def period_start(period: str, as_of: Optional[date] = None) -> Optional[date]:
    """First day included in ``period``; ``None`` means no lower bound."""
    if period not in PERIOD_MONTHS:
        return None
    return _months_back(as_of or today(), PERIOD_MONTHS[period])


class AnalyticsService:
    """Aggregates over stored invoices and the product catalog."""

    def __init__(
        self,
        invoices: Optional[InvoiceService] = None,
        inventory: Optional[InventoryService] = None,
    ):
        self.invoices = invoices or InvoiceService()
        self.inventory = inventory or self.invoices.inventory

    def filter_invoices(self, period: str = "3m", as_of: Optional[date] = None) -> List[Invoice]:
        start = period_start(period, as_of)
        invoices = self.invoices.load_invoices()
        if start is None:
            return invoices
        return [inv for inv in invoices if inv.date >= start]

    def summary(self, period: str = "3m", as_of: Optional[date] = None) -> Dict[str, Any]:
        invoices = self.filter_invoices(period, as_of)
        count = len(invoices)
        revenue = sum((inv.total for inv in invoices), 0)
        paid = sum(1 for inv in invoices if inv.status == "paid")
        overdue = sum(1 for inv in invoices if inv.status == "overdue")

        return {
            "total_revenue": revenue,
            "total_invoices": count,
            "average_invoice": revenue / count if count else 0,
            "paid_count": paid,
            "overdue_count": overdue,
            "payment_rate": paid / count * 100 if count else 0,
            "outstanding_balance": sum((inv.balance_remaining for inv in invoices), 0),
        }

    def monthly_revenue(self, period: str = "3m", as_of: Optional[date] = None) -> List[Dict[str, Any]]:
        """Revenue and invoice count per calendar month, oldest first."""
        months: Dict[str, Dict[str, Any]] = OrderedDict()
        for invoice in sorted(self.filter_invoices(period, as_of), key=lambda inv: inv.date):
            key = invoice.date.strftime("%Y-%m")
            bucket = months.setdefault(key, {"month": key, "revenue": 0, "invoices": 0})
            bucket["revenue"] += invoice.total
            bucket["invoices"] += 1
        return list(months.values())

    def top_customers(self, period: str = "3m", limit: int = 5, as_of: Optional[date] = None) -> List[Dict[str, Any]]:
        customers: Dict[str, Dict[str, Any]] = {}
        for invoice in self.filter_invoices(period, as_of):
            name = invoice.customer.name or "Unknown"
            entry = customers.setdefault(name, {"name": name, "revenue": 0, "invoices": 0})
            entry["revenue"] += invoice.total
            entry["invoices"] += 1
        return sorted(customers.values(), key=lambda c: c["revenue"], reverse=True)[:limit]

    def inventory_value(self) -> Dict[str, Any]:
        """Stock valued at cost and at list price."""
        products = self.inventory.load_products()
        return {
            "products": len(products),
            "units": sum((p.current_stock for p in products), 0),
            "cost_value": sum((p.current_stock * to_number(p.cost_price) for p in products), 0),
            "retail_value": sum((p.current_stock * to_number(p.price) for p in products), 0),
        }
