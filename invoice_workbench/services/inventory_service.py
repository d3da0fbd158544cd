"""Inventory ledger: stock transactions, product stock and stock alerts.

Stock on hand is a counter that never goes below zero:

  - stock-in(q):    stock + q
  - stock-out(q):   max(0, stock - q)   (no backorders; never an error)
  - adjustment(q):  max(0, stock + q)   (q is signed)

The floor is applied after every transaction, so replaying the ledger in
recorded order reproduces the stored stock of every product whose stock was
built through the ledger.

The alert set is derived: after every transaction it is recomputed for all
products and replaces the stored set. Acknowledgements survive the
recomputation, matched by ``(product_id, type)``.
"""

import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.inventory import (
    ADJUSTMENT,
    LOW_STOCK,
    OUT_OF_STOCK,
    STOCK_IN,
    STOCK_OUT,
    InventoryTransaction,
    ProductCatalogItem,
    StockAlert,
)
from ..storage.key_value_store import (
    INVENTORY_TRANSACTIONS_KEY,
    PRODUCTS_KEY,
    STOCK_ALERTS_KEY,
    KeyValueStore,
    dump_collection,
    get_store,
    load_collection,
)
from ..utils.config import get_config
from ..utils.exceptions import AlertNotFoundError, ProductNotFoundError
from ..utils.logger import get_inventory_logger
from ..utils.time_utils import utcnow
from .calculator import Number, to_number

IN_STOCK = "in-stock"


def apply_transaction(stock: Number, type: str, quantity: Number) -> Number:
    """Stock after one transaction, floored at zero."""
    stock = to_number(stock)
    quantity = to_number(quantity)

    if type == STOCK_IN:
        return max(0, stock + quantity)
    if type == STOCK_OUT:
        return max(0, stock - quantity)
    if type == ADJUSTMENT:
        return max(0, stock + quantity)
    raise ValueError(f"Unknown transaction type: {type}")


def replay_stock(
    transactions: Iterable[InventoryTransaction],
    product_id: str,
    initial: Number = 0,
) -> Number:
    """Fold a product's transactions, in recorded order, into a stock level."""
    stock = initial
    for transaction in transactions:
        if transaction.product_id == product_id:
            stock = apply_transaction(stock, transaction.type, transaction.quantity)
    return stock


def stock_status(product: ProductCatalogItem) -> str:
    """``out-of-stock``, ``low-stock`` or ``in-stock`` for one product."""
    stock = product.current_stock
    if stock == 0:
        return OUT_OF_STOCK
    if stock <= to_number(product.min_stock_level):
        return LOW_STOCK
    return IN_STOCK


def compute_alerts(
    products: Iterable[ProductCatalogItem],
    previous: Optional[Iterable[StockAlert]] = None,
) -> List[StockAlert]:
    """
    Derive the full alert set from current stock.

    Out-of-stock takes precedence over low-stock, so each product yields at
    most one alert. Alerts matching an acknowledged alert in ``previous``
    stay acknowledged.
    """
    acknowledged = {alert.key for alert in previous or () if alert.acknowledged}
    now = utcnow()
    alerts = []

    for product in products:
        status = stock_status(product)
        if status == IN_STOCK:
            continue

        threshold = 0 if status == OUT_OF_STOCK else to_number(product.min_stock_level)
        alerts.append(StockAlert(
            id=f"{product.id}-{status}",
            product_id=product.id,
            type=status,
            threshold=threshold,
            current_stock=product.current_stock,
            date=now,
            acknowledged=(product.id, status) in acknowledged,
        ))

    return alerts


class InventoryService:
    """Product catalog and stock ledger backed by the key-value store."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or get_store()
        self.config = get_config()
        self.logger = get_inventory_logger()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_products(self) -> List[ProductCatalogItem]:
        return load_collection(self.store, PRODUCTS_KEY, ProductCatalogItem.from_dict, self.logger)

    def load_transactions(self) -> List[InventoryTransaction]:
        return load_collection(
            self.store, INVENTORY_TRANSACTIONS_KEY, InventoryTransaction.from_dict, self.logger
        )

    def load_alerts(self) -> List[StockAlert]:
        return load_collection(self.store, STOCK_ALERTS_KEY, StockAlert.from_dict, self.logger)

    def get_product(self, product_id: str) -> Optional[ProductCatalogItem]:
        for product in self.load_products():
            if product.id == product_id:
                return product
        return None

    def list_products(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        stock_filter: Optional[str] = None,
    ) -> List[ProductCatalogItem]:
        """
        Filter the catalog.

        Args:
            search: Case-insensitive match on name or description
            category: Exact category
            stock_filter: ``available`` (stock > 0), ``low`` (at or under the
                minimum level, out of stock included) or ``out`` (zero)
        """
        term = (search or "").lower()
        products = []

        for product in self.load_products():
            if term and term not in product.name.lower() and term not in (product.description or "").lower():
                continue
            if category and product.category != category:
                continue

            stock = product.current_stock
            if stock_filter == "available" and not stock > 0:
                continue
            if stock_filter == "low" and not stock <= to_number(product.min_stock_level):
                continue
            if stock_filter == "out" and stock != 0:
                continue

            products.append(product)

        return products

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _append(
        self,
        products: List[ProductCatalogItem],
        transactions: List[InventoryTransaction],
        product_id: str,
        type: str,
        quantity: Number,
        reason: str,
        cost_price: Optional[Number] = None,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Tuple[List[ProductCatalogItem], List[InventoryTransaction], InventoryTransaction]:
        """Apply one transaction to in-memory collections."""
        transaction = InventoryTransaction(
            id=uuid.uuid4().hex,
            product_id=product_id,
            type=type,
            quantity=to_number(quantity),
            date=utcnow(),
            reason=reason,
            cost_price=None if cost_price is None else to_number(cost_price),
            reference=reference,
            notes=notes,
        )

        updated = []
        found = False
        for product in products:
            if product.id == product_id:
                found = True
                changes = {
                    "stock_quantity": apply_transaction(product.current_stock, type, transaction.quantity)
                }
                if type == STOCK_IN:
                    changes["last_restocked_date"] = transaction.date
                product = replace(product, **changes)
                self.logger.info(
                    f"[{product_id}] {type} {transaction.quantity} ({reason or 'no reason'}) "
                    f"→ stock {product.stock_quantity}"
                )
            updated.append(product)

        if not found:
            self.logger.warning(
                f"[{product_id}] {type} {transaction.quantity} recorded for unknown product; "
                f"stock not updated"
            )

        return updated, transactions + [transaction], transaction

    def _commit(
        self,
        products: Sequence[ProductCatalogItem],
        transactions: Sequence[InventoryTransaction],
        previous_alerts: Sequence[StockAlert],
    ) -> List[StockAlert]:
        """Recompute alerts and write products, ledger and alerts in one batch."""
        alerts = compute_alerts(products, previous_alerts)
        self.store.set_many({
            PRODUCTS_KEY: dump_collection(self.store, PRODUCTS_KEY, ProductCatalogItem.from_dict, products),
            INVENTORY_TRANSACTIONS_KEY: dump_collection(
                self.store, INVENTORY_TRANSACTIONS_KEY, InventoryTransaction.from_dict, transactions
            ),
            STOCK_ALERTS_KEY: [a.to_dict() for a in alerts],
        })
        return alerts

    def record_transaction(
        self,
        product_id: str,
        type: str,
        quantity: Number,
        reason: str = "",
        cost_price: Optional[Number] = None,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> InventoryTransaction:
        """
        Append a transaction, update the product's stock and refresh alerts.

        The transaction is recorded even when ``product_id`` is not in the
        catalog; only the stock update is skipped.

        Raises:
            ValueError: Unknown type, or a negative stock-in/stock-out quantity
            StorageWriteError: If the batch cannot be written
        """
        products, transactions, transaction = self._append(
            self.load_products(), self.load_transactions(),
            product_id, type, quantity, reason, cost_price, notes, reference,
        )
        self._commit(products, transactions, self.load_alerts())
        return transaction

    def replay_product_stock(self, product_id: str) -> Number:
        return replay_stock(self.load_transactions(), product_id)

    def ledger_discrepancies(self) -> Dict[str, Tuple[Number, Number]]:
        """Products whose stored stock differs from a replay of the ledger."""
        transactions = self.load_transactions()
        mismatches = {}
        for product in self.load_products():
            if product.stock_quantity is None:
                continue
            replayed = replay_stock(transactions, product.id)
            if replayed != product.stock_quantity:
                mismatches[product.id] = (product.stock_quantity, replayed)
        return mismatches

    def get_product_transactions(self, product_id: str) -> List[InventoryTransaction]:
        return [t for t in self.load_transactions() if t.product_id == product_id]

    def get_stock_movement_summary(self, product_id: str) -> Dict[str, Number]:
        transactions = self.get_product_transactions(product_id)
        stock_in = sum((t.quantity for t in transactions if t.type == STOCK_IN), 0)
        stock_out = sum((t.quantity for t in transactions if t.type == STOCK_OUT), 0)
        adjustments = sum((t.quantity for t in transactions if t.type == ADJUSTMENT), 0)

        return {
            "stock_in": stock_in,
            "stock_out": stock_out,
            "adjustments": adjustments,
            "total_movement": stock_in - stock_out + adjustments,
        }

    def check_stock_availability(self, product_id: str, requested_quantity: Number) -> bool:
        """
        True when the product would be short for ``requested_quantity``.

        Advisory only. Unknown products and products without tracked stock
        never warn.
        """
        product = self.get_product(product_id)
        if product is None or product.stock_quantity is None:
            return False
        return product.stock_quantity < to_number(requested_quantity)

    def deduct_for_invoice(self, invoice) -> List[InventoryTransaction]:
        """Record a stock-out for every catalog-linked line item of an invoice."""
        products = self.load_products()
        transactions = self.load_transactions()
        recorded = []

        for item in invoice.line_items:
            quantity = to_number(item.quantity)
            if not item.product_id or quantity <= 0:
                continue
            products, transactions, transaction = self._append(
                products, transactions, item.product_id, STOCK_OUT, quantity,
                f"Invoice {invoice.id}", reference=invoice.id,
            )
            recorded.append(transaction)

        if recorded:
            self._commit(products, transactions, self.load_alerts())
            self.logger.info(f"Deducted stock for {len(recorded)} line item(s) of invoice {invoice.id}")

        return recorded

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def add_product(
        self,
        name: str,
        price: Number = 0,
        unit: str = "pcs",
        stock_quantity: Number = 0,
        min_stock_level: Optional[Number] = None,
        cost_price: Optional[Number] = 0,
        category: Optional[str] = "Other",
        description: str = "",
        supplier: Optional[str] = None,
        barcode: Optional[str] = None,
        tags: Sequence[str] = (),
    ) -> ProductCatalogItem:
        """
        Add a product to the catalog.

        Opening stock is recorded as an ``Initial stock`` stock-in, so the
        product's stock is backed by the ledger from the start.
        """
        if min_stock_level is None:
            min_stock_level = self.config.settings_defaults.default_min_stock_level

        product = ProductCatalogItem(
            id=uuid.uuid4().hex,
            name=name,
            price=to_number(price),
            unit=unit,
            description=description,
            cost_price=None if cost_price is None else to_number(cost_price),
            category=category,
            stock_quantity=0,
            min_stock_level=to_number(min_stock_level),
            supplier=supplier,
            barcode=barcode,
            last_restocked_date=utcnow(),
            tags=tuple(tags),
        )

        products = self.load_products() + [product]
        transactions = self.load_transactions()

        opening = to_number(stock_quantity)
        if opening > 0:
            products, transactions, _ = self._append(
                products, transactions, product.id, STOCK_IN, opening,
                "Initial stock", cost_price=product.cost_price,
            )

        self._commit(products, transactions, self.load_alerts())
        self.logger.info(f"Product '{name}' added ({product.id})")
        return self.get_product(product.id)

    def update_product(self, product_id: str, **changes) -> ProductCatalogItem:
        """
        Change catalog fields of a product.

        Raises:
            ValueError: If ``stock_quantity`` is among the changes; stock only
                moves through ``record_transaction``
            ProductNotFoundError: If the product does not exist
        """
        if "stock_quantity" in changes:
            raise ValueError("Stock changes must be recorded as inventory transactions")

        products = self.load_products()
        updated = None
        for index, product in enumerate(products):
            if product.id == product_id:
                updated = replace(product, **changes)
                products[index] = updated
                break

        if updated is None:
            raise ProductNotFoundError(f"Product not found: {product_id}", details={"product_id": product_id})

        self._commit(products, self.load_transactions(), self.load_alerts())
        return updated

    def delete_product(self, product_id: str) -> None:
        """Remove a product. Its ledger history is kept."""
        products = self.load_products()
        remaining = [p for p in products if p.id != product_id]
        if len(remaining) == len(products):
            raise ProductNotFoundError(f"Product not found: {product_id}", details={"product_id": product_id})

        self._commit(remaining, self.load_transactions(), self.load_alerts())
        self.logger.info(f"Product {product_id} deleted; ledger history kept")

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def active_alerts(self) -> List[StockAlert]:
        return [alert for alert in self.load_alerts() if not alert.acknowledged]

    def acknowledge_alert(self, alert_id: str) -> StockAlert:
        alerts = self.load_alerts()
        acknowledged = None
        for index, alert in enumerate(alerts):
            if alert.id == alert_id:
                acknowledged = replace(alert, acknowledged=True)
                alerts[index] = acknowledged

        if acknowledged is None:
            raise AlertNotFoundError(f"Stock alert not found: {alert_id}", details={"alert_id": alert_id})

        self.store.set(STOCK_ALERTS_KEY, [a.to_dict() for a in alerts])
        self.logger.info(f"Stock alert {alert_id} acknowledged")
        return acknowledged
