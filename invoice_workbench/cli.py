"""Command-line interface for the invoice workbench."""

import sys
from datetime import date
from typing import Optional, Tuple

import click

from .models.invoice import Party
from .services import calculator
from .services.analytics_service import AnalyticsService
from .services.backup_service import BackupService
from .services.inventory_service import stock_status
from .services.invoice_service import InvoiceService
from .storage.key_value_store import get_store
from .utils.config import get_config
from .utils.exceptions import BaseAppException
from .utils.formatting import amount_in_words, format_amount


def _services(ctx: click.Context) -> InvoiceService:
    """Services share one store per invocation."""
    if ctx.obj is None:
        ctx.obj = InvoiceService(get_store())
    return ctx.obj


def _fail(message: str):
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _money(value, ctx: click.Context) -> str:
    settings = _services(ctx).settings.load_settings()
    return format_amount(value, settings.currency_symbol, settings.decimal_precision)


def _qty(value) -> str:
    """Quantities without a trailing ``.0``."""
    return f"{value:g}"


def parse_item_spec(spec: str) -> Tuple[str, str, str, str, Optional[str]]:
    """
    Split ``NAME:QTY:PRICE[:DISCOUNT[:percentage|flat]]``.

    Missing numbers stay empty strings; the calculator treats them as zero.
    """
    parts = spec.split(":")
    if len(parts) < 3:
        raise click.BadParameter(f"Expected NAME:QTY:PRICE[:DISCOUNT[:TYPE]], got '{spec}'")
    name, quantity, price = parts[0], parts[1], parts[2]
    discount = parts[3] if len(parts) > 3 else "0"
    discount_type = parts[4] if len(parts) > 4 else None
    return name, quantity, price, discount, discount_type


@click.group()
@click.version_option(version="1.0.0")
@click.pass_context
def cli(ctx):
    """
    Invoice Workbench CLI.

    Build invoices, record payments and keep product stock in step with
    the inventory ledger.
    """
    pass


# ------------------------------------------------------------------
# Invoices
# ------------------------------------------------------------------

@cli.group()
def invoices():
    """Create, inspect and pay invoices."""
    pass


@invoices.command("list")
@click.option("--search", default="", help="Filter by id, customer or business name")
@click.pass_context
def list_invoices(ctx, search: str):
    """List stored invoices."""
    service = _services(ctx)
    found = service.search_invoices(search)

    if not found:
        click.echo("No invoices found.")
        return

    for invoice in found:
        click.echo(
            f"{invoice.id:<28} {invoice.date.isoformat()}  {invoice.status:<8} "
            f"{invoice.customer.name or '-':<20} {_money(invoice.total, ctx):>14}  "
            f"due {_money(invoice.balance_remaining, ctx)}"
        )


@invoices.command("show")
@click.argument("invoice_id")
@click.pass_context
def show_invoice(ctx, invoice_id: str):
    """Show one invoice with its totals."""
    try:
        invoice = _services(ctx).get_invoice(invoice_id)
    except BaseAppException as e:
        _fail(e.message)

    click.echo(f"Invoice {invoice.id} ({invoice.status})")
    click.echo("─" * 60)
    click.echo(f"Date:       {invoice.date.isoformat()}")
    if invoice.due_date:
        click.echo(f"Due:        {invoice.due_date.isoformat()}")
    click.echo(f"From:       {invoice.business.name}")
    click.echo(f"To:         {invoice.customer.name}")
    click.echo()

    for item in invoice.line_items:
        click.echo(f"  {item.name:<24} {_qty(item.quantity):>6} {item.unit:<6} x {item.price:<10} = {_money(item.total, ctx)}")
        if item.internal_notes:
            click.echo(click.style(f"    {item.internal_notes}", fg="yellow"))

    click.echo()
    click.echo(f"Subtotal:   {_money(invoice.subtotal, ctx)}")
    click.echo(f"Discount:   {_money(invoice.discount_amount, ctx)}")
    click.echo(f"Tax:        {_money(invoice.tax_amount, ctx)} ({_qty(invoice.tax_rate)}%)")
    click.echo(f"Shipping:   {_money(invoice.shipping_amount, ctx)}")
    click.echo(click.style(f"Total:      {_money(invoice.total, ctx)}", bold=True))
    click.echo(f"            {amount_in_words(invoice.total)}")
    click.echo(f"Paid:       {_money(invoice.amount_paid, ctx)} ({calculator.payment_status(invoice)})")
    click.echo(f"Balance:    {_money(invoice.balance_remaining, ctx)}")


@invoices.command("create")
@click.option("--business", default="", help="Business name")
@click.option("--customer", default="", help="Customer name")
@click.option("--item", "items", multiple=True, help="NAME:QTY:PRICE[:DISCOUNT[:TYPE]]")
@click.option("--product", "products", multiple=True, help="PRODUCT_ID[:QTY] from the catalog")
@click.option("--tax-rate", type=float, default=None, help="Tax rate in percent")
@click.option("--discount", type=float, default=0, help="Invoice-level discount value")
@click.option("--discount-type", type=click.Choice(calculator.DISCOUNT_TYPES), default=None)
@click.option("--shipping", type=float, default=0, help="Shipping amount")
@click.option("--due", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Due date")
@click.pass_context
def create_invoice(ctx, business, customer, items, products, tax_rate, discount, discount_type, shipping, due):
    """Create and save a new invoice."""
    service = _services(ctx)

    fields = {"discount_value": discount, "shipping_amount": shipping}
    if tax_rate is not None:
        fields["tax_rate"] = tax_rate
    if discount_type is not None:
        fields["discount_type"] = discount_type
    if due is not None:
        fields["due_date"] = due.date()

    try:
        invoice = service.new_invoice(Party(name=business), Party(name=customer), **fields)

        for spec in items:
            name, quantity, price, item_discount, item_type = parse_item_spec(spec)
            item = service.make_line_item(name, quantity, price, item_discount, item_type)
            invoice = calculator.add_line_item(invoice, item)

        for spec in products:
            product_id, _, quantity = spec.partition(":")
            product = service.inventory.get_product(product_id)
            if product is None:
                _fail(f"Product not found: {product_id}")
            invoice = service.add_line_item_from_catalog(invoice, product, quantity or 1)

        saved = service.save_invoice(invoice)
    except (BaseAppException, ValueError) as e:
        _fail(getattr(e, "message", str(e)))

    click.echo(click.style(f"✓ Invoice {saved.id} saved", fg="green", bold=True))
    click.echo(f"Total: {_money(saved.total, ctx)}")


@invoices.command("pay")
@click.argument("invoice_id")
@click.argument("amount")
@click.option("--method", default="Cash", help="Payment method")
@click.option("--notes", default="", help="Payment notes")
@click.pass_context
def pay_invoice(ctx, invoice_id: str, amount: str, method: str, notes: str):
    """Record a payment against an invoice."""
    try:
        invoice = _services(ctx).record_payment(invoice_id, amount, method=method, notes=notes)
    except (BaseAppException, ValueError) as e:
        _fail(getattr(e, "message", str(e)))

    click.echo(click.style(f"✓ Payment recorded on {invoice.id}", fg="green"))
    click.echo(f"Paid:    {_money(invoice.amount_paid, ctx)}")
    click.echo(f"Balance: {_money(invoice.balance_remaining, ctx)}")


@invoices.command("delete")
@click.argument("invoice_id")
@click.confirmation_option(prompt="Delete this invoice?")
@click.pass_context
def delete_invoice(ctx, invoice_id: str):
    """Delete an invoice."""
    try:
        _services(ctx).delete_invoice(invoice_id)
    except BaseAppException as e:
        _fail(e.message)
    click.echo(click.style(f"✓ Invoice {invoice_id} deleted", fg="green"))


@invoices.command("duplicate")
@click.argument("invoice_id")
@click.pass_context
def duplicate_invoice(ctx, invoice_id: str):
    """Copy an invoice into a new draft."""
    service = _services(ctx)
    try:
        copy = service.save_invoice(service.duplicate_invoice(service.get_invoice(invoice_id)))
    except BaseAppException as e:
        _fail(e.message)
    click.echo(click.style(f"✓ Duplicated as {copy.id}", fg="green"))


@invoices.command("mark-overdue")
@click.pass_context
def mark_overdue(ctx):
    """Flag unpaid invoices past their due date."""
    flagged = _services(ctx).mark_overdue(date.today())
    click.echo(f"{len(flagged)} invoice(s) marked overdue")


# ------------------------------------------------------------------
# Products
# ------------------------------------------------------------------

@cli.group()
def products():
    """Manage the product catalog."""
    pass


@products.command("list")
@click.option("--search", default=None, help="Match on name or description")
@click.option("--category", default=None, help="Only this category")
@click.option("--stock", "stock_filter", type=click.Choice(["available", "low", "out"]), default=None)
@click.pass_context
def list_products(ctx, search, category, stock_filter):
    """List catalog products with their stock status."""
    inventory = _services(ctx).inventory
    found = inventory.list_products(search, category, stock_filter)

    if not found:
        click.echo("No products found.")
        return

    colors = {"in-stock": "green", "low-stock": "yellow", "out-of-stock": "red"}
    for product in found:
        status = stock_status(product)
        click.echo(
            f"{product.id}  {product.name:<24} {_money(product.price, ctx):>12}  "
            f"stock {_qty(product.current_stock):<6} min {_qty(product.min_stock_level or 0):<4} "
            + click.style(status, fg=colors[status])
        )


@products.command("add")
@click.argument("name")
@click.option("--price", type=float, default=0)
@click.option("--cost-price", type=float, default=0)
@click.option("--unit", default="pcs")
@click.option("--stock", type=float, default=0, help="Opening stock")
@click.option("--min-stock", type=float, default=None, help="Low stock threshold")
@click.option("--category", default="Other")
@click.option("--supplier", default=None)
@click.option("--barcode", default=None)
@click.pass_context
def add_product(ctx, name, price, cost_price, unit, stock, min_stock, category, supplier, barcode):
    """Add a product; opening stock goes through the ledger."""
    try:
        product = _services(ctx).inventory.add_product(
            name, price=price, cost_price=cost_price, unit=unit, stock_quantity=stock,
            min_stock_level=min_stock, category=category, supplier=supplier, barcode=barcode,
        )
    except (BaseAppException, ValueError) as e:
        _fail(getattr(e, "message", str(e)))
    click.echo(click.style(f"✓ Product '{product.name}' added ({product.id})", fg="green"))


@products.command("delete")
@click.argument("product_id")
@click.pass_context
def delete_product(ctx, product_id: str):
    """Delete a product (its stock history is kept)."""
    try:
        _services(ctx).inventory.delete_product(product_id)
    except BaseAppException as e:
        _fail(e.message)
    click.echo(click.style(f"✓ Product {product_id} deleted", fg="green"))


# ------------------------------------------------------------------
# Stock ledger
# ------------------------------------------------------------------

@cli.group()
def stock():
    """Record stock movements and review alerts."""
    pass


@stock.command("record")
@click.argument("product_id")
@click.argument("type", type=click.Choice(["stock-in", "stock-out", "adjustment"]))
@click.argument("quantity", type=float)
@click.option("--reason", default="", help="Why the stock moved")
@click.option("--cost-price", type=float, default=None)
@click.option("--notes", default=None)
@click.pass_context
def record_stock(ctx, product_id, type, quantity, reason, cost_price, notes):
    """Record a stock transaction (negative QUANTITY only for adjustments)."""
    inventory = _services(ctx).inventory
    try:
        transaction = inventory.record_transaction(product_id, type, quantity, reason, cost_price, notes)
    except (BaseAppException, ValueError) as e:
        _fail(getattr(e, "message", str(e)))

    product = inventory.get_product(product_id)
    click.echo(click.style(f"✓ {transaction.type} of {_qty(transaction.quantity)} recorded", fg="green"))
    if product is None:
        click.echo(click.style("  Product is not in the catalog; only the ledger was updated", fg="yellow"))
    else:
        click.echo(f"  {product.name}: stock now {_qty(product.current_stock)}")


@stock.command("history")
@click.argument("product_id")
@click.pass_context
def stock_history(ctx, product_id: str):
    """Show a product's ledger and movement summary."""
    inventory = _services(ctx).inventory
    for t in inventory.get_product_transactions(product_id):
        click.echo(f"{t.date.isoformat()}  {t.type:<10} {_qty(t.quantity):>8}  {t.reason}")

    summary = inventory.get_stock_movement_summary(product_id)
    click.echo("─" * 60)
    click.echo(
        f"In: {_qty(summary['stock_in'])}  Out: {_qty(summary['stock_out'])}  "
        f"Adjustments: {_qty(summary['adjustments'])}  Net: {_qty(summary['total_movement'])}"
    )


@stock.command("alerts")
@click.option("--all", "show_all", is_flag=True, help="Include acknowledged alerts")
@click.pass_context
def stock_alerts(ctx, show_all: bool):
    """List stock alerts."""
    inventory = _services(ctx).inventory
    alerts = inventory.load_alerts() if show_all else inventory.active_alerts()

    if not alerts:
        click.echo(click.style("✓ No stock alerts", fg="green"))
        return

    for alert in alerts:
        product = inventory.get_product(alert.product_id)
        name = product.name if product else alert.product_id
        label = "Out of Stock" if alert.type == "out-of-stock" else f"Low Stock ({_qty(alert.current_stock)} remaining)"
        ack = " (acknowledged)" if alert.acknowledged else ""
        click.echo(f"{alert.id}  {name} - {label}{ack}")


@stock.command("ack")
@click.argument("alert_id")
@click.pass_context
def acknowledge(ctx, alert_id: str):
    """Acknowledge a stock alert."""
    try:
        _services(ctx).inventory.acknowledge_alert(alert_id)
    except BaseAppException as e:
        _fail(e.message)
    click.echo(click.style(f"✓ Alert {alert_id} acknowledged", fg="green"))


@stock.command("check")
@click.argument("product_id")
@click.argument("quantity", type=float)
@click.pass_context
def check_stock(ctx, product_id: str, quantity: float):
    """Warn when a product is short for QUANTITY."""
    if _services(ctx).inventory.check_stock_availability(product_id, quantity):
        click.echo(click.style(f"⚠ Insufficient stock for {_qty(quantity)}", fg="yellow"))
        sys.exit(2)
    click.echo(click.style("✓ Stock available", fg="green"))


# ------------------------------------------------------------------
# Backup, statistics, configuration
# ------------------------------------------------------------------

@cli.group()
def backup():
    """Export or import invoices and settings."""
    pass


@backup.command("export")
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def export_backup(ctx, path: str):
    """Write a JSON backup to PATH."""
    written = BackupService(_services(ctx)).export_to_file(path)
    click.echo(click.style(f"✓ Backup written to {written}", fg="green"))


@backup.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_backup(ctx, path: str):
    """Import a JSON backup from PATH."""
    try:
        result = BackupService(_services(ctx)).import_from_file(path)
    except BaseAppException as e:
        _fail(f"Import failed: {e.message}")

    click.echo(result.get_summary())
    sys.exit(0 if result.success else 1)


@cli.command()
@click.option("--period", type=click.Choice(["1m", "3m", "6m", "1y", "all"]), default="3m")
@click.pass_context
def stats(ctx, period: str):
    """Revenue and inventory statistics."""
    analytics = AnalyticsService(_services(ctx))
    summary = analytics.summary(period)

    click.echo(f"Invoices:        {summary['total_invoices']}")
    click.echo(f"Revenue:         {_money(summary['total_revenue'], ctx)}")
    click.echo(f"Average invoice: {_money(summary['average_invoice'], ctx)}")
    click.echo(f"Paid:            {summary['paid_count']} ({summary['payment_rate']:.1f}%)")
    click.echo(f"Overdue:         {summary['overdue_count']}")
    click.echo(f"Outstanding:     {_money(summary['outstanding_balance'], ctx)}")

    top = analytics.top_customers(period)
    if top:
        click.echo()
        click.echo("Top customers:")
        for i, customer in enumerate(top, 1):
            click.echo(f"  {i}. {customer['name']}: {_money(customer['revenue'], ctx)} ({customer['invoices']})")

    value = analytics.inventory_value()
    click.echo()
    click.echo(f"Stock units:     {_qty(value['units'])}")
    click.echo(f"Stock at cost:   {_money(value['cost_value'], ctx)}")


@cli.command()
def config_info():
    """Display current configuration settings."""
    try:
        config = get_config()

        click.echo("Configuration Settings:")
        click.echo("=" * 60)
        click.echo()

        click.echo("Environment:")
        click.echo(f"  Environment:     {config.env.environment}")
        click.echo(f"  Log level:       {config.logging.level}")
        click.echo()

        click.echo("Storage:")
        click.echo(f"  Backend:         {config.storage.backend}")
        click.echo(f"  Data file:       {config.data_file}")
        click.echo()

        defaults = config.settings_defaults
        click.echo("Settings defaults:")
        click.echo(f"  Currency:        {defaults.currency_symbol}")
        click.echo(f"  Invoice prefix:  {defaults.invoice_prefix}")
        click.echo(f"  Tax rate:        {defaults.default_tax_rate}%")
        click.echo(f"  Discount mode:   {defaults.default_discount_mode}")
        click.echo()

    except Exception as e:
        click.echo(click.style(f"✗ Error loading config: {str(e)}", fg="red"), err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
