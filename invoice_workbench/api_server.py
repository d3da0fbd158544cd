"""FastAPI server exposing invoices, the product catalog and the stock ledger."""

from contextlib import asynccontextmanager
from datetime import date
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .models.invoice import Invoice, Party
from .models.settings import AppSettings
from .services import calculator
from .services.analytics_service import AnalyticsService
from .services.backup_service import BackupService
from .services.inventory_service import stock_status
from .services.invoice_service import InvoiceService
from .utils.config import get_config
from .utils.exceptions import (
    AlertNotFoundError,
    ImportFailedError,
    InvoiceNotFoundError,
    ProductNotFoundError,
    StorageError,
)
from .utils.logger import get_api_logger
from .utils.time_utils import to_utc_z, utcnow

# Initialize shared state
config = get_config()
logger = get_api_logger()


@lru_cache()
def get_invoice_service() -> InvoiceService:
    """One service (and store) per process; overridden in tests."""
    return InvoiceService()


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class PartyIn(BaseModel):
    name: str = ""
    address: str = ""
    email: str = ""
    phone: str = ""
    logo: Optional[str] = None


class LineItemIn(BaseModel):
    """A line item; with ``product_id`` set it is copied from the catalog."""
    name: str = ""
    quantity: float = 1
    price: float = 0
    discount: float = 0
    discount_type: Optional[str] = None
    unit: str = "pcs"
    description: str = ""
    product_id: Optional[str] = None


class InvoiceIn(BaseModel):
    business: PartyIn = Field(default_factory=PartyIn)
    customer: PartyIn = Field(default_factory=PartyIn)
    line_items: List[LineItemIn] = Field(default_factory=list)
    status: str = "draft"
    due_date: Optional[date] = None
    tax_rate: Optional[float] = None
    discount_type: Optional[str] = None
    discount_value: float = 0
    shipping_amount: float = 0
    notes: str = ""
    terms: str = ""
    payment_instructions: str = ""


class PaymentIn(BaseModel):
    amount: float
    method: str = "Cash"
    paid_on: Optional[date] = None
    notes: str = ""


class StatusIn(BaseModel):
    status: str


class ProductIn(BaseModel):
    name: str
    price: float = 0
    unit: str = "pcs"
    stock_quantity: float = 0
    min_stock_level: Optional[float] = None
    cost_price: Optional[float] = 0
    category: Optional[str] = "Other"
    description: str = ""
    supplier: Optional[str] = None
    barcode: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    unit: Optional[str] = None
    min_stock_level: Optional[float] = None
    cost_price: Optional[float] = None
    category: Optional[str] = None
    description: Optional[str] = None
    supplier: Optional[str] = None
    barcode: Optional[str] = None


class TransactionIn(BaseModel):
    product_id: str
    type: str
    quantity: float
    reason: str = ""
    cost_price: Optional[float] = None
    notes: Optional[str] = None
    reference: Optional[str] = None


# ------------------------------------------------------------------
# Lifespan
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective configuration on startup."""
    logger.info("=" * 60)
    logger.info("Invoice Workbench API Starting")
    logger.info("=" * 60)
    logger.info(f"Environment:          {config.env.environment}")
    logger.info(f"Port:                 {config.env.port}")
    logger.info(f"Storage backend:      {config.storage.backend}")
    logger.info(f"Data file:            {config.data_file}")
    logger.info("=" * 60)

    yield

    logger.info("Invoice Workbench API shut down.")


# ------------------------------------------------------------------
# FastAPI app
# ------------------------------------------------------------------

app = FastAPI(
    title=config.api.title,
    description="Invoices, payments and inventory ledger",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": config.api.title,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": to_utc_z(utcnow()),
        "environment": config.env.environment
    }


# ------------------------------------------------------------------
# Invoices
# ------------------------------------------------------------------

def _invoice_body(invoice: Invoice) -> Dict[str, Any]:
    data = invoice.to_dict()
    data["paymentStatus"] = calculator.payment_status(invoice)
    return data


@app.get("/invoices")
async def list_invoices(search: str = "", service: InvoiceService = Depends(get_invoice_service)):
    return [_invoice_body(invoice) for invoice in service.search_invoices(search)]


@app.post("/invoices", status_code=201)
async def create_invoice(payload: InvoiceIn, service: InvoiceService = Depends(get_invoice_service)):
    """Create an invoice from parties and line items; totals are computed."""
    fields = payload.model_dump(exclude={"business", "customer", "line_items"}, exclude_none=True)
    invoice = service.new_invoice(
        Party(**payload.business.model_dump()),
        Party(**payload.customer.model_dump()),
        **fields,
    )

    for item in payload.line_items:
        if item.product_id:
            product = service.inventory.get_product(item.product_id)
            if product is None:
                raise ProductNotFoundError(
                    f"Product not found: {item.product_id}", details={"product_id": item.product_id}
                )
            invoice = service.add_line_item_from_catalog(invoice, product, item.quantity)
        else:
            invoice = calculator.add_line_item(invoice, service.make_line_item(
                item.name, item.quantity, item.price, item.discount, item.discount_type,
                unit=item.unit, description=item.description,
            ))

    saved = service.save_invoice(invoice)
    logger.info(f"Invoice {saved.id} created via API")
    return _invoice_body(saved)


@app.post("/invoices/mark-overdue")
async def mark_overdue(as_of: Optional[date] = None, service: InvoiceService = Depends(get_invoice_service)):
    flagged = service.mark_overdue(as_of)
    return {"marked": [invoice.id for invoice in flagged]}


@app.get("/invoices/{invoice_id}")
async def get_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    return _invoice_body(service.get_invoice(invoice_id))


@app.put("/invoices/{invoice_id}")
async def replace_invoice(
    invoice_id: str,
    document: Dict[str, Any],
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Store a full invoice document (stored camelCase format).

    Derived fields in the body are ignored and recomputed.
    """
    service.get_invoice(invoice_id)
    # paymentStatus is response-only
    document = {k: v for k, v in document.items() if k != "paymentStatus"}
    invoice = Invoice.from_dict({**document, "id": invoice_id})
    return _invoice_body(service.save_invoice(invoice))


@app.delete("/invoices/{invoice_id}")
async def delete_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    service.delete_invoice(invoice_id)
    return {"status": "deleted", "id": invoice_id}


@app.post("/invoices/{invoice_id}/duplicate", status_code=201)
async def duplicate_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    copy = service.duplicate_invoice(service.get_invoice(invoice_id))
    return _invoice_body(service.save_invoice(copy))


@app.post("/invoices/{invoice_id}/status")
async def set_status(invoice_id: str, payload: StatusIn, service: InvoiceService = Depends(get_invoice_service)):
    return _invoice_body(service.set_status(invoice_id, payload.status))


@app.post("/invoices/{invoice_id}/payments", status_code=201)
async def add_payment(invoice_id: str, payload: PaymentIn, service: InvoiceService = Depends(get_invoice_service)):
    invoice = service.record_payment(
        invoice_id, payload.amount, method=payload.method, paid_on=payload.paid_on, notes=payload.notes
    )
    return _invoice_body(invoice)


@app.delete("/invoices/{invoice_id}/payments/{payment_id}")
async def remove_payment(invoice_id: str, payment_id: str, service: InvoiceService = Depends(get_invoice_service)):
    return _invoice_body(service.remove_payment(invoice_id, payment_id))


# ------------------------------------------------------------------
# Products and stock ledger
# ------------------------------------------------------------------

def _product_body(product) -> Dict[str, Any]:
    data = product.to_dict()
    data["stockStatus"] = stock_status(product)
    return data


@app.get("/products")
async def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    stock: Optional[str] = None,
    service: InvoiceService = Depends(get_invoice_service),
):
    products = service.inventory.list_products(search, category, stock)
    return [_product_body(product) for product in products]


@app.post("/products", status_code=201)
async def add_product(payload: ProductIn, service: InvoiceService = Depends(get_invoice_service)):
    return _product_body(service.inventory.add_product(**payload.model_dump()))


@app.get("/products/{product_id}")
async def get_product(product_id: str, service: InvoiceService = Depends(get_invoice_service)):
    product = service.inventory.get_product(product_id)
    if product is None:
        raise ProductNotFoundError(f"Product not found: {product_id}", details={"product_id": product_id})
    return _product_body(product)


@app.patch("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: InvoiceService = Depends(get_invoice_service),
):
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes given")
    return _product_body(service.inventory.update_product(product_id, **changes))


@app.delete("/products/{product_id}")
async def delete_product(product_id: str, service: InvoiceService = Depends(get_invoice_service)):
    service.inventory.delete_product(product_id)
    return {"status": "deleted", "id": product_id}


@app.get("/products/{product_id}/transactions")
async def product_transactions(product_id: str, service: InvoiceService = Depends(get_invoice_service)):
    inventory = service.inventory
    return {
        "transactions": [t.to_dict() for t in inventory.get_product_transactions(product_id)],
        "summary": inventory.get_stock_movement_summary(product_id),
    }


@app.post("/inventory/transactions", status_code=201)
async def record_transaction(payload: TransactionIn, service: InvoiceService = Depends(get_invoice_service)):
    """Record a stock movement. Unknown product ids are still logged to the ledger."""
    transaction = service.inventory.record_transaction(
        payload.product_id, payload.type, payload.quantity, payload.reason,
        cost_price=payload.cost_price, notes=payload.notes, reference=payload.reference,
    )
    return transaction.to_dict()


@app.get("/inventory/alerts")
async def list_alerts(include_acknowledged: bool = False, service: InvoiceService = Depends(get_invoice_service)):
    inventory = service.inventory
    alerts = inventory.load_alerts() if include_acknowledged else inventory.active_alerts()
    return [alert.to_dict() for alert in alerts]


@app.post("/inventory/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, service: InvoiceService = Depends(get_invoice_service)):
    return service.inventory.acknowledge_alert(alert_id).to_dict()


# ------------------------------------------------------------------
# Settings, backup and statistics
# ------------------------------------------------------------------

@app.get("/settings")
async def get_settings(service: InvoiceService = Depends(get_invoice_service)):
    return service.settings.load_settings().to_dict()


@app.put("/settings")
async def put_settings(document: Dict[str, Any], service: InvoiceService = Depends(get_invoice_service)):
    """Merge the given (camelCase) keys into the stored settings."""
    current = service.settings.load_settings().to_dict()
    current.update(document)
    return service.settings.save_settings(AppSettings.from_dict(current)).to_dict()


@app.get("/backup/export")
async def export_backup(service: InvoiceService = Depends(get_invoice_service)):
    return BackupService(service).export_data()


@app.post("/backup/import")
async def import_backup(request: Request, service: InvoiceService = Depends(get_invoice_service)):
    # Raw body so malformed JSON reaches the import error path
    body = await request.body()
    result = BackupService(service).import_data(body)
    return result.to_dict()


@app.get("/stats")
async def stats(period: str = "3m", service: InvoiceService = Depends(get_invoice_service)):
    analytics = AnalyticsService(service)
    return {
        "summary": analytics.summary(period),
        "monthly": analytics.monthly_revenue(period),
        "top_customers": analytics.top_customers(period),
        "inventory": analytics.inventory_value(),
    }


# ------------------------------------------------------------------
# Exception handlers
# ------------------------------------------------------------------

def _error(status_code: int, message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    content = {"error": message, "status_code": status_code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(InvoiceNotFoundError)
@app.exception_handler(ProductNotFoundError)
@app.exception_handler(AlertNotFoundError)
async def not_found_handler(request: Request, exc):
    logger.warning(f"Not found: {exc.message}")
    return _error(404, exc.message, exc.details)


@app.exception_handler(ImportFailedError)
async def import_failed_handler(request: Request, exc: ImportFailedError):
    logger.warning(f"Import rejected: {exc.message}")
    return _error(400, exc.message, exc.details)


@app.exception_handler(ValueError)
async def validation_handler(request: Request, exc: ValueError):
    logger.warning(f"Invalid request: {str(exc)}")
    return _error(400, str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure: {exc.message}")
    return _error(500, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler."""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
    return _error(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """General exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if not config.is_production else "An error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "invoice_workbench.api_server:app",
        host=config.api.host,
        port=config.env.port,
        reload=not config.is_production
    )
