"""Custom exception classes for the application."""


class BaseAppException(Exception):
    """Base exception class for all application exceptions."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BaseAppException):
    """Raised when there's a configuration error."""
    pass


class StorageError(BaseAppException):
    """Base class for key-value store failures."""
    pass


class StorageReadError(StorageError):
    """Raised when the stored document cannot be read or parsed."""
    pass


class StorageWriteError(StorageError):
    """Raised when a collection cannot be written back to the store."""
    pass


class InvoiceNotFoundError(BaseAppException):
    """Raised when an invoice id is not in the store."""
    pass


class ProductNotFoundError(BaseAppException):
    """Raised when a product id is not in the catalog."""
    pass


class AlertNotFoundError(BaseAppException):
    """Raised when a stock alert id is not in the current alert set."""
    pass


class ImportFailedError(BaseAppException):
    """Raised when a backup document cannot be imported."""
    pass
