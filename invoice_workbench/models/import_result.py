"""Backup import result data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional

from ..utils.time_utils import utcnow


@dataclass
class ImportFailure:
    """Represents one invoice that could not be imported."""

    invoice_id: str
    error_type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "invoice_id": self.invoice_id,
            "error_type": self.error_type,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class ImportResult:
    """Represents the result of importing a backup document."""

    success: bool
    imported_count: int = 0
    failed_count: int = 0
    settings_replaced: bool = False
    errors: List[ImportFailure] = field(default_factory=list)
    duration: float = 0.0  # seconds
    total_items: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    export_date: Optional[str] = None

    def __post_init__(self):
        """Initialize timestamps if not set."""
        if self.start_time is None:
            self.start_time = utcnow()

    def add_error(self, invoice_id: str, error_type: str, message: str, details: Optional[Dict[str, Any]] = None):
        """Add an error to the result."""
        error = ImportFailure(
            invoice_id=invoice_id,
            error_type=error_type,
            message=message,
            details=details
        )
        self.errors.append(error)
        self.failed_count += 1
        self.success = False

    def finalize(self):
        """Finalize the import result with end time and duration."""
        self.end_time = utcnow()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "imported_count": self.imported_count,
            "failed_count": self.failed_count,
            "settings_replaced": self.settings_replaced,
            "total_items": self.total_items,
            "duration": round(self.duration, 2),
            "export_date": self.export_date,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "errors": [error.to_dict() for error in self.errors]
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        summary_lines = [
            f"Import completed in {self.duration:.2f}s",
            f"Invoices in backup: {self.total_items}",
            f"Imported: {self.imported_count}",
            f"Failed: {self.failed_count}",
            f"Settings replaced: {'yes' if self.settings_replaced else 'no'}"
        ]

        if self.errors:
            summary_lines.append(f"\nErrors ({len(self.errors)}):")
            for error in self.errors[:5]:  # Show first 5 errors
                summary_lines.append(f"  - {error.invoice_id}: {error.message}")
            if len(self.errors) > 5:
                summary_lines.append(f"  ... and {len(self.errors) - 5} more errors")

        return "\n".join(summary_lines)
