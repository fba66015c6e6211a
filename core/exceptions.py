"""
Custom exceptions for Print Emporium.

Exception Hierarchy:
    PrintEmporiumError (base)
    ├── DatabaseUnavailableError     - Order database cannot be opened (startup failure)
    ├── CatalogNotFoundError         - Catalog file missing or empty (startup failure)
    ├── ServiceNotFoundError         - Unknown service id
    ├── InvalidOptionError           - Configuration value not offered by the service
    ├── OptionPricingConflictError   - Option has both per-page and per-copy prices
    ├── WizardError                  - Order wizard rejected an action
    │   ├── StepGuardError           - Forward navigation blocked by a guard
    │   ├── CustomQuotationError     - Service is quotation-only
    │   ├── OrderItemNotFoundError   - Unknown order item / file id
    │   ├── WizardNotFoundError      - No active wizard in the session
    │   └── UnsupportedFileTypeError - Upload type cannot be page-counted
    ├── FileProcessingError          - Page count / conversion failed for one file
    │   └── ConversionUnavailableError - LibreOffice binary not available
    ├── OrderError                   - Order persistence failures
    │   ├── OrderValidationError     - Missing/invalid submission data
    │   ├── OrderNotFoundError       - Unknown order number
    │   ├── InvalidStatusTransitionError - Status/payment machine violation
    │   ├── PricingMismatchError     - Submitted pricing differs from catalog
    │   └── OrderNumberCollisionError - Order number still taken after retries
    ├── AccessDeniedError            - Caller lacks the required role
    └── CouponError                  - Coupon not applicable

Usage:
    Startup errors (DatabaseUnavailableError, CatalogNotFoundError) cause the app to fail fast.
    Runtime errors are returned to the caller as JSON with a 4xx status.
"""

from typing import Optional, Dict, Any


class PrintEmporiumError(Exception):
    """
    Base exception for all Print Emporium errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """JSON error body for route handlers."""
        return {
            "success": False,
            "error": self.message,
            "details": self.details,
        }


# =============================================================================
# STARTUP ERRORS - Application will not start if these occur
# =============================================================================

class DatabaseUnavailableError(PrintEmporiumError):
    """
    The order database could not be opened.

    Typical causes:
    - Invalid DATABASE_URL in .env
    - Database server not running
    - SQLite file in a read-only directory
    """

    status_code = 503

    def __init__(self, database_url: str, reason: str = ""):
        message = f"Order database unavailable: {reason or database_url}"
        details = {
            "database_url": database_url,
            "resolution": "Check DATABASE_URL in .env and that the database is reachable"
        }
        super().__init__(message, details)
        self.database_url = database_url


class CatalogNotFoundError(PrintEmporiumError):
    """
    The service catalog file is missing, unreadable, or has not loaded yet.

    The catalog thread keeps the last good snapshot, so at runtime this only
    occurs before the first successful load.
    """

    status_code = 503

    def __init__(self, message: str = "Service catalog not loaded", path: Optional[str] = None):
        details = {
            "resolution": "Check CATALOG_PATH in .env and the catalog JSON syntax"
        }
        if path:
            details["path"] = path
        super().__init__(message, details)


# =============================================================================
# CATALOG ERRORS
# =============================================================================

class ServiceNotFoundError(PrintEmporiumError):
    """No service with the requested id exists in the catalog."""

    status_code = 404

    def __init__(self, service_id: str):
        super().__init__(f"Service not found: {service_id}", {"service_id": service_id})
        self.service_id = service_id


class InvalidOptionError(PrintEmporiumError):
    """A configuration value is not one of the service's options."""

    def __init__(self, category: str, value: Any, allowed: Optional[list] = None):
        message = f"'{value}' is not a valid {category} for this service"
        details: Dict[str, Any] = {"category": category, "value": value}
        if allowed is not None:
            details["allowed"] = allowed
        super().__init__(message, details)
        self.category = category
        self.value = value


class OptionPricingConflictError(PrintEmporiumError):
    """
    An option sets both pricePerPage and pricePerCopy.

    Options carry at most one pricing mode; this is enforced whenever
    option data is written or loaded.
    """

    def __init__(self, category: str, value: str):
        message = (
            f"Cannot set both pricePerPage and pricePerCopy for {category} '{value}'. "
            "Please choose only one pricing type per option."
        )
        super().__init__(message, {"category": category, "value": value})
        self.category = category
        self.value = value


# =============================================================================
# WIZARD ERRORS
# =============================================================================

class WizardError(PrintEmporiumError):
    """Base class for order wizard failures."""


class StepGuardError(WizardError):
    """Forward navigation was attempted while the step guard is not satisfied."""

    status_code = 409

    def __init__(self, current_step: str, target_step: str, reason: str):
        message = f"Cannot move from {current_step} to {target_step}: {reason}"
        details = {
            "current_step": current_step,
            "target_step": target_step,
            "reason": reason,
        }
        super().__init__(message, details)
        self.current_step = current_step
        self.target_step = target_step


class CustomQuotationError(WizardError):
    """The service is priced by quotation and cannot be configured online."""

    status_code = 409

    def __init__(self, service_name: str):
        message = f"'{service_name}' is priced by custom quotation. Please request a quote."
        super().__init__(message, {"service_name": service_name})


class OrderItemNotFoundError(WizardError):
    """No order item matches the given item or file id."""

    status_code = 404

    def __init__(self, item_id: str):
        super().__init__(f"Order item not found: {item_id}", {"item_id": item_id})
        self.item_id = item_id


class WizardNotFoundError(WizardError):
    """The session has no active order wizard (never started, submitted or expired)."""

    status_code = 404

    def __init__(self, wizard_id: Optional[str] = None):
        super().__init__(
            "No active order. Please choose a service to start a new order.",
            {"wizard_id": wizard_id} if wizard_id else {},
        )


class UnsupportedFileTypeError(WizardError):
    """The uploaded file's extension cannot be page-counted."""

    status_code = 415

    def __init__(self, filename: str, allowed: list):
        message = f"Unsupported file type: {filename}"
        super().__init__(message, {"filename": filename, "allowed": allowed})


# =============================================================================
# FILE PROCESSING ERRORS - per file, never fatal to the wizard
# =============================================================================

class FileProcessingError(PrintEmporiumError):
    """Page counting or conversion failed for a single file."""

    status_code = 422

    def __init__(self, message: str, filename: Optional[str] = None):
        details = {"filename": filename} if filename else {}
        super().__init__(message, details)
        self.filename = filename


class ConversionUnavailableError(FileProcessingError):
    """The LibreOffice binary needed for document conversion is not installed."""

    def __init__(self, binary: str, filename: Optional[str] = None):
        super().__init__(
            f"Document conversion unavailable ({binary} not found). Please upload a PDF.",
            filename,
        )
        self.details["binary"] = binary


# =============================================================================
# ORDER ERRORS
# =============================================================================

class OrderError(PrintEmporiumError):
    """Base class for order persistence failures."""


class OrderValidationError(OrderError):
    """The submitted order is incomplete or inconsistent."""

    def __init__(self, message: str, field: Optional[str] = None, status_code: int = 400):
        super().__init__(message, {"field": field} if field else {})
        self.field = field
        self.status_code = status_code


class OrderNotFoundError(OrderError):
    """No order with the given number (for this user)."""

    status_code = 404

    def __init__(self, order_number: str):
        super().__init__(f"Order not found: {order_number}", {"order_number": order_number})


class InvalidStatusTransitionError(OrderError):
    """A status or payment-status change is not allowed from the current state."""

    status_code = 409

    def __init__(self, kind: str, current: str, requested: str, message: Optional[str] = None):
        message = message or f"Cannot change {kind} from '{current}' to '{requested}'"
        super().__init__(message, {"kind": kind, "current": current, "requested": requested})
        self.current = current
        self.requested = requested


class PricingMismatchError(OrderError):
    """Submitted pricing does not match a recomputation from the catalog."""

    status_code = 409

    def __init__(self, message: str, item_index: Optional[int] = None, fields: Optional[list] = None):
        details: Dict[str, Any] = {}
        if item_index is not None:
            details["item_index"] = item_index
        if fields:
            details["fields"] = fields
        super().__init__(message, details)


class OrderNumberCollisionError(OrderError):
    """Every attempt to allocate a unique order number collided."""

    status_code = 503

    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique order number after {attempts} attempts",
            {"attempts": attempts, "resolution": "Retry the submission"},
        )


# =============================================================================
# ACCESS
# =============================================================================

class AccessDeniedError(PrintEmporiumError):
    """The caller is not allowed to perform this action."""

    status_code = 403

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


# =============================================================================
# COUPONS
# =============================================================================

class CouponError(PrintEmporiumError):
    """A coupon is unknown, expired, exhausted, or below its minimum amount."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, {"code": code} if code else {})
        self.code = code
