"""
Core module for Print Emporium.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- database: Order database engine lifecycle
"""

from .exceptions import (
    PrintEmporiumError,
    DatabaseUnavailableError,
    CatalogNotFoundError,
    ServiceNotFoundError,
    InvalidOptionError,
    OptionPricingConflictError,
    WizardError,
    StepGuardError,
    CustomQuotationError,
    OrderItemNotFoundError,
    WizardNotFoundError,
    UnsupportedFileTypeError,
    FileProcessingError,
    ConversionUnavailableError,
    OrderError,
    OrderValidationError,
    OrderNotFoundError,
    InvalidStatusTransitionError,
    PricingMismatchError,
    OrderNumberCollisionError,
    AccessDeniedError,
    CouponError,
)
from .database import DatabaseManager

__all__ = [
    "PrintEmporiumError",
    "DatabaseUnavailableError",
    "CatalogNotFoundError",
    "ServiceNotFoundError",
    "InvalidOptionError",
    "OptionPricingConflictError",
    "WizardError",
    "StepGuardError",
    "CustomQuotationError",
    "OrderItemNotFoundError",
    "WizardNotFoundError",
    "UnsupportedFileTypeError",
    "FileProcessingError",
    "ConversionUnavailableError",
    "OrderError",
    "OrderValidationError",
    "OrderNotFoundError",
    "InvalidStatusTransitionError",
    "PricingMismatchError",
    "OrderNumberCollisionError",
    "AccessDeniedError",
    "CouponError",
    "DatabaseManager",
]
