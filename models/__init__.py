"""
Data models for Print Emporium.

This module contains the dataclasses for:
- CatalogSnapshot: Point-in-time catalog (services, options, settings, coupons)
- Service / ServiceConfiguration: What can be ordered and how it is configured
- PageCountResult: Result from a page-count thread

Order models (UploadedFile, OrderItem, Order) live in models.order and the
database tables in models.records; both depend on the pricing engine, so
import them from their modules directly.

Thread safety:
- CatalogSnapshot and everything inside it is frozen for lock-free reads
- FrozenOrderItem is the immutable snapshot stored with an order
- PageCountResult is frozen and passed from file threads to request threads
"""

from .catalog import (
    BindingOption,
    CatalogOption,
    CatalogSnapshot,
    Coupon,
    CouponType,
    PriceRange,
    PricingOption,
    PricingSettings,
    Service,
    ServiceConfiguration,
    Threshold,
)
from .file_result import FileStatus, PageCountResult

__all__ = [
    # Catalog models
    "BindingOption",
    "CatalogOption",
    "CatalogSnapshot",
    "Coupon",
    "CouponType",
    "PriceRange",
    "PricingOption",
    "PricingSettings",
    "Service",
    "ServiceConfiguration",
    "Threshold",
    # File models
    "FileStatus",
    "PageCountResult",
]
