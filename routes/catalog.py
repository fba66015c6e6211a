"""
Catalog routes (read-only).

Handles:
- /api/services - Service list, optionally filtered by status
- /api/services/<id> - One service with its option lists
- /api/options - Shop-wide option catalog
- /api/pricing-settings - Delivery and packing tiers
- /api/coupons - Coupons shown at checkout
- /api/coupons/validate - Check a coupon against an order amount
- /api/pricing/quote - Standalone price calculator

All data comes from the catalog snapshot refreshed by CatalogService.
"""

from datetime import datetime, timezone

from flask import Blueprint, request

from core.exceptions import InvalidOptionError, OrderValidationError
from models.catalog import ALL_CATEGORIES, ServiceConfiguration
from modules.charges import free_delivery_threshold
from modules.pricing import allowed_values, quote
from logging_config import get_logger

from .helpers import catalog_snapshot, checkout_for, json_body


# Module logger
logger = get_logger(__name__)

catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("/api/services", methods=["GET"])
def list_services():
    """
    List services sorted by name.

    Query:
        status: active (default), inactive, or all
    """
    status = request.args.get("status", "active")
    snapshot = catalog_snapshot()
    services = snapshot.list_services(None if status == "all" else status)
    return {"success": True, "services": [s.to_dict() for s in services]}


@catalog_bp.route("/api/services/<service_id>", methods=["GET"])
def get_service(service_id: str):
    service = catalog_snapshot().require_service(service_id)
    return {"success": True, "service": service.to_dict()}


@catalog_bp.route("/api/options", methods=["GET"])
def list_options():
    category = request.args.get("category") or None
    active_only = request.args.get("activeOnly", "false").lower() == "true"
    options = catalog_snapshot().list_options(category, active_only)
    return {"success": True, "options": [o.to_dict() for o in options]}


@catalog_bp.route("/api/pricing-settings", methods=["GET"])
def pricing_settings():
    settings = catalog_snapshot().pricing_settings
    data = settings.to_dict()
    data["freeDeliveryThreshold"] = free_delivery_threshold(settings)
    return {"success": True, "settings": data}


@catalog_bp.route("/api/coupons", methods=["GET"])
def list_coupons():
    """Active, unexpired coupons flagged for display at checkout."""
    now = datetime.now(timezone.utc)
    coupons = [
        c for c in catalog_snapshot().coupons
        if c.is_active and c.display_in_checkout
        and (c.expiry_date is None or c.expiry_date >= now)
    ]
    return {"success": True, "coupons": [c.to_dict() for c in coupons]}


@catalog_bp.route("/api/coupons/validate", methods=["POST"])
def validate_coupon():
    data = json_body()
    code = str(data.get("code") or "").strip()
    if not code:
        raise OrderValidationError("Coupon code is required", "code")
    try:
        amount = float(data.get("orderAmount") or 0)
    except (TypeError, ValueError):
        raise OrderValidationError("orderAmount must be a number", "orderAmount")

    summary = checkout_for(amount, code)
    return {
        "success": True,
        "couponCode": summary["couponCode"],
        "discount": summary["discount"],
    }


@catalog_bp.route("/api/pricing/quote", methods=["POST"])
def pricing_quote():
    """
    Price one configuration without starting an order.

    Body:
        serviceId, pageCount, configuration (camelCase; omitted fields use defaults)

    A binding that the page count does not allow is replaced, as in the wizard.
    """
    data = json_body()
    service = catalog_snapshot().require_service(str(data.get("serviceId") or ""))

    try:
        page_count = int(data.get("pageCount") or 0)
    except (TypeError, ValueError):
        raise OrderValidationError("pageCount must be a number", "pageCount")
    if page_count < 0:
        raise OrderValidationError("pageCount cannot be negative", "pageCount")

    given = data.get("configuration") or {}
    if not isinstance(given, dict):
        raise OrderValidationError("configuration must be an object", "configuration")
    try:
        configuration = ServiceConfiguration.from_dict(
            dict(ServiceConfiguration.default_for(service, page_count).to_dict(), **given)
        )
    except (TypeError, ValueError) as e:
        raise InvalidOptionError("copies", given.get("copies")) from e
    configuration = configuration.with_changes(copies=max(1, configuration.copies))

    for category in ALL_CATEGORIES:
        value = configuration.value_for(category)
        if not value or category.name == "bindingOption":
            continue
        allowed = allowed_values(service, category.name, page_count)
        if value not in allowed:
            raise InvalidOptionError(category.name, value, allowed)

    return dict(quote(service, configuration, page_count), success=True)
