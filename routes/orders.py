"""
Order API routes.

Handles:
- POST /api/orders - Create an order from client-side items
- GET /api/orders - The caller's orders (admins: all orders, with filters)
- GET /api/orders/stats - Dashboard counters (admin)
- GET /api/orders/<number> - One order
- POST /api/orders/<number>/cancel - Customer cancellation
- POST /api/orders/<number>/payment - Payment outcome
- POST /api/orders/<number>/status - Fulfilment status and tracking (admin)

Identity comes from the X-User-Id / X-User-Role headers set by the auth layer.
"""

from flask import Blueprint, request

from core.exceptions import OrderValidationError
from models.order import FrozenOrderItem, OrderPricing
from logging_config import get_logger

from .helpers import (
    _sanitize_text,
    catalog_snapshot,
    current_user_id,
    int_arg,
    is_admin,
    json_body,
    require_admin,
    require_user,
    sanitize_delivery_info,
    service,
)


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__)


def _page(result):
    return {
        "success": True,
        "orders": [order.to_dict() for order in result["orders"]],
        "pagination": result["pagination"],
    }


@orders_bp.route("/api/orders", methods=["POST"])
def create_order():
    """
    Create an order from a client-built cart.

    Body:
        items: [{serviceId, serviceName, file: {name, size, pageCount}, configuration, pricing}]
        deliveryInfo, pricing, couponCode, paymentMethod

    Prices are re-validated against the live catalog when enabled.
    """
    user_id = current_user_id()
    data = json_body()

    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise OrderValidationError("items must be a list", "items")
    try:
        items = [FrozenOrderItem.from_dict(item) for item in raw_items]
        pricing = OrderPricing.from_dict(data.get("pricing") or {})
    except (AttributeError, TypeError, ValueError) as e:
        raise OrderValidationError(f"Malformed order data: {e}", "items") from e

    order = service("ORDER_SERVICE").create_order(
        user_id,
        items,
        sanitize_delivery_info(data.get("deliveryInfo")),
        pricing,
        coupon_code=_sanitize_text(data.get("couponCode"), 50) or None,
        payment_method=_sanitize_text(data.get("paymentMethod"), 20) or "online",
        snapshot=catalog_snapshot(),
    )
    return {"success": True, "order": order.summary_dict()}, 201


@orders_bp.route("/api/orders", methods=["GET"])
def list_orders():
    """
    Query:
        status, page, limit; admins also paymentStatus and search
    """
    user_id = require_user()
    order_service = service("ORDER_SERVICE")
    status = request.args.get("status") or None
    page = int_arg("page", 1)

    if is_admin():
        result = order_service.list_orders(
            status=status,
            payment_status=request.args.get("paymentStatus") or None,
            search=_sanitize_text(request.args.get("search"), 100) or None,
            page=page,
            limit=int_arg("limit", 20),
        )
    else:
        result = order_service.list_user_orders(user_id, status=status, page=page, limit=int_arg("limit", 10))
    return _page(result)


@orders_bp.route("/api/orders/stats", methods=["GET"])
def order_stats():
    require_admin()
    return {"success": True, "stats": service("ORDER_SERVICE").order_stats()}


@orders_bp.route("/api/orders/<order_number>", methods=["GET"])
def get_order(order_number: str):
    user_id = require_user()
    order = service("ORDER_SERVICE").get_order(order_number, None if is_admin() else user_id)
    return {"success": True, "order": order.to_dict()}


@orders_bp.route("/api/orders/<order_number>/cancel", methods=["POST"])
def cancel_order(order_number: str):
    user_id = require_user()
    order = service("ORDER_SERVICE").cancel_order(order_number, user_id)
    return {"success": True, "order": order.to_dict()}


@orders_bp.route("/api/orders/<order_number>/payment", methods=["POST"])
def update_payment(order_number: str):
    """
    Record a payment outcome for the caller's order (admins: any order).

    Body:
        paymentStatus: paid | failed | refunded
        paymentId, paymentMethod: Optional
    """
    user_id = require_user()
    order_service = service("ORDER_SERVICE")
    # Ownership check
    order_service.get_order(order_number, None if is_admin() else user_id)

    data = json_body()
    order = order_service.update_payment_status(
        order_number,
        _sanitize_text(data.get("paymentStatus"), 20),
        payment_id=_sanitize_text(data.get("paymentId"), 100) or None,
        payment_method=_sanitize_text(data.get("paymentMethod"), 20) or None,
    )
    return {"success": True, "order": order.to_dict()}


@orders_bp.route("/api/orders/<order_number>/status", methods=["POST"])
def update_status(order_number: str):
    """
    Body:
        status, trackingNumber, notes: each optional
    """
    require_admin()
    data = json_body()
    order = service("ORDER_SERVICE").update_status(
        order_number,
        status=_sanitize_text(data.get("status"), 20) or None,
        tracking_number=_sanitize_text(data.get("trackingNumber"), 100) or None,
        notes=_sanitize_text(data.get("notes"), 1000) or None,
    )
    logger.info(f"Order {order_number} updated by admin")
    return {"success": True, "order": order.to_dict()}
