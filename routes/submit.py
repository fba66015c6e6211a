"""
Order submission route.

Freezes the cart into immutable order items, prices the checkout on the
server, and stores the order. The wizard is discarded on success; its
uploaded files now belong to the order.
"""

from flask import Blueprint, session

from core.exceptions import OrderValidationError
from models.order import OrderPricing
from modules.wizard import WizardStep
from logging_config import get_logger

from .helpers import (
    _sanitize_text,
    catalog_snapshot,
    checkout_for,
    current_wizard,
    json_body,
    require_user,
    sanitize_delivery_info,
    service,
)


# Module logger
logger = get_logger(__name__)

submit_bp = Blueprint("submit", __name__)


@submit_bp.route("/submit", methods=["POST"])
def submit():
    """
    Place the order held by the current wizard.

    Body:
        deliveryInfo: fullName, phone, email, address, city, state, pincode, deliveryNotes
        couponCode: Optional coupon
        paymentMethod: cod | online | upi | razorpay (default online)

    Returns:
        201 with the order summary (orderNumber, total, estimatedDelivery)
    """
    user_id = require_user()
    wizard = current_wizard()
    wizard.go_to(WizardStep.REVIEW)
    wizard.ensure_ready_for_submit()

    data = json_body()
    delivery_info = sanitize_delivery_info(data.get("deliveryInfo"))
    errors = delivery_info.format_errors()
    if errors:
        field = next(iter(errors))
        error = OrderValidationError(errors[field], f"deliveryInfo.{field}")
        error.details["errors"] = errors
        raise error

    coupon_code = _sanitize_text(data.get("couponCode"), 50) or None
    payment_method = _sanitize_text(data.get("paymentMethod"), 20) or "online"

    summary = checkout_for(wizard.subtotal, coupon_code)
    pricing = OrderPricing(
        subtotal=summary["subtotal"],
        delivery_charge=summary["deliveryCharge"],
        packing_charge=summary["packingCharge"],
        discount=summary["discount"],
        total=summary["total"],
    )

    logger.info(f"Submitting wizard {wizard.id[:8]}: {len(wizard.items)} items for user {user_id}")
    order = service("ORDER_SERVICE").create_order(
        user_id,
        wizard.freeze_items(),
        delivery_info,
        pricing,
        coupon_code=summary["couponCode"],
        payment_method=payment_method,
        snapshot=catalog_snapshot(),
    )

    service("WIZARD_STORE").discard(wizard.id, keep_files=True)
    session.pop("wizard_id", None)

    return {"success": True, "order": order.summary_dict()}, 201
