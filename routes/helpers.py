"""
Shared helpers for route handlers.

Services are created once in create_app() and stored in app.config;
routes look them up here instead of importing them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import bleach
from flask import current_app, request, session

from core.exceptions import AccessDeniedError, CouponError, OrderValidationError, WizardNotFoundError
from models.order import DeliveryInfo
from modules.charges import checkout_summary
from modules.wizard import OrderWizard


# Header set by the auth layer in front of the app
USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

MAX_FIELD_LENGTH = 200
MAX_ADDRESS_LENGTH = 500


def _sanitize_text(text: Any, max_length: int = None) -> str:
    """
    Sanitize user input text to prevent XSS and injection attacks.

    Args:
        text: Raw input text
        max_length: Optional maximum length to enforce

    Returns:
        Sanitized text safe for storage and display
    """
    if not text:
        return ""

    text = str(text).strip()
    text = bleach.clean(text, tags=[], strip=True)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_delivery_info(data: Optional[Dict[str, Any]]) -> DeliveryInfo:
    data = data or {}
    cleaned = {
        key: _sanitize_text(data.get(key), MAX_FIELD_LENGTH)
        for key in ("fullName", "phone", "email", "city", "state", "pincode")
    }
    cleaned["address"] = _sanitize_text(data.get("address"), MAX_ADDRESS_LENGTH)
    cleaned["deliveryNotes"] = _sanitize_text(data.get("deliveryNotes"), MAX_ADDRESS_LENGTH)
    return DeliveryInfo.from_dict(cleaned)


def json_body() -> Dict[str, Any]:
    """Request JSON object, or an empty dict for missing or non-object bodies."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise OrderValidationError(f"{name} must be a number", name)


def service(name: str):
    """Look up a service object registered in app.config (e.g. "ORDER_SERVICE")."""
    return current_app.config[name]


def catalog_snapshot():
    return service("CATALOG_SERVICE").get_snapshot_or_raise()


def current_wizard() -> OrderWizard:
    """
    The wizard referenced by the session.

    Raises:
        WizardNotFoundError: If no wizard was started or it has expired
    """
    wizard_id = session.get("wizard_id")
    wizard = service("WIZARD_STORE").get(wizard_id)
    if wizard is None:
        session.pop("wizard_id", None)
        raise WizardNotFoundError(wizard_id)
    return wizard


def current_user_id() -> Optional[str]:
    return _sanitize_text(request.headers.get(USER_ID_HEADER), MAX_FIELD_LENGTH) or None


def require_user() -> str:
    user_id = current_user_id()
    if not user_id:
        raise OrderValidationError("Authentication required", "userId", status_code=401)
    return user_id


def is_admin() -> bool:
    return request.headers.get(USER_ROLE_HEADER, "").lower() == "admin"


def require_admin() -> None:
    require_user()
    if not is_admin():
        raise AccessDeniedError()


def checkout_for(subtotal: float, coupon_code: Optional[str] = None) -> Dict[str, Any]:
    """
    Delivery, packing and discount for a cart subtotal.

    Raises:
        CouponError: If the coupon is unknown or does not apply
    """
    snapshot = catalog_snapshot()
    coupon = None
    used_count = 0
    if coupon_code:
        coupon = snapshot.find_coupon(coupon_code)
        if coupon is None:
            raise CouponError("Invalid coupon code", coupon_code.strip().upper())
        used_count = service("ORDER_SERVICE").coupon_redemptions(coupon.code)

    return checkout_summary(
        subtotal,
        snapshot.pricing_settings,
        coupon=coupon,
        now=datetime.now(timezone.utc),
        used_count=used_count,
    )
