"""
Checkout charges: delivery, packing and coupon discounts.

These apply at the review/submit boundary on top of the cart subtotal;
item pricing never includes them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from core.exceptions import CouponError
from models.catalog import Coupon, CouponType, PricingSettings, Threshold


def threshold_charge(thresholds: Iterable[Threshold], amount: float) -> float:
    """Charge of the highest tier whose minAmount the amount reaches (0 if none)."""
    applicable = [t for t in thresholds if amount >= t.min_amount]
    if not applicable:
        return 0.0
    return max(applicable, key=lambda t: t.min_amount).charge


def delivery_charge(settings: PricingSettings, subtotal: float) -> float:
    if not settings.is_delivery_enabled:
        return 0.0
    return threshold_charge(settings.delivery_thresholds, subtotal)


def packing_charge(settings: PricingSettings, subtotal: float) -> float:
    if not settings.is_packing_enabled:
        return 0.0
    return threshold_charge(settings.packing_thresholds, subtotal)


def free_delivery_threshold(settings: PricingSettings) -> Optional[float]:
    """Lowest order amount that ships free, or None if delivery is never free."""
    if not settings.is_delivery_enabled:
        return None
    for tier in sorted(settings.delivery_thresholds, key=lambda t: t.min_amount):
        if tier.charge == 0:
            return tier.min_amount
    return None


def apply_coupon(
    coupon: Coupon,
    order_amount: float,
    delivery: float,
    now: datetime,
    used_count: int = 0,
) -> float:
    """
    Discount a coupon gives on this order.

    Args:
        coupon: Coupon from the catalog
        order_amount: Cart subtotal
        delivery: Delivery charge (the discount of a free-delivery coupon)
        now: Current time, timezone-aware
        used_count: Redemptions recorded in placed orders

    Raises:
        CouponError: If the coupon is inactive, expired, used up, or the
            order is below its minimum amount
    """
    if not coupon.is_active:
        raise CouponError("Invalid coupon code", coupon.code)

    if coupon.expiry_date and now > coupon.expiry_date:
        raise CouponError("Coupon has expired", coupon.code)

    if coupon.usage_limit and coupon.used_count + used_count >= coupon.usage_limit:
        raise CouponError("Coupon usage limit reached", coupon.code)

    if order_amount < coupon.min_order_amount:
        raise CouponError(
            f"Minimum order amount of ₹{coupon.min_order_amount:g} required for this coupon",
            coupon.code,
        )

    if coupon.type == CouponType.PERCENTAGE:
        discount = order_amount * coupon.value / 100
        if coupon.max_discount_amount and discount > coupon.max_discount_amount:
            discount = coupon.max_discount_amount
        return discount

    if coupon.type == CouponType.FREE_DELIVERY:
        return delivery

    return coupon.value


def checkout_summary(
    subtotal: float,
    settings: PricingSettings,
    coupon: Optional[Coupon] = None,
    now: Optional[datetime] = None,
    used_count: int = 0,
) -> Dict[str, Any]:
    """
    Final amounts for the review step.

    Raises:
        CouponError: If a coupon is given and does not apply
    """
    delivery = delivery_charge(settings, subtotal)
    packing = packing_charge(settings, subtotal)
    discount = 0.0
    if coupon is not None:
        if now is None:
            raise ValueError("now is required when a coupon is applied")
        discount = apply_coupon(coupon, subtotal, delivery, now, used_count)

    free_at = free_delivery_threshold(settings)
    return {
        "subtotal": subtotal,
        "deliveryCharge": delivery,
        "packingCharge": packing,
        "discount": discount,
        "total": max(0.0, subtotal + delivery + packing - discount),
        "couponCode": coupon.code if coupon else None,
        "freeDeliveryThreshold": free_at,
        "amountToFreeDelivery": max(0.0, free_at - subtotal) if free_at is not None and delivery else 0.0,
    }
