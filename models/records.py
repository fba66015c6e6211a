"""
Database tables for placed orders.

OrderRecord stores the submission snapshot (items, delivery info, pricing)
as JSON exactly as submitted; only the status columns change afterwards.
OrderSequence holds one counter row per calendar day for order numbers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

from models.order import (
    DeliveryInfo,
    FrozenOrderItem,
    Order,
    OrderPricing,
    OrderStatus,
    PaymentStatus,
)


Base = declarative_base()


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    items = Column(JSON, nullable=False)
    delivery_info = Column(JSON, nullable=False)
    pricing = Column(JSON, nullable=False)
    total = Column(Float, nullable=False, default=0.0)  # copy of pricing.total for stats queries
    coupon_code = Column(String(64), nullable=True, index=True)

    status = Column(String(16), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(16), nullable=False, default="online")
    payment_id = Column(String(128), nullable=True)
    tracking_number = Column(String(128), nullable=True)
    notes = Column(Text, nullable=False, default="")

    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    def to_model(self) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=self.user_id,
            items=tuple(FrozenOrderItem.from_dict(item) for item in self.items or []),
            delivery_info=DeliveryInfo.from_dict(self.delivery_info or {}),
            pricing=OrderPricing.from_dict(self.pricing or {}),
            status=OrderStatus(self.status),
            payment_status=PaymentStatus(self.payment_status),
            payment_method=self.payment_method,
            payment_id=self.payment_id,
            tracking_number=self.tracking_number,
            coupon_code=self.coupon_code,
            notes=self.notes or "",
            estimated_delivery=_aware(self.estimated_delivery),
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )


class OrderSequence(Base):
    """Per-day order counter; day is YYMMDD."""

    __tablename__ = "order_sequences"

    day = Column(String(6), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
