"""
Order data models.

These models represent a customer's print order as it flows through the
application: upload -> configure -> review -> submit -> fulfilment.

Thread Safety:
    - UploadedFile and OrderItem are mutable and owned by one wizard
    - Use OrderItem.freeze() to create the immutable snapshot stored with an order
    - Order is rebuilt from the database on every read; it is never shared
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from models.catalog import Service, ServiceConfiguration
from models.file_result import FileStatus
from modules.pricing import ItemPricing


PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")


# =============================================================================
# WIZARD ITEMS
# =============================================================================

@dataclass
class UploadedFile:
    """
    A file the customer uploaded for printing.

    Created by the /upload route in PROCESSING status and updated once the
    page count result arrives.
    """

    id: str
    """Unique file id (also the key of its page-count thread)."""

    filename: str
    """Sanitized original filename."""

    stored_path: str
    """File that is printed: the upload itself, or its converted PDF."""

    size: int = 0
    content_type: str = ""
    page_count: int = 0
    status: FileStatus = FileStatus.PROCESSING

    original_path: Optional[str] = None
    """Original upload when stored_path points at a converted PDF."""

    error: str = ""

    preview_token: Optional[str] = None
    """Token issued by the PreviewRegistry; owned by the order item."""

    @property
    def is_ready(self) -> bool:
        return self.status == FileStatus.READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.filename,
            "size": self.size,
            "contentType": self.content_type,
            "pageCount": self.page_count,
            "status": self.status.value,
            "converted": self.original_path is not None,
            "error": self.error or None,
            "previewToken": self.preview_token,
        }


@dataclass
class OrderItem:
    """
    One file in the cart with its service, configuration and pricing.

    The item keeps its own Service snapshot, so carts may mix services and a
    catalog reload never reprices an item behind the customer's back.
    """

    id: str
    service: Service
    file: UploadedFile
    configuration: ServiceConfiguration
    pricing: ItemPricing

    @property
    def service_id(self) -> str:
        return self.service.id

    @property
    def service_name(self) -> str:
        return self.service.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "serviceId": self.service_id,
            "serviceName": self.service_name,
            "file": self.file.to_dict(),
            "configuration": self.configuration.to_dict(),
            "pricing": self.pricing.to_dict(),
        }

    def freeze(self) -> "FrozenOrderItem":
        """
        Create the immutable snapshot stored with the order.

        Returns:
            FrozenOrderItem instance (immutable)
        """
        return FrozenOrderItem(
            service_id=self.service_id,
            service_name=self.service_name,
            file_name=self.file.filename,
            file_size=self.file.size,
            page_count=self.file.page_count,
            configuration=self.configuration,
            pricing=self.pricing,
        )


@dataclass(frozen=True)
class FrozenOrderItem:
    """
    Immutable order line as submitted by the customer.

    The pricing is the customer's snapshot and is stored verbatim; later
    catalog edits never change it.
    """

    service_id: str
    service_name: str
    file_name: str
    file_size: int
    page_count: int
    configuration: ServiceConfiguration
    pricing: ItemPricing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "serviceName": self.service_name,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "pageCount": self.page_count,
            "configuration": self.configuration.to_dict(),
            "pricing": self.pricing.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrozenOrderItem":
        """
        Create from a stored item or a submitted one.

        Submitted items nest the file details under "file"
        ({name, size, pageCount}); stored items keep them flat.
        """
        file_data = data.get("file") or {}
        return cls(
            service_id=str(data.get("serviceId", "")),
            service_name=str(data.get("serviceName", "")),
            file_name=str(file_data.get("name") or data.get("fileName") or ""),
            file_size=int(file_data.get("size") or data.get("fileSize") or 0),
            page_count=int(file_data.get("pageCount") or data.get("pageCount") or 0),
            configuration=ServiceConfiguration.from_dict(data.get("configuration") or {}),
            pricing=ItemPricing.from_dict(data.get("pricing") or {}),
        )


# =============================================================================
# ORDER
# =============================================================================

@dataclass(frozen=True)
class DeliveryInfo:
    """Where the order ships. Text is sanitized by the routes before it gets here."""

    full_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    delivery_notes: str = ""

    REQUIRED_FIELDS = ("fullName", "phone", "email", "address", "city", "state", "pincode")

    def missing_fields(self) -> List[str]:
        """camelCase names of required fields that are empty."""
        data = self.to_dict()
        return [name for name in self.REQUIRED_FIELDS if not data.get(name)]

    def format_errors(self) -> Dict[str, str]:
        """Checkout form checks: required fields, 10-digit mobile, email, 6-digit PIN code."""
        errors = {name: f"{name} is required" for name in self.missing_fields()}
        if self.phone and not PHONE_PATTERN.match(self.phone):
            errors["phone"] = "Enter a valid 10-digit mobile number"
        if self.email and not EMAIL_PATTERN.match(self.email):
            errors["email"] = "Enter a valid email address"
        if self.pincode and not PINCODE_PATTERN.match(self.pincode):
            errors["pincode"] = "Enter a valid 6-digit PIN code"
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fullName": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "deliveryNotes": self.delivery_notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryInfo":
        def text(key: str) -> str:
            return str(data.get(key) or "").strip()

        return cls(
            full_name=text("fullName"),
            phone=text("phone"),
            email=text("email"),
            address=text("address"),
            city=text("city"),
            state=text("state"),
            pincode=text("pincode"),
            delivery_notes=text("deliveryNotes"),
        )


@dataclass(frozen=True)
class OrderPricing:
    """Order-level totals as shown to the customer at checkout."""

    subtotal: float = 0.0
    delivery_charge: float = 0.0
    packing_charge: float = 0.0
    discount: float = 0.0
    total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "deliveryCharge": self.delivery_charge,
            "packingCharge": self.packing_charge,
            "discount": self.discount,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderPricing":
        subtotal = float(data.get("subtotal") or 0)
        return cls(
            subtotal=subtotal,
            delivery_charge=float(data.get("deliveryCharge") or 0),
            packing_charge=float(data.get("packingCharge") or 0),
            discount=float(data.get("discount") or 0),
            total=float(data["total"]) if data.get("total") is not None else subtotal,
        )


class OrderStatus(Enum):
    """
    Fulfilment status.

    Lifecycle:
        PENDING -> CONFIRMED -> PROCESSING -> PRINTING -> SHIPPED -> DELIVERED
        PENDING | CONFIRMED -> CANCELLED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PRINTING = "printing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_cancellable(self) -> bool:
        return self in CANCELLABLE_STATUSES

    @property
    def is_final(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Forward moves only; cancellation only before processing starts."""
        if target == OrderStatus.CANCELLED:
            return self.is_cancellable
        if self.is_final:
            return False
        return STATUS_FLOW.index(target) > STATUS_FLOW.index(self)


STATUS_FLOW: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PRINTING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


class PaymentStatus(Enum):
    """
    Payment status.

    Lifecycle:
        PENDING -> (PAID | FAILED)
        PAID -> REFUNDED
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in PAYMENT_TRANSITIONS[self]


PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

PAYMENT_METHODS = ("cod", "online", "upi", "razorpay")


@dataclass
class Order:
    """
    A placed order as read back from the database.

    items, delivery_info and pricing are the submission snapshot; only the
    status fields change after creation.
    """

    order_number: str
    user_id: str
    items: Tuple[FrozenOrderItem, ...]
    delivery_info: DeliveryInfo
    pricing: OrderPricing
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str = "online"
    payment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    coupon_code: Optional[str] = None
    notes: str = ""
    estimated_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None

    def summary_dict(self) -> Dict[str, Any]:
        """Short form returned right after creation."""
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "total": self.pricing.total,
            "estimatedDelivery": _iso(self.estimated_delivery),
            "createdAt": _iso(self.created_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary_dict()
        data.update({
            "userId": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "deliveryInfo": self.delivery_info.to_dict(),
            "pricing": self.pricing.to_dict(),
            "couponCode": self.coupon_code,
            "paymentMethod": self.payment_method,
            "paymentId": self.payment_id,
            "trackingNumber": self.tracking_number,
            "notes": self.notes,
            "updatedAt": _iso(self.updated_at),
        })
        return data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
