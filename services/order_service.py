"""
Order persistence service.

Stores submitted orders, hands out order numbers and enforces the status
and payment state machines.

Order numbers:
    PREFIX + YYMMDD + 4-digit daily sequence, e.g. PE2610170001. The
    sequence comes from a per-day counter row incremented in its own
    transaction, so concurrent submissions never read the same value. If
    the number is still taken (the counter fell behind existing orders) the
    insert is retried with the next sequence value.

Pricing:
    The submitted pricing snapshot is stored verbatim as the order of
    record. With price validation on, it is first compared against a
    recomputation from the live catalog and rejected on a mismatch.

Usage:
    order_service = OrderService(database)
    order = order_service.create_order(user_id, items, delivery_info, pricing,
                                       snapshot=catalog_service.get_snapshot())
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from core.database import DatabaseManager
from core.exceptions import (
    CouponError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderNumberCollisionError,
    OrderValidationError,
    PricingMismatchError,
)
from logging_config import get_logger
from models.catalog import ALL_CATEGORIES, CatalogSnapshot, Service
from models.order import (
    PAYMENT_METHODS,
    DeliveryInfo,
    FrozenOrderItem,
    Order,
    OrderPricing,
    OrderStatus,
    PaymentStatus,
)
from models.records import OrderRecord, OrderSequence
from modules.charges import apply_coupon, delivery_charge, packing_charge
from modules.pricing import allowed_values, calculate_item_pricing, pricing_mismatches


# Module logger
logger = get_logger(__name__)

# Item pricing fields re-checked against the catalog; display-only fields
# (per-copy flags, pricePerCopy) may be absent from older clients
VALIDATED_PRICING_FIELDS = (
    "basePricePerPage",
    "printTypePrice",
    "paperSizePrice",
    "paperTypePrice",
    "gsmPrice",
    "printSidePrice",
    "bindingPrice",
    "pricePerPage",
    "totalPages",
    "copies",
    "subtotal",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """
    Creates, reads and updates orders.

    Attributes:
        prefix: Order number prefix (default "PE")
        max_attempts: Order number allocation attempts before giving up
    """

    def __init__(
        self,
        database: DatabaseManager,
        prefix: str = "PE",
        max_attempts: int = 3,
        price_validation: bool = True,
        tolerance: float = 0.01,
        estimated_delivery_days: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not database.is_initialized:
            raise ValueError("DatabaseManager must be initialized before creating OrderService")

        self._database = database
        self.prefix = prefix
        self.max_attempts = max_attempts
        self.price_validation = price_validation
        self.tolerance = tolerance
        self.estimated_delivery_days = estimated_delivery_days
        self._clock = clock

        logger.info(
            f"OrderService initialized (prefix={prefix}, "
            f"price validation {'on' if price_validation else 'off'})"
        )

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_order(
        self,
        user_id: Optional[str],
        items: Sequence[FrozenOrderItem],
        delivery_info: DeliveryInfo,
        pricing: OrderPricing,
        coupon_code: Optional[str] = None,
        payment_method: str = "online",
        snapshot: Optional[CatalogSnapshot] = None,
    ) -> Order:
        """
        Validate and store a new order.

        Args:
            user_id: Customer id from the auth layer
            items: Frozen order items with their pricing snapshots
            delivery_info: Shipping details
            pricing: Order totals as shown to the customer
            coupon_code: Applied coupon, if any
            payment_method: cod | online | upi | razorpay
            snapshot: Live catalog for price re-validation

        Returns:
            The stored Order in pending/pending state

        Raises:
            OrderValidationError: Missing user, items, delivery fields or options, unknown options, or inconsistent totals
            PricingMismatchError: Submitted prices differ from the catalog
            CouponError: The coupon does not apply
            OrderNumberCollisionError: No free order number after max_attempts
        """
        if not user_id:
            raise OrderValidationError("Authentication required", "userId", status_code=401)

        if not items:
            raise OrderValidationError("Order must contain at least one item", "items")

        missing = delivery_info.missing_fields()
        if missing:
            raise OrderValidationError(f"{missing[0]} is required", f"deliveryInfo.{missing[0]}")

        if payment_method not in PAYMENT_METHODS:
            raise OrderValidationError(f"Unknown payment method: {payment_method}", "paymentMethod")

        self._check_configurations(items)
        coupon_code = coupon_code.strip().upper() if coupon_code else None
        self._check_totals(items, pricing)

        now = self._clock()
        if self.price_validation and snapshot is not None:
            self._validate_against_catalog(items, pricing, coupon_code, snapshot, now)

        for attempt in range(1, self.max_attempts + 1):
            order_number = self._allocate_order_number(now)
            try:
                with self._database.session_scope() as session:
                    record = OrderRecord(
                        order_number=order_number,
                        user_id=str(user_id),
                        items=[item.to_dict() for item in items],
                        delivery_info=delivery_info.to_dict(),
                        pricing=pricing.to_dict(),
                        total=pricing.total,
                        coupon_code=coupon_code,
                        status=OrderStatus.PENDING.value,
                        payment_status=PaymentStatus.PENDING.value,
                        payment_method=payment_method,
                        notes="",
                        estimated_delivery=now + timedelta(days=self.estimated_delivery_days),
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(record)
                    session.flush()
                    order = record.to_model()
            except IntegrityError:
                logger.warning(f"Order number {order_number} already taken (attempt {attempt}/{self.max_attempts})")
                continue

            logger.info(
                f"Order {order.order_number} created: {len(items)} items, "
                f"total {pricing.total:.2f}, user {user_id}"
            )
            return order

        logger.error(f"Could not allocate an order number after {self.max_attempts} attempts")
        raise OrderNumberCollisionError(self.max_attempts)

    def _allocate_order_number(self, now: datetime) -> str:
        day = now.strftime("%y%m%d")
        try:
            with self._database.session_scope() as session:
                updated = session.execute(
                    update(OrderSequence)
                    .where(OrderSequence.day == day)
                    .values(value=OrderSequence.value + 1)
                ).rowcount
                if not updated:
                    session.add(OrderSequence(day=day, value=1))
                    session.flush()
                sequence = session.execute(
                    select(OrderSequence.value).where(OrderSequence.day == day)
                ).scalar_one()
        except IntegrityError:
            # Another request created today's counter row first
            with self._database.session_scope() as session:
                session.execute(
                    update(OrderSequence)
                    .where(OrderSequence.day == day)
                    .values(value=OrderSequence.value + 1)
                )
                sequence = session.execute(
                    select(OrderSequence.value).where(OrderSequence.day == day)
                ).scalar_one()

        return f"{self.prefix}{day}{sequence:04d}"

    @staticmethod
    def _check_configurations(items: Sequence[FrozenOrderItem]) -> None:
        """Every item needs a print type, a paper size and at least one copy."""
        for index, item in enumerate(items):
            configuration = item.configuration
            field = f"items[{index}].configuration"
            if configuration.copies < 1:
                raise OrderValidationError(f"'{item.file_name}' needs at least one copy", f"{field}.copies")
            if not configuration.print_type:
                raise OrderValidationError(f"Choose a print type for '{item.file_name}'", f"{field}.printType")
            if not configuration.paper_size:
                raise OrderValidationError(f"Choose a paper size for '{item.file_name}'", f"{field}.paperSize")

    @staticmethod
    def _check_offered_values(index: int, item: FrozenOrderItem, service: Service) -> None:
        for category in ALL_CATEGORIES:
            value = item.configuration.value_for(category)
            if not value:
                continue
            if value not in allowed_values(service, category.name, item.page_count):
                raise OrderValidationError(
                    f"'{value}' is not offered for {category.name} on '{item.file_name}'",
                    f"items[{index}].configuration.{category.name}",
                )

    def _check_totals(self, items: Sequence[FrozenOrderItem], pricing: OrderPricing) -> None:
        item_total = sum(item.pricing.subtotal for item in items)
        if abs(item_total - pricing.subtotal) > self.tolerance:
            raise OrderValidationError(
                f"Order subtotal {pricing.subtotal:.2f} does not match its items ({item_total:.2f})",
                "pricing.subtotal",
            )

        expected_total = max(
            0.0,
            pricing.subtotal + pricing.delivery_charge + pricing.packing_charge - pricing.discount,
        )
        if abs(expected_total - pricing.total) > self.tolerance:
            raise OrderValidationError(
                f"Order total {pricing.total:.2f} does not match its charges ({expected_total:.2f})",
                "pricing.total",
            )

    def _validate_against_catalog(
        self,
        items: Sequence[FrozenOrderItem],
        pricing: OrderPricing,
        coupon_code: Optional[str],
        snapshot: CatalogSnapshot,
        now: datetime,
    ) -> None:
        for index, item in enumerate(items):
            service = snapshot.get_service(item.service_id)
            if service is None:
                raise PricingMismatchError(
                    f"Service '{item.service_name}' is no longer available", index
                )
            if service.custom_quotation:
                raise OrderValidationError(
                    f"'{service.name}' is priced by custom quotation", f"items[{index}]"
                )
            self._check_offered_values(index, item, service)

            expected = calculate_item_pricing(service, item.configuration, item.page_count)
            mismatched = [
                key for key in pricing_mismatches(expected, item.pricing, self.tolerance)
                if key in VALIDATED_PRICING_FIELDS
            ]
            if mismatched:
                logger.warning(f"Pricing mismatch on item {index} ({service.name}): {mismatched}")
                raise PricingMismatchError(
                    f"Prices for '{item.file_name}' have changed. Please review your order.",
                    index,
                    mismatched,
                )

        settings = snapshot.pricing_settings
        expected_delivery = delivery_charge(settings, pricing.subtotal)
        expected_packing = packing_charge(settings, pricing.subtotal)
        charge_fields = []
        if abs(expected_delivery - pricing.delivery_charge) > self.tolerance:
            charge_fields.append("deliveryCharge")
        if abs(expected_packing - pricing.packing_charge) > self.tolerance:
            charge_fields.append("packingCharge")

        expected_discount = 0.0
        if coupon_code:
            coupon = snapshot.find_coupon(coupon_code)
            if coupon is None:
                raise CouponError("Invalid coupon code", coupon_code)
            expected_discount = apply_coupon(
                coupon, pricing.subtotal, expected_delivery, now,
                used_count=self.coupon_redemptions(coupon_code),
            )
        if abs(expected_discount - pricing.discount) > self.tolerance:
            charge_fields.append("discount")

        if charge_fields:
            raise PricingMismatchError(
                "Delivery, packing or discount amounts have changed. Please review your order.",
                fields=charge_fields,
            )

    # =========================================================================
    # READ
    # =========================================================================

    def get_order(self, order_number: str, user_id: Optional[str] = None) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order does not exist or belongs to another user
        """
        with self._database.session_scope() as session:
            record = self._find_record(session, order_number, user_id)
            return record.to_model()

    def list_user_orders(
        self,
        user_id: str,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """A user's orders, newest first, with pagination info."""
        if not user_id:
            raise OrderValidationError("Authentication required", "userId", status_code=401)
        conditions = [OrderRecord.user_id == str(user_id)]
        if status:
            conditions.append(OrderRecord.status == _parse(OrderStatus, status, "status").value)
        return self._paginate(conditions, page, limit)

    def list_orders(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """All orders (admin), filtered by status, payment status and search text."""
        conditions = []
        if status:
            conditions.append(OrderRecord.status == _parse(OrderStatus, status, "status").value)
        if payment_status:
            conditions.append(OrderRecord.payment_status == _parse(PaymentStatus, payment_status, "paymentStatus").value)

        orders = None
        if search:
            # Name and phone live in the JSON column, so those matches are filtered in Python
            orders = self._search(conditions, search)

        if orders is not None:
            total = len(orders)
            page, limit = max(1, page), max(1, limit)
            window = orders[(page - 1) * limit:page * limit]
            return self._page_result(window, page, limit, total)
        return self._paginate(conditions, page, limit)

    def _search(self, conditions: List[Any], search: str) -> List[Order]:
        needle = search.strip().lower()
        with self._database.session_scope() as session:
            records = session.execute(
                select(OrderRecord).where(*conditions).order_by(OrderRecord.created_at.desc())
            ).scalars().all()
            orders = [record.to_model() for record in records]

        return [
            order for order in orders
            if needle in order.order_number.lower()
            or needle in order.delivery_info.full_name.lower()
            or needle in order.delivery_info.phone.lower()
        ]

    def _paginate(self, conditions: List[Any], page: int, limit: int) -> Dict[str, Any]:
        page, limit = max(1, page), max(1, limit)
        with self._database.session_scope() as session:
            total = session.execute(
                select(func.count(OrderRecord.id)).where(*conditions)
            ).scalar_one()
            records = session.execute(
                select(OrderRecord)
                .where(*conditions)
                .order_by(OrderRecord.created_at.desc(), OrderRecord.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
            orders = [record.to_model() for record in records]
        return self._page_result(orders, page, limit, total)

    @staticmethod
    def _page_result(orders: List[Order], page: int, limit: int, total: int) -> Dict[str, Any]:
        return {
            "orders": orders,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    # =========================================================================
    # STATE CHANGES
    # =========================================================================

    def cancel_order(self, order_number: str, user_id: str) -> Order:
        """
        Customer cancellation, allowed only while pending or confirmed.

        Raises:
            OrderNotFoundError: If the order does not exist or belongs to another user
            InvalidStatusTransitionError: If the order is already being processed
        """
        if not user_id:
            raise OrderValidationError("Authentication required", "userId", status_code=401)

        with self._database.session_scope() as session:
            record = self._find_record(session, order_number, user_id)
            current = OrderStatus(record.status)
            if not current.is_cancellable:
                raise InvalidStatusTransitionError(
                    "status", current.value, OrderStatus.CANCELLED.value,
                    "Order is already being processed and cannot be cancelled",
                )
            record.status = OrderStatus.CANCELLED.value
            record.updated_at = self._clock()
            order = record.to_model()

        logger.info(f"Order {order_number} cancelled by user {user_id}")
        return order

    def update_status(
        self,
        order_number: str,
        status: Optional[str] = None,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Admin status change: forward moves only, cancellation only before processing.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStatusTransitionError: If the move is not allowed
            OrderValidationError: If status is not a known status
        """
        with self._database.session_scope() as session:
            record = self._find_record(session, order_number)
            current = OrderStatus(record.status)

            if status:
                target = _parse(OrderStatus, status, "status")
                if target != current:
                    if not current.can_transition_to(target):
                        raise InvalidStatusTransitionError("status", current.value, target.value)
                    record.status = target.value
            if tracking_number:
                record.tracking_number = tracking_number
            if notes:
                record.notes = notes
            record.updated_at = self._clock()
            order = record.to_model()

        logger.info(f"Order {order_number} status: {current.value} -> {order.status.value}")
        return order

    def update_payment_status(
        self,
        order_number: str,
        payment_status: str,
        payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Order:
        """
        Record a payment outcome.

        paid confirms a pending order; failed cancels it.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStatusTransitionError: If the payment move is not allowed
            OrderValidationError: If payment_status is not a known status
        """
        if payment_method is not None and payment_method not in PAYMENT_METHODS:
            raise OrderValidationError(f"Unknown payment method: {payment_method}", "paymentMethod")

        with self._database.session_scope() as session:
            record = self._find_record(session, order_number)
            current = PaymentStatus(record.payment_status)
            target = _parse(PaymentStatus, payment_status, "paymentStatus")
            if not current.can_transition_to(target):
                raise InvalidStatusTransitionError("paymentStatus", current.value, target.value)

            record.payment_status = target.value
            if payment_id:
                record.payment_id = payment_id
            if payment_method:
                record.payment_method = payment_method

            status = OrderStatus(record.status)
            if target == PaymentStatus.PAID and status == OrderStatus.PENDING:
                record.status = OrderStatus.CONFIRMED.value
            elif target == PaymentStatus.FAILED and status.is_cancellable:
                record.status = OrderStatus.CANCELLED.value

            record.updated_at = self._clock()
            order = record.to_model()

        logger.info(
            f"Order {order_number} payment: {current.value} -> {target.value} "
            f"(status {order.status.value})"
        )
        return order

    # =========================================================================
    # REPORTING
    # =========================================================================

    def order_stats(self) -> Dict[str, Any]:
        """Order counts by bucket and revenue from paid orders."""
        now = self._clock()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today.replace(day=1)
        in_progress = [s.value for s in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.PRINTING)]

        def count(*conditions) -> int:
            return session.execute(select(func.count(OrderRecord.id)).where(*conditions)).scalar_one()

        with self._database.session_scope() as session:
            stats = {
                "totalOrders": count(),
                "todayOrders": count(OrderRecord.created_at >= today),
                "monthOrders": count(OrderRecord.created_at >= month_start),
                "pendingOrders": count(OrderRecord.status == OrderStatus.PENDING.value),
                "processingOrders": count(OrderRecord.status.in_(in_progress)),
                "completedOrders": count(OrderRecord.status == OrderStatus.DELIVERED.value),
                "totalRevenue": session.execute(
                    select(func.coalesce(func.sum(OrderRecord.total), 0.0))
                    .where(OrderRecord.payment_status == PaymentStatus.PAID.value)
                ).scalar_one(),
            }
        return stats

    def coupon_redemptions(self, code: str) -> int:
        """Orders placed with this coupon, cancelled ones excluded."""
        with self._database.session_scope() as session:
            return session.execute(
                select(func.count(OrderRecord.id)).where(
                    OrderRecord.coupon_code == code.strip().upper(),
                    OrderRecord.status != OrderStatus.CANCELLED.value,
                )
            ).scalar_one()

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _find_record(session, order_number: str, user_id: Optional[str] = None) -> OrderRecord:
        conditions = [OrderRecord.order_number == order_number]
        if user_id is not None:
            conditions.append(OrderRecord.user_id == str(user_id))
        record = session.execute(select(OrderRecord).where(*conditions)).scalar_one_or_none()
        if record is None:
            raise OrderNotFoundError(order_number)
        return record


def _parse(enum_cls, value: str, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise OrderValidationError(f"Invalid {field} '{value}' (allowed: {allowed})", field) from e
