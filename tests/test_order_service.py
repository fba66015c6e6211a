"""
Unit tests for order persistence, numbering and state machines.

Uses an in-memory SQLite database and a fixed clock.
"""

from datetime import timedelta

import pytest

from core.exceptions import (
    CouponError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderNumberCollisionError,
    OrderValidationError,
    PricingMismatchError,
)
from models.order import (
    DeliveryInfo,
    FrozenOrderItem,
    OrderPricing,
    OrderStatus,
    PaymentStatus,
)
from models.records import OrderRecord
from modules.pricing import ItemPricing, calculate_item_pricing
from services.order_service import OrderService

from conftest import FIXED_NOW


# Fixtures

@pytest.fixture
def order_service(database, fixed_clock):
    return OrderService(database, prefix="PE", clock=fixed_clock)


@pytest.fixture
def item(doc_service, color_spiral_config):
    return FrozenOrderItem(
        service_id="doc",
        service_name="Document Printing",
        file_name="thesis.pdf",
        file_size=1024,
        page_count=25,
        configuration=color_spiral_config,
        pricing=calculate_item_pricing(doc_service, color_spiral_config, 25),
    )


@pytest.fixture
def delivery():
    return DeliveryInfo(
        full_name="Asha Rao",
        phone="9876543210",
        email="asha@example.com",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
    )


@pytest.fixture
def pricing():
    """675 subtotal: free delivery, 20 packing."""
    return OrderPricing(subtotal=675, delivery_charge=0, packing_charge=20, discount=0, total=695)


@pytest.fixture
def place(order_service, item, delivery, pricing, snapshot):
    """Create an order with valid defaults."""
    def _place(user_id="user-1", **kwargs):
        kwargs.setdefault("snapshot", snapshot)
        return order_service.create_order(user_id, [item], delivery, pricing, **kwargs)
    return _place


# Tests for Creation

class TestCreateOrder:
    """Validation and storage of new orders."""

    def test_creates_pending_order(self, place, item):
        order = place()
        assert order.order_number == "PE2610170001"
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.pricing.total == 695
        assert order.items[0].pricing == item.pricing
        assert order.created_at == FIXED_NOW
        assert order.estimated_delivery == FIXED_NOW + timedelta(days=5)

    def test_daily_sequence_increments(self, place):
        assert place().order_number == "PE2610170001"
        assert place().order_number == "PE2610170002"

    def test_sequence_restarts_each_day(self, database, item, delivery, pricing):
        clock_times = [FIXED_NOW, FIXED_NOW + timedelta(days=1)]
        service = OrderService(database, clock=lambda: clock_times[0])
        first = service.create_order("u", [item], delivery, pricing)
        clock_times.pop(0)
        second = service.create_order("u", [item], delivery, pricing)
        assert first.order_number == "PE2610170001"
        assert second.order_number == "PE2610180001"

    def test_retries_taken_number(self, place, database):
        with database.session_scope() as session:
            session.add(OrderRecord(
                order_number="PE2610170001", user_id="other", items=[], delivery_info={},
                pricing={}, total=0, status="pending", payment_status="pending",
                payment_method="cod", created_at=FIXED_NOW, updated_at=FIXED_NOW,
            ))
        assert place().order_number == "PE2610170002"

    def test_gives_up_after_max_attempts(self, database, fixed_clock, item, delivery, pricing):
        service = OrderService(database, max_attempts=1, clock=fixed_clock)
        with database.session_scope() as session:
            session.add(OrderRecord(
                order_number="PE2610170001", user_id="other", items=[], delivery_info={},
                pricing={}, total=0, status="pending", payment_status="pending",
                payment_method="cod", created_at=FIXED_NOW, updated_at=FIXED_NOW,
            ))
        with pytest.raises(OrderNumberCollisionError):
            service.create_order("u", [item], delivery, pricing)

    def test_requires_user(self, place):
        with pytest.raises(OrderValidationError) as exc_info:
            place(user_id=None)
        assert exc_info.value.status_code == 401

    def test_requires_items(self, order_service, delivery, pricing):
        with pytest.raises(OrderValidationError, match="at least one item"):
            order_service.create_order("u", [], delivery, pricing)

    def test_requires_delivery_fields(self, order_service, item, pricing):
        with pytest.raises(OrderValidationError) as exc_info:
            order_service.create_order("u", [item], DeliveryInfo(full_name="A"), pricing)
        assert exc_info.value.field == "deliveryInfo.phone"

    def test_rejects_unknown_payment_method(self, place):
        with pytest.raises(OrderValidationError):
            place(payment_method="barter")

    def test_rejects_subtotal_not_matching_items(self, order_service, item, delivery):
        wrong = OrderPricing(subtotal=600, packing_charge=20, total=620)
        with pytest.raises(OrderValidationError, match="subtotal"):
            order_service.create_order("u", [item], delivery, wrong)

    def test_rejects_inconsistent_total(self, order_service, item, delivery):
        wrong = OrderPricing(subtotal=675, packing_charge=20, total=675)
        with pytest.raises(OrderValidationError, match="total"):
            order_service.create_order("u", [item], delivery, wrong)


class TestPriceRevalidation:
    """Submitted prices compared with the live catalog."""

    def test_tampered_item_price_rejected(self, order_service, item, delivery, snapshot):
        cheap = ItemPricing.from_dict(dict(item.pricing.to_dict(), pricePerPage=1, subtotal=75))
        tampered = FrozenOrderItem(**dict(item.__dict__, pricing=cheap))
        pricing = OrderPricing(subtotal=75, delivery_charge=50, packing_charge=20, total=145)
        with pytest.raises(PricingMismatchError) as exc_info:
            order_service.create_order("u", [tampered], delivery, pricing, snapshot=snapshot)
        assert "pricePerPage" in exc_info.value.details["fields"]

    def test_missing_display_fields_tolerated(self, item, order_service, delivery, pricing, snapshot):
        data = item.pricing.to_dict()
        for key in ("pricePerCopy", "bindingIsPerCopy", "printTypeIsPerCopy"):
            data.pop(key)
        legacy = FrozenOrderItem(**dict(item.__dict__, pricing=ItemPricing.from_dict(data)))
        order = order_service.create_order("u", [legacy], delivery, pricing, snapshot=snapshot)
        assert order.items[0].pricing.price_per_copy == 0

    def test_wrong_delivery_charge_rejected(self, order_service, item, delivery, snapshot):
        pricing = OrderPricing(subtotal=675, delivery_charge=0, packing_charge=0, total=675)
        with pytest.raises(PricingMismatchError) as exc_info:
            order_service.create_order("u", [item], delivery, pricing, snapshot=snapshot)
        assert exc_info.value.details["fields"] == ["packingCharge"]

    def test_removed_service_rejected(self, order_service, item, delivery, pricing, snapshot):
        moved = FrozenOrderItem(**dict(item.__dict__, service_id="gone"))
        with pytest.raises(PricingMismatchError):
            order_service.create_order("u", [moved], delivery, pricing, snapshot=snapshot)

    def test_validation_disabled(self, database, fixed_clock, item, delivery, snapshot):
        service = OrderService(database, price_validation=False, clock=fixed_clock)
        cheap = ItemPricing.from_dict(dict(item.pricing.to_dict(), subtotal=1))
        tampered = FrozenOrderItem(**dict(item.__dict__, pricing=cheap))
        pricing = OrderPricing(subtotal=1, total=1)
        order = service.create_order("u", [tampered], delivery, pricing, snapshot=snapshot)
        assert order.pricing.total == 1

    @pytest.mark.parametrize("changes, field", [
        ({"print_type": "bogus"}, "items[0].configuration.printType"),
        ({"paper_size": ""}, "items[0].configuration.paperSize"),
        ({"print_type": ""}, "items[0].configuration.printType"),
        ({"copies": 0}, "items[0].configuration.copies"),
        ({"binding_option": "hard-bound"}, "items[0].configuration.bindingOption"),
    ])
    def test_forged_configuration_rejected(
        self, order_service, item, delivery, snapshot, doc_service, changes, field,
    ):
        # Priced consistently for the forged values, so only the options are wrong
        forged_config = item.configuration.with_changes(**changes)
        forged_pricing = calculate_item_pricing(doc_service, forged_config, item.page_count)
        forged = FrozenOrderItem(**dict(item.__dict__, configuration=forged_config, pricing=forged_pricing))
        pricing = OrderPricing(subtotal=forged_pricing.subtotal, total=forged_pricing.subtotal)

        with pytest.raises(OrderValidationError) as exc_info:
            order_service.create_order("u", [forged], delivery, pricing, snapshot=snapshot)
        assert exc_info.value.field == field
        assert order_service.order_stats()["totalOrders"] == 0

    def test_missing_options_rejected_without_catalog(self, order_service, item, delivery):
        blank = FrozenOrderItem(**dict(item.__dict__, configuration=item.configuration.with_changes(paper_size="")))
        with pytest.raises(OrderValidationError, match="paper size"):
            order_service.create_order("u", [blank], delivery, OrderPricing(subtotal=675, packing_charge=20, total=695))

    def test_coupon_discount_checked(self, item, order_service, delivery, snapshot):
        pricing = OrderPricing(subtotal=675, packing_charge=20, discount=67.5, total=627.5)
        order = order_service.create_order(
            "u", [item], delivery, pricing, coupon_code="save10", snapshot=snapshot,
        )
        assert order.coupon_code == "SAVE10"

        wrong = OrderPricing(subtotal=675, packing_charge=20, discount=100, total=595)
        with pytest.raises(PricingMismatchError):
            order_service.create_order("u", [item], delivery, wrong, coupon_code="SAVE10", snapshot=snapshot)

    def test_unknown_coupon_rejected(self, place):
        with pytest.raises(CouponError):
            place(coupon_code="NOPE")

    def test_coupon_usage_limit_counts_orders(self, order_service, item, delivery, snapshot):
        pricing = OrderPricing(subtotal=675, packing_charge=20, discount=20, total=675)
        first = order_service.create_order("u", [item], delivery, pricing, coupon_code="LIMITED", snapshot=snapshot)
        assert order_service.coupon_redemptions("limited") == 1

        with pytest.raises(CouponError, match="usage limit"):
            order_service.create_order("u", [item], delivery, pricing, coupon_code="LIMITED", snapshot=snapshot)

        # Cancelled orders give the redemption back
        order_service.cancel_order(first.order_number, "u")
        assert order_service.coupon_redemptions("LIMITED") == 0


# Tests for Reads

class TestOrderQueries:
    """Lookup, listing and stats."""

    def test_get_order_scoped_to_user(self, place, order_service):
        order = place()
        assert order_service.get_order(order.order_number, "user-1").id == order.id
        assert order_service.get_order(order.order_number).id == order.id
        with pytest.raises(OrderNotFoundError):
            order_service.get_order(order.order_number, "user-2")

    def test_list_user_orders_paginates(self, place, order_service):
        for _ in range(3):
            place()
        place(user_id="user-2")

        result = order_service.list_user_orders("user-1", page=1, limit=2)
        assert result["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert [o.order_number for o in result["orders"]] == ["PE2610170003", "PE2610170002"]

        second = order_service.list_user_orders("user-1", page=2, limit=2)
        assert [o.order_number for o in second["orders"]] == ["PE2610170001"]

    def test_list_user_orders_by_status(self, place, order_service):
        order = place()
        place()
        order_service.cancel_order(order.order_number, "user-1")
        result = order_service.list_user_orders("user-1", status="cancelled")
        assert [o.order_number for o in result["orders"]] == [order.order_number]

    def test_invalid_status_filter(self, order_service):
        with pytest.raises(OrderValidationError):
            order_service.list_user_orders("user-1", status="lost")

    def test_admin_search(self, place, order_service):
        place()
        place(user_id="user-2")
        result = order_service.list_orders(search="asha")
        assert result["pagination"]["total"] == 2
        assert order_service.list_orders(search="PE2610170002")["orders"][0].user_id == "user-2"
        assert order_service.list_orders(search="98765")["pagination"]["total"] == 2
        assert order_service.list_orders(search="nobody")["pagination"]["total"] == 0

    def test_stats(self, place, order_service):
        paid = place()
        place()
        order_service.update_payment_status(paid.order_number, "paid")
        stats = order_service.order_stats()
        assert stats["totalOrders"] == 2
        assert stats["todayOrders"] == 2
        assert stats["monthOrders"] == 2
        assert stats["pendingOrders"] == 1
        assert stats["processingOrders"] == 1
        assert stats["completedOrders"] == 0
        assert stats["totalRevenue"] == 695


# Tests for State Machines

class TestStatusTransitions:
    """Fulfilment status rules."""

    def test_forward_moves(self, place, order_service):
        order = place()
        for status in ("confirmed", "processing", "printing", "shipped", "delivered"):
            order = order_service.update_status(order.order_number, status)
        assert order.status == OrderStatus.DELIVERED

    def test_skipping_ahead_allowed(self, place, order_service):
        order = place()
        assert order_service.update_status(order.order_number, "printing").status == OrderStatus.PRINTING

    def test_backward_move_rejected(self, place, order_service):
        order = place()
        order_service.update_status(order.order_number, "processing")
        with pytest.raises(InvalidStatusTransitionError):
            order_service.update_status(order.order_number, "confirmed")

    def test_cancel_only_before_processing(self, place, order_service):
        order = place()
        order_service.update_status(order.order_number, "processing")
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            order_service.cancel_order(order.order_number, "user-1")
        assert exc_info.value.message == "Order is already being processed and cannot be cancelled"

    def test_cancel_confirmed_order(self, place, order_service):
        order = place()
        order_service.update_status(order.order_number, "confirmed")
        assert order_service.cancel_order(order.order_number, "user-1").status == OrderStatus.CANCELLED

    def test_cancel_other_users_order(self, place, order_service):
        order = place()
        with pytest.raises(OrderNotFoundError):
            order_service.cancel_order(order.order_number, "user-2")

    def test_tracking_and_notes(self, place, order_service):
        order = place()
        updated = order_service.update_status(
            order.order_number, "shipped", tracking_number="TRK123", notes="Sent by courier",
        )
        assert updated.tracking_number == "TRK123"
        assert updated.notes == "Sent by courier"

    def test_unknown_status(self, place, order_service):
        with pytest.raises(OrderValidationError):
            order_service.update_status(place().order_number, "lost")

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFoundError):
            order_service.update_status("PE0000000000", "confirmed")


class TestPaymentTransitions:
    """Payment status rules and their effect on the order status."""

    def test_paid_confirms_pending_order(self, place, order_service):
        order = order_service.update_payment_status(place().order_number, "paid", payment_id="pay_1")
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_id == "pay_1"

    def test_failed_cancels_order(self, place, order_service):
        order = order_service.update_payment_status(place().order_number, "failed")
        assert order.status == OrderStatus.CANCELLED

    def test_refund_after_paid(self, place, order_service):
        number = place().order_number
        order_service.update_payment_status(number, "paid")
        assert order_service.update_payment_status(number, "refunded").payment_status == PaymentStatus.REFUNDED

    def test_refund_requires_paid(self, place, order_service):
        with pytest.raises(InvalidStatusTransitionError):
            order_service.update_payment_status(place().order_number, "refunded")

    def test_paid_is_not_repeatable(self, place, order_service):
        number = place().order_number
        order_service.update_payment_status(number, "paid")
        with pytest.raises(InvalidStatusTransitionError):
            order_service.update_payment_status(number, "paid")

    def test_unknown_payment_method(self, place, order_service):
        with pytest.raises(OrderValidationError):
            order_service.update_payment_status(place().order_number, "paid", payment_method="barter")
