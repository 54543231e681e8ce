# Overview: Pytest coverage for checkout, manual orders, cancellation and refunds.

"""
Order Lifecycle Tests

1. Checkout moves the reservation from cart to order (ledger untouched)
2. Checkout is all-or-nothing
3. Cancel / refund release the units the order holds
4. Manual orders reserve directly
"""

import pytest
from sqlalchemy import update

from sportsfest.models import CartSession, Order, OrderInvoice, Product
from sportsfest.services import (
    cart_service,
    invoice_service,
    order_service,
    payment_service,
)
from sportsfest.services.errors import (
    CapacityExceededError,
    InvalidStateTransitionError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)


def reserved(db_session, product) -> int:
    db_session.expire_all()
    return db_session.get(Product, product.id).reserved_count


class TestCreateOrderFromCart:

    def test_checkout_converts_cart(self, db_session, org_x, event_year, tent, team_slot):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 2)
        cart_service.add_or_update_item(org_x.id, event_year.id, team_slot.id, 1)

        order = order_service.create_order_from_cart(org_x.id, event_year.id, notes="Team Acme")

        assert order.order_number.startswith("ORD-")
        assert order.status == "pending"
        assert order.total_amount_cents == 2 * 25000 + 100000
        assert order.deposit_amount_cents == 30000
        assert order.balance_owed_cents == order.total_amount_cents
        assert order.notes == "Team Acme"
        assert sorted((i.product_id, i.quantity, i.unit_price_cents) for i in order.items) == sorted([
            (tent.id, 2, 25000),
            (team_slot.id, 1, 100000),
        ])

        # Cart consumed, reservation transferred (not released, not doubled)
        assert db_session.query(CartSession).count() == 0
        assert reserved(db_session, tent) == 2
        assert reserved(db_session, team_slot) == 1

    def test_unit_price_is_snapshotted(self, db_session, org_x, event_year, tent):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 1)
        order = order_service.create_order_from_cart(org_x.id, event_year.id)

        product = db_session.get(Product, tent.id)
        product.base_price_cents = 99999
        db_session.commit()

        assert order_service.get_order(order.id).items[0].unit_price_cents == 25000

    def test_missing_cart(self, db_session, org_x, event_year):
        with pytest.raises(NotFoundError):
            order_service.create_order_from_cart(org_x.id, event_year.id)

    def test_empty_cart(self, db_session, org_x, event_year, tent):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 1)
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 0)

        with pytest.raises(ValidationError):
            order_service.create_order_from_cart(org_x.id, event_year.id)

    def test_lapsed_reservation_blocks_checkout(self, db_session, org_x, event_year, tent):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 2)
        db_session.execute(update(Product).where(Product.id == tent.id).values(reserved_count=0))
        db_session.commit()

        with pytest.raises(CapacityExceededError):
            order_service.create_order_from_cart(org_x.id, event_year.id)

        assert db_session.query(Order).count() == 0
        assert cart_service.get_cart(org_x.id, event_year.id) is not None

    def test_deactivated_product_blocks_checkout(self, db_session, org_x, event_year, tent):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 1)
        db_session.get(Product, tent.id).status = "inactive"
        db_session.commit()

        with pytest.raises(ValidationError):
            order_service.create_order_from_cart(org_x.id, event_year.id)

        assert db_session.query(Order).count() == 0
        assert reserved(db_session, tent) == 1

    def test_quota_rechecked_at_checkout(self, db_session, org_x, event_year, team_slot, make_order):
        cart_service.add_or_update_item(org_x.id, event_year.id, team_slot.id, 2)
        # An order placed elsewhere after the cart was filled
        make_order(100000, items=[(team_slot, 2)], reserve=True)

        with pytest.raises(QuotaExceededError):
            order_service.create_order_from_cart(org_x.id, event_year.id)

        assert cart_service.get_cart(org_x.id, event_year.id) is not None


class TestCreateOrder:

    def test_manual_order_reserves_units(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(
            org_x.id,
            event_year.id,
            [{"product_id": tent.id, "quantity": 1}, {"product_id": tent.id, "quantity": 1}],
        )

        assert order.is_manually_created is True
        assert len(order.items) == 1
        assert order.items[0].quantity == 2
        assert order.total_amount_cents == 50000
        assert reserved(db_session, tent) == 2

    def test_manual_order_price_override(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(
            org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 1, "unit_price_cents": 20000}]
        )
        assert order.total_amount_cents == 20000

    def test_manual_order_over_capacity_creates_nothing(self, db_session, org_x, event_year, tent, team_slot):
        with pytest.raises(CapacityExceededError):
            order_service.create_order(
                org_x.id,
                event_year.id,
                [{"product_id": team_slot.id, "quantity": 1}, {"product_id": tent.id, "quantity": 3}],
            )

        assert db_session.query(Order).count() == 0
        assert reserved(db_session, team_slot) == 0

    def test_manual_order_requires_lines(self, db_session, org_x, event_year):
        with pytest.raises(ValidationError):
            order_service.create_order(org_x.id, event_year.id, [])

    def test_manual_order_unknown_organization(self, db_session, event_year, tent):
        with pytest.raises(NotFoundError):
            order_service.create_order(99999, event_year.id, [{"product_id": tent.id, "quantity": 1}])


class TestCancelOrder:

    def test_cancel_releases_units(self, db_session, org_x, event_year, tent):
        cart_service.add_or_update_item(org_x.id, event_year.id, tent.id, 2)
        order = order_service.create_order_from_cart(org_x.id, event_year.id)

        cancelled = order_service.cancel_order(order.id, reason="changed plans")

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert cancelled.status_reason == "changed plans"
        assert reserved(db_session, tent) == 0

    def test_cancel_deposit_paid_order(self, db_session, org_x, event_year, team_slot):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": team_slot.id, "quantity": 1}])
        payment_service.record_payment(order.id, 30000, True)

        assert order_service.cancel_order(order.id).status == "cancelled"
        assert reserved(db_session, team_slot) == 0

    def test_cancel_voids_unpaid_invoice(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 1}])
        invoice = invoice_service.attach_invoice(order.id)

        order_service.cancel_order(order.id)

        assert db_session.get(OrderInvoice, invoice.id).status == "void"

    def test_cannot_cancel_twice(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 1}])
        order_service.cancel_order(order.id)

        with pytest.raises(InvalidStateTransitionError):
            order_service.cancel_order(order.id)

        assert reserved(db_session, tent) == 0

    def test_cannot_cancel_fully_paid(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 1}])
        payment_service.record_payment(order.id, 25000, False)

        with pytest.raises(InvalidStateTransitionError):
            order_service.cancel_order(order.id)

        assert reserved(db_session, tent) == 1

    def test_cancel_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.cancel_order(99999)


class TestRefundOrder:

    def test_refund_fully_paid(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 2}])
        payment_service.record_payment(order.id, 50000, False, provider_reference="pi_123")

        refunded = order_service.refund_order(order.id, reason="event cancelled")

        assert refunded.status == "refunded"
        assert refunded.refunded_at is not None
        refund_rows = [p for p in refunded.payments if p.payment_type == "refund"]
        assert [p.amount_cents for p in refund_rows] == [50000]
        assert reserved(db_session, tent) == 0

    def test_refund_pending_is_illegal(self, db_session, org_x, event_year, tent):
        order = order_service.create_order(org_x.id, event_year.id, [{"product_id": tent.id, "quantity": 1}])

        with pytest.raises(InvalidStateTransitionError):
            order_service.refund_order(order.id)

        assert reserved(db_session, tent) == 1
