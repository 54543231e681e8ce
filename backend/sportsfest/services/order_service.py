# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service - checkout, manual orders, cancellation, refunds

WHY: Turning a cart into an order must be all-or-nothing. A crash between
inserting the order and deleting the cart would either double count the
reservation or orphan it.

INVENTORY HAND-OFF:
- Checkout does NOT touch Product.reserved_count: the units a cart held
  become units the order holds.
- Manual orders (no cart) reserve their units directly.
- Cancellation, refund and abandoned-order deletion release the units the
  order holds.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import EventYear, Order, OrderItem, OrderPayment, Organization
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_REFUNDED,
    PAYMENT_TYPE_REFUND,
)
from sportsfest.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import CapacityExceededError, NotFoundError, ValidationError
from .identifier_service import next_order_number
from . import cart_service, inventory_service, invoice_service, lifecycle_service


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
    return order


def list_orders(organization_id: int, event_year_id: int | None = None) -> list[Order]:
    q = db.session.query(Order).filter(Order.organization_id == organization_id)
    if event_year_id is not None:
        q = q.filter(Order.event_year_id == event_year_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
    return order


def units_by_product(order: Order) -> dict[int, int]:
    """Aggregate the order's items into {product_id: quantity}."""
    totals: dict[int, int] = {}
    for item in order.items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _new_order(organization_id: int, event_year_id: int, lines, *, notes=None,
               is_manually_created=False) -> Order:
    """Insert an Order and its items from checkout lines (caller owns the transaction)."""
    now = utcnow()
    total = 0
    deposit = 0
    order = Order(
        order_number=next_order_number(),
        organization_id=organization_id,
        event_year_id=event_year_id,
        status=ORDER_STATUS_PENDING,
        total_amount_cents=0,
        deposit_amount_cents=0,
        balance_owed_cents=0,
        is_sponsorship=False,
        is_manually_created=is_manually_created,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    for line in lines:
        product = inventory_service.get_product(line.product_id)
        line_total = line.quantity * line.unit_price_cents
        total += line_total
        deposit += product.deposit_for(line.quantity)
        order.items.append(OrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            line_total_cents=line_total,
        ))

    order.total_amount_cents = total
    order.deposit_amount_cents = min(deposit, total)
    # Nothing collected yet
    order.balance_owed_cents = total
    db.session.add(order)
    return order


def create_order_from_cart(organization_id: int, event_year_id: int, notes: str | None = None) -> Order:
    """
    Convert the organization's cart into a pending order.

    One transaction: lock cart, re-validate every line, insert order + items,
    delete cart. Any failure leaves cart, order table and ledger untouched.

    Raises:
        NotFoundError: no cart
        ValidationError: empty cart or product no longer sellable
        QuotaExceededError: per-organization cap would now be passed
        CapacityExceededError: the ledger no longer carries the cart's units
    """
    def _op():
        cart = cart_service.lock_cart(organization_id, event_year_id)
        if cart is None:
            raise NotFoundError(
                f"No cart for organization {organization_id} in event year {event_year_id}",
                organization_id=organization_id,
                event_year_id=event_year_id,
            )

        snapshot = cart_service.to_checkout_snapshot(cart)
        if not snapshot:
            raise ValidationError("Cart is empty")

        for line in snapshot:
            product = cart_service.validate_product(line.product_id, event_year_id)
            cart_service.check_quota(product, organization_id, event_year_id, line.quantity)
            # Ledger drift check: the cart's units must still be counted
            if product.reserved_count < line.quantity:
                raise CapacityExceededError(
                    product_id=product.id,
                    requested=line.quantity,
                    available=product.available_quantity,
                    message=f"Reservation for {product.name} has lapsed; add it to the cart again",
                )

        order = _new_order(organization_id, event_year_id, snapshot, notes=notes)
        db.session.delete(cart)
        db.session.commit()

        current_app.logger.info(
            "Checked out cart for org %s year %s as order %s (%s cents)",
            organization_id, event_year_id, order.order_number, order.total_amount_cents,
        )
        return order

    return run_with_retry(_op)


def _normalize_lines(lines, event_year_id: int) -> list[cart_service.CheckoutLine]:
    """Accept [{product_id, quantity, unit_price_cents?}] and aggregate per product."""
    if not lines:
        raise ValidationError("At least one line is required")

    quantities: dict[int, int] = {}
    prices: dict[int, int] = {}
    for raw in lines:
        try:
            product_id = raw["product_id"]
            quantity = raw["quantity"]
        except (KeyError, TypeError):
            raise ValidationError("Each line needs product_id and quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", product_id=product_id)

        product = cart_service.validate_product(product_id, event_year_id)
        price = raw.get("unit_price_cents", product.base_price_cents)
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise ValidationError("unit_price_cents must be a non-negative integer", product_id=product_id)

        quantities[product_id] = quantities.get(product_id, 0) + quantity
        prices.setdefault(product_id, price)

    return [cart_service.CheckoutLine(pid, qty, prices[pid]) for pid, qty in quantities.items()]


def create_order(organization_id: int, event_year_id: int, lines, notes: str | None = None) -> Order:
    """
    Create a pending order without a cart (admin / manual entry).

    The units are reserved here, in the same transaction as the insert.
    """
    def _op():
        if db.session.get(Organization, organization_id) is None:
            raise NotFoundError(f"Organization {organization_id} not found", organization_id=organization_id)
        if db.session.get(EventYear, event_year_id) is None:
            raise NotFoundError(f"Event year {event_year_id} not found", event_year_id=event_year_id)

        checkout_lines = _normalize_lines(lines, event_year_id)
        for line in checkout_lines:
            product = inventory_service.get_product(line.product_id)
            cart_service.check_quota(product, organization_id, event_year_id, line.quantity)
            inventory_service.reserve(line.product_id, line.quantity)

        order = _new_order(
            organization_id,
            event_year_id,
            checkout_lines,
            notes=notes,
            is_manually_created=True,
        )
        db.session.commit()
        current_app.logger.info("Created manual order %s for org %s", order.order_number, organization_id)
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, reason: str | None = None) -> Order:
    """
    Cancel a pending, confirmed or deposit_paid order.

    Releases the units the order holds and voids an unpaid invoice.
    """
    def _op():
        order = lock_order(order_id)
        lifecycle_service.require_transition(order, ORDER_STATUS_CANCELLED)

        released = inventory_service.release_many(units_by_product(order))
        for invoice in order.invoices:
            invoice_service.void_invoice(invoice)

        lifecycle_service.apply_transition(order, ORDER_STATUS_CANCELLED, reason=reason)
        db.session.commit()

        current_app.logger.info("Cancelled order %s (%s units released)", order.order_number, released)
        return order

    return run_with_retry(_op)


def refund_order(order_id: int, reason: str | None = None) -> Order:
    """
    Refund a deposit_paid or fully_paid order.

    Appends a refund payment row for everything collected and releases the
    units the order holds. balance_owed_cents is left as it was so the
    payment history still reconciles.
    """
    def _op():
        order = lock_order(order_id)
        lifecycle_service.require_transition(order, ORDER_STATUS_REFUNDED)

        refunded = order.amount_collected_cents
        if refunded > 0:
            order.payments.append(OrderPayment(
                payment_type=PAYMENT_TYPE_REFUND,
                status="completed",
                amount_cents=refunded,
                processed_at=utcnow(),
            ))

        released = inventory_service.release_many(units_by_product(order))
        for invoice in order.invoices:
            invoice_service.void_invoice(invoice)

        lifecycle_service.apply_transition(order, ORDER_STATUS_REFUNDED, reason=reason)
        db.session.commit()

        current_app.logger.info(
            "Refunded order %s (%s cents, %s units released)", order.order_number, refunded, released
        )
        return order

    return run_with_retry(_op)
