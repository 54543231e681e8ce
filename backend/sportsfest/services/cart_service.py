# Overview: Service-layer operations for cart sessions; encapsulates business logic and database work.

"""
Cart Session Service

WHY: A shopper's selection must hold real inventory while they shop, so two
organizations can never both be promised the last tent.

RULES:
- One cart per (organization, event year).
- add_or_update_item() sets the ABSOLUTE quantity of a line (0 removes it);
  only the delta against the current line touches the inventory ledger.
- Requested quantity + units the organization already holds in live orders
  must stay within Product.max_quantity_per_org.
- Every mutation slides expires_at to now + CART_TTL_MINUTES.
- A cart row that expired but was not swept yet is emptied (its units
  released) before the next mutation is applied.
- Each mutation is one transaction with the cart row locked; any failure
  rolls back cart and ledger changes together.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartSession, Product
from sportsfest.time_utils import minutes_from_now, utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import CapacityExceededError, NotFoundError, QuotaExceededError, ValidationError
from . import inventory_service


@dataclass(frozen=True)
class CheckoutLine:
    """Immutable line handed from a cart to order creation."""
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def _cart_ttl_minutes() -> int:
    return int(current_app.config.get("CART_TTL_MINUTES", 60))


def lock_cart(organization_id: int, event_year_id: int) -> CartSession | None:
    return lock_for_update(
        db.session.query(CartSession).filter_by(
            organization_id=organization_id,
            event_year_id=event_year_id,
        )
    ).first()


def _discard_expired(cart: CartSession, now) -> int:
    """Release everything an expired-but-unswept cart still holds and empty it."""
    released = inventory_service.release_many(cart.quantities_by_product())
    cart.cart_data = []
    if released:
        current_app.logger.info(
            "Discarded expired cart %s before mutation (%s units released)", cart.id, released
        )
    return released


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity < 0:
        raise ValidationError("quantity must be >= 0")
    return quantity


def validate_product(product_id: int, event_year_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    if product.event_year_id != event_year_id:
        raise ValidationError(
            f"Product {product_id} does not belong to event year {event_year_id}",
            product_id=product_id,
        )
    if not product.is_active:
        raise ValidationError(f"{product.name} is no longer available", product_id=product_id)
    return product


def check_quota(product: Product, organization_id: int, event_year_id: int, requested: int) -> None:
    """
    Raise QuotaExceededError when requested units plus units already held in
    the organization's live orders would pass max_quantity_per_org.
    """
    if product.max_quantity_per_org is None:
        return
    already_held = inventory_service.order_held_quantity(
        product.id,
        organization_id=organization_id,
        event_year_id=event_year_id,
    )
    if requested + already_held > product.max_quantity_per_org:
        raise QuotaExceededError(
            product_id=product.id,
            requested=requested,
            max_allowed=product.max_quantity_per_org,
            already_held=already_held,
        )


def _rebuild_lines(current: dict[int, int], product_id: int, quantity: int) -> list[dict]:
    """New cart_data with product_id set to quantity; order of first appearance is kept."""
    lines = []
    seen = False
    for pid, qty in current.items():
        if pid == product_id:
            seen = True
            qty = quantity
        if qty > 0:
            lines.append({"product_id": pid, "quantity": qty})
    if not seen and quantity > 0:
        lines.append({"product_id": product_id, "quantity": quantity})
    return lines


def add_or_update_item(organization_id: int, event_year_id: int, product_id: int, quantity: int) -> CartSession | None:
    """
    Set the cart line for product_id to exactly `quantity` units.

    Returns the cart, or None when quantity is 0 and the organization has no cart.

    Raises:
        QuotaExceededError: per-organization cap would be passed
        CapacityExceededError: not enough unreserved inventory
        NotFoundError / ValidationError: bad product or quantity
    """
    _validate_quantity(quantity)

    def _op():
        now = utcnow()
        cart = lock_cart(organization_id, event_year_id)
        if cart is not None and cart.is_expired(now):
            _discard_expired(cart, now)

        current = cart.quantities_by_product() if cart is not None else {}
        held = current.get(product_id, 0)

        if quantity > 0:
            product = validate_product(product_id, event_year_id)
            check_quota(product, organization_id, event_year_id, quantity)
        elif cart is None:
            return None

        delta = quantity - held
        if delta > 0:
            try:
                inventory_service.reserve(product_id, delta)
            except CapacityExceededError as exc:
                current_app.logger.warning(
                    "Reservation rejected for org %s product %s: %s", organization_id, product_id, exc.message
                )
                raise
        elif delta < 0:
            inventory_service.release(product_id, -delta)

        if cart is None:
            cart = CartSession(
                organization_id=organization_id,
                event_year_id=event_year_id,
                cart_data=[],
                created_at=now,
            )
            db.session.add(cart)

        # Always assign a new list so the JSON column is flagged dirty
        cart.cart_data = _rebuild_lines(current, product_id, quantity)
        cart.expires_at = minutes_from_now(_cart_ttl_minutes(), now=now)
        cart.updated_at = now

        db.session.commit()
        return cart

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # Lost the race to create this organization's cart; its reservation was
        # rolled back, so apply the change to the cart that won
        db.session.rollback()
        current_app.logger.info(
            "Cart for org %s year %s created concurrently; retrying", organization_id, event_year_id
        )
        return run_with_retry(_op)


def remove_item(organization_id: int, event_year_id: int, product_id: int) -> CartSession:
    """Drop a product from the cart and release its units. Removing an absent line is a no-op."""
    def _op():
        now = utcnow()
        cart = lock_cart(organization_id, event_year_id)
        if cart is None:
            raise NotFoundError(
                f"No cart for organization {organization_id} in event year {event_year_id}",
                organization_id=organization_id,
                event_year_id=event_year_id,
            )
        if cart.is_expired(now):
            _discard_expired(cart, now)

        current = cart.quantities_by_product()
        held = current.get(product_id, 0)
        if held > 0:
            inventory_service.release(product_id, held)

        cart.cart_data = _rebuild_lines(current, product_id, 0)
        cart.expires_at = minutes_from_now(_cart_ttl_minutes(), now=now)
        cart.updated_at = now

        db.session.commit()
        return cart

    return run_with_retry(_op)


def clear_cart(organization_id: int, event_year_id: int) -> int:
    """Release every unit the cart holds and delete the row. Returns units released."""
    def _op():
        cart = lock_cart(organization_id, event_year_id)
        if cart is None:
            return 0
        released = inventory_service.release_many(cart.quantities_by_product())
        db.session.delete(cart)
        db.session.commit()
        current_app.logger.info(
            "Cleared cart for org %s year %s (%s units released)", organization_id, event_year_id, released
        )
        return released

    return run_with_retry(_op)


def get_cart(organization_id: int, event_year_id: int) -> CartSession | None:
    return db.session.query(CartSession).filter_by(
        organization_id=organization_id,
        event_year_id=event_year_id,
    ).first()


def to_checkout_snapshot(cart: CartSession) -> tuple[CheckoutLine, ...]:
    """
    Freeze a cart into checkout lines priced at the current base price.

    Does not delete the cart; order creation consumes it in the same transaction.
    """
    lines = []
    for product_id, quantity in cart.quantities_by_product().items():
        if quantity <= 0:
            continue
        product = inventory_service.get_product(product_id)
        lines.append(CheckoutLine(product_id, quantity, product.base_price_cents))
    return tuple(lines)


def get_cart_summary(organization_id: int, event_year_id: int) -> dict:
    """Priced view of the organization's cart (subtotal and deposit due at checkout)."""
    cart = get_cart(organization_id, event_year_id)
    if cart is None:
        return {
            "cart": None,
            "lines": [],
            "item_count": 0,
            "subtotal_cents": 0,
            "deposit_due_cents": 0,
            "expired": False,
        }

    lines = []
    subtotal = 0
    deposit = 0
    for line in to_checkout_snapshot(cart):
        product = db.session.get(Product, line.product_id)
        line_deposit = product.deposit_for(line.quantity)
        subtotal += line.line_total_cents
        deposit += line_deposit
        lines.append({
            "product_id": line.product_id,
            "name": product.name,
            "quantity": line.quantity,
            "unit_price_cents": line.unit_price_cents,
            "line_total_cents": line.line_total_cents,
            "deposit_cents": line_deposit,
        })

    return {
        "cart": cart.to_dict(),
        "lines": lines,
        "item_count": sum(line["quantity"] for line in lines),
        "subtotal_cents": subtotal,
        "deposit_due_cents": deposit,
        "expired": cart.is_expired(),
    }
