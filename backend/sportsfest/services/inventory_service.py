# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

# backend/sportsfest/services/inventory_service.py

from sqlalchemy import case, func, or_, select, update

from ..extensions import db
from ..models import CartSession, Order, OrderItem, Product
from .errors import CapacityExceededError, NotFoundError, ValidationError
"""
Inventory Ledger Invariants (authoritative)

Counter model:
- Product.total_inventory is the capacity (NULL = unbounded).
- Product.reserved_count counts units held by live carts plus units committed
  to live orders (pending, confirmed, deposit_paid, fully_paid).
- available = total_inventory - reserved_count.

Business invariants:
- 0 <= reserved_count <= total_inventory whenever total_inventory is set.
- reserve() and release() are single conditional UPDATE statements; the
  application never reads the counter, computes, and writes it back.
- release() floors at zero so a double release cannot drive the counter
  negative.

Transactions:
- Nothing here commits. Callers (cart, order and maintenance services) own
  the transaction so a failed cart mutation leaves the counter untouched.
"""

# Order statuses whose items still hold inventory
HOLDING_ORDER_STATUSES = ("pending", "confirmed", "deposit_paid", "fully_paid")


def _validate_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")


def _reload_product(product_id: int) -> Product | None:
    # populate_existing refreshes any Product already in the identity map
    return db.session.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product


def reserve(product_id: int, quantity: int) -> int:
    """
    Atomically claim `quantity` units of a product.

    Returns the new reserved_count.

    Raises:
        CapacityExceededError: not enough unreserved units
        NotFoundError: product does not exist
    """
    _validate_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .where(
            or_(
                Product.total_inventory.is_(None),
                Product.reserved_count + quantity <= Product.total_inventory,
            )
        )
        .values(reserved_count=Product.reserved_count + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    product = _reload_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)

    if result.rowcount == 0:
        raise CapacityExceededError(
            product_id=product_id,
            requested=quantity,
            available=product.available_quantity,
            message=f"{product.name} is sold out: requested {quantity}, available {product.available_quantity}",
        )

    return product.reserved_count


def release(product_id: int, quantity: int) -> int:
    """
    Return `quantity` units to the pool, flooring the counter at zero.

    Returns the new reserved_count.
    """
    _validate_quantity(quantity)

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            reserved_count=case(
                (Product.reserved_count > quantity, Product.reserved_count - quantity),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)

    product = _reload_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product.reserved_count


def release_many(quantities: dict[int, int]) -> int:
    """Release an aggregated {product_id: quantity} map. Returns units released."""
    released = 0
    for product_id, quantity in quantities.items():
        if quantity <= 0:
            continue
        release(product_id, quantity)
        released += quantity
    return released


def availability(product_id: int) -> int | None:
    """
    Units still available. None means the product has no capacity limit.
    """
    product = _reload_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product.available_quantity


def get_inventory_status(product_id: int) -> dict:
    product = _reload_product(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return {
        "product_id": product.id,
        "name": product.name,
        "product_type": product.product_type,
        "total_inventory": product.total_inventory,
        "reserved_count": product.reserved_count,
        "available_quantity": product.available_quantity,
        "unbounded": product.total_inventory is None,
    }


def order_held_quantity(product_id: int, *, organization_id: int | None = None,
                        event_year_id: int | None = None) -> int:
    """Units of a product committed to live (non-cancelled, non-refunded) orders."""
    q = db.session.query(
        func.coalesce(func.sum(OrderItem.quantity), 0)
    ).join(Order, Order.id == OrderItem.order_id).filter(
        OrderItem.product_id == product_id,
        Order.status.in_(HOLDING_ORDER_STATUSES),
    )
    if organization_id is not None:
        q = q.filter(Order.organization_id == organization_id)
    if event_year_id is not None:
        q = q.filter(Order.event_year_id == event_year_id)
    return int(q.scalar() or 0)


def cart_held_quantity(product_id: int) -> int:
    """Units of a product sitting in cart rows (expired-but-unswept carts included)."""
    product = get_product(product_id)
    carts = db.session.query(CartSession).filter(
        CartSession.event_year_id == product.event_year_id
    ).all()
    return sum(cart.quantities_by_product().get(product_id, 0) for cart in carts)


def check_ledger_integrity(product_id: int) -> dict:
    """
    Recompute what reserved_count should be from carts and orders.

    Read-only: drift is reported, never corrected here.
    """
    status = get_inventory_status(product_id)
    expected = cart_held_quantity(product_id) + order_held_quantity(product_id)
    drift = status["reserved_count"] - expected
    return {
        **status,
        "expected_reserved_count": expected,
        "drift": drift,
        "consistent": drift == 0,
    }
