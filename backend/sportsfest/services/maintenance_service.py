# Overview: Service-layer operations for maintenance sweeps; reclaims inventory held by abandoned carts and orders.

"""
Abandoned-Resource Reclaimer

Two independent sweeps, meant to run from cron (see `flask maintenance` and
POST /api/cron/cleanup, POST /api/orders/cleanup):

EXPIRED CARTS:
- carts with expires_at < now are locked (SKIP LOCKED where supported)
- per cart: aggregate quantities per product, release each product once,
  delete the cart; all inside one savepoint
- a failing cart is rolled back alone, logged and counted in `errors`; it
  is picked up again by the next run

ABANDONED ORDERS:
- status = pending AND balance_owed = total_amount AND created_at < cutoff
- dry run only counts
- execute releases the units the orders hold, then deletes payments,
  invoices, items and the orders themselves

Both predicates only shrink as rows are processed, so re-running a sweep
after a partial failure never releases or deletes twice.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import exists, func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CartSession, Order, OrderInvoice, OrderItem, OrderPayment
from ..models.orders import ORDER_STATUS_PENDING
from sportsfest.time_utils import hours_ago, utcnow
from .concurrency import lock_for_update, run_with_retry, savepoint
from .errors import CommerceError, ValidationError
from . import inventory_service


def cleanup_expired_carts(now=None) -> dict:
    """
    Delete expired carts and return their units to the pool.

    Returns:
        {"deleted_cart_count", "total_units_released", "affected_product_count", "errors"}
    """
    def _op():
        cutoff = now or utcnow()
        carts = lock_for_update(
            db.session.query(CartSession)
            .filter(CartSession.expires_at < cutoff)
            .order_by(CartSession.id),
            skip_locked=True,
        ).all()

        deleted = 0
        units = 0
        products: set[int] = set()
        errors = 0

        for cart in carts:
            cart_id = cart.id
            quantities = cart.quantities_by_product()
            try:
                with savepoint():
                    released = inventory_service.release_many(quantities)
                    db.session.delete(cart)
                    db.session.flush()
            except (SQLAlchemyError, CommerceError):
                current_app.logger.exception("Failed to clean up expired cart %s", cart_id)
                errors += 1
                continue

            deleted += 1
            units += released
            products.update(pid for pid, qty in quantities.items() if qty > 0)

        db.session.commit()
        return {
            "deleted_cart_count": deleted,
            "total_units_released": units,
            "affected_product_count": len(products),
            "errors": errors,
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Expired-cart sweep: %s carts deleted, %s units released across %s products, %s errors",
        result["deleted_cart_count"], result["total_units_released"],
        result["affected_product_count"], result["errors"],
    )
    return result


def _abandoned_orders_query(cutoff, event_year_id: int | None):
    q = db.session.query(Order).filter(
        Order.status == ORDER_STATUS_PENDING,
        Order.balance_owed_cents == Order.total_amount_cents,
        Order.created_at < cutoff,
        ~exists().where(OrderPayment.order_id == Order.id),
        ~exists().where(OrderInvoice.order_id == Order.id, OrderInvoice.paid_amount_cents > 0),
    )
    if event_year_id is not None:
        q = q.filter(Order.event_year_id == event_year_id)
    return q


def _held_units(order_ids: list[int]) -> dict[int, int]:
    rows = db.session.query(
        OrderItem.product_id,
        func.sum(OrderItem.quantity),
    ).filter(
        OrderItem.order_id.in_(order_ids)
    ).group_by(OrderItem.product_id).order_by(OrderItem.product_id).all()
    return {product_id: int(qty or 0) for product_id, qty in rows}


def cleanup_abandoned_orders(older_than_hours: float | None = None, execute: bool = False,
                             event_year_id: int | None = None, now=None) -> dict:
    """
    Find (and with execute=True delete) pending orders with no payment activity.

    Deleted orders release the inventory they hold, so manual orders that
    never went through a cart do not leak capacity.

    Returns:
        {"found_orders", "deleted_orders", "dry_run", "older_than_hours", "units_released"}
    """
    hours = older_than_hours
    if hours is None:
        hours = current_app.config.get("ABANDONED_ORDER_HOURS", 24)
    if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
        raise ValidationError("older_than_hours must be a positive number")

    cutoff = hours_ago(hours, now=now)

    if not execute:
        found = _abandoned_orders_query(cutoff, event_year_id).count()
        current_app.logger.info("Abandoned-order dry run: %s orders older than %sh", found, hours)
        return {
            "found_orders": found,
            "deleted_orders": 0,
            "dry_run": True,
            "older_than_hours": hours,
            "units_released": 0,
        }

    def _op():
        orders = lock_for_update(
            _abandoned_orders_query(cutoff, event_year_id).order_by(Order.id),
            skip_locked=True,
        ).all()
        order_ids = [o.id for o in orders]
        if not order_ids:
            return 0, 0, 0

        released = inventory_service.release_many(_held_units(order_ids))

        for model in (OrderPayment, OrderInvoice, OrderItem):
            db.session.query(model).filter(
                model.order_id.in_(order_ids)
            ).delete(synchronize_session=False)
        deleted = db.session.query(Order).filter(
            Order.id.in_(order_ids)
        ).delete(synchronize_session=False)

        db.session.commit()
        return len(order_ids), deleted, released

    found, deleted, released = run_with_retry(_op)
    current_app.logger.info(
        "Abandoned-order sweep: %s orders older than %sh deleted, %s units released", deleted, hours, released
    )
    return {
        "found_orders": found,
        "deleted_orders": deleted,
        "dry_run": False,
        "older_than_hours": hours,
        "units_released": released,
    }


def quick_cleanup_abandoned_orders(execute: bool = False, event_year_id: int | None = None) -> dict:
    """Same sweep with the short QUICK_CLEANUP_HOURS threshold."""
    return cleanup_abandoned_orders(
        older_than_hours=current_app.config.get("QUICK_CLEANUP_HOURS", 1),
        execute=execute,
        event_year_id=event_year_id,
    )


def daily_cleanup_abandoned_orders() -> dict:
    return cleanup_abandoned_orders(execute=True)


def get_cart_health(now=None) -> dict:
    cutoff = now or utcnow()
    active = db.session.query(func.count(CartSession.id)).filter(CartSession.expires_at >= cutoff).scalar()
    expired = db.session.query(func.count(CartSession.id)).filter(CartSession.expires_at < cutoff).scalar()
    return {"active_carts": int(active or 0), "expired_carts": int(expired or 0)}
