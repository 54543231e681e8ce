# Overview: Service-layer operations for the order lifecycle; encapsulates the status state machine.

"""
SportsFest Order Lifecycle Service

================================================================================
PURPOSE: Enforce the order status state machine
================================================================================

STATE MACHINE:
    pending -> confirmed    -> fully_paid
    pending -> deposit_paid -> fully_paid
    pending -> fully_paid                  (single payment covering the total)
    pending / confirmed / deposit_paid -> cancelled
    deposit_paid / fully_paid          -> refunded

    pending:      initial; nothing collected (balance_owed == total_amount)
    confirmed:    partially paid, not as a deposit
    deposit_paid: first payment was a deposit
    fully_paid:   balance_owed == 0           (terminal)
    cancelled:    units released to the pool  (terminal)
    refunded:     money returned, units released (terminal)

RULES:
1. Terminal states accept no payment and no cancellation; refunded is the
   only exit, and only from fully_paid
2. Only the transitions listed above are legal
3. Every status write goes through require_transition()

================================================================================
"""

from __future__ import annotations
from typing import Literal

from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DEPOSIT_PAID,
    ORDER_STATUS_FULLY_PAID,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_REFUNDED,
    Order,
)
from sportsfest.time_utils import utcnow
from .errors import InvalidStateTransitionError, ValidationError


VALID_STATUSES = {
    ORDER_STATUS_PENDING,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DEPOSIT_PAID,
    ORDER_STATUS_FULLY_PAID,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_REFUNDED,
}
OrderStatus = Literal["pending", "confirmed", "deposit_paid", "fully_paid", "cancelled", "refunded"]

TERMINAL_STATUSES = {ORDER_STATUS_FULLY_PAID, ORDER_STATUS_CANCELLED, ORDER_STATUS_REFUNDED}
# Terminal states with no way out at all
CLOSED_STATUSES = {ORDER_STATUS_CANCELLED, ORDER_STATUS_REFUNDED}

CANCELLABLE_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED, ORDER_STATUS_DEPOSIT_PAID}
REFUNDABLE_STATUSES = {ORDER_STATUS_DEPOSIT_PAID, ORDER_STATUS_FULLY_PAID}

# Statuses that can still accept a payment
PAYABLE_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED, ORDER_STATUS_DEPOSIT_PAID}

VALID_TRANSITIONS = {
    (ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED),
    (ORDER_STATUS_PENDING, ORDER_STATUS_DEPOSIT_PAID),
    (ORDER_STATUS_PENDING, ORDER_STATUS_FULLY_PAID),
    (ORDER_STATUS_CONFIRMED, ORDER_STATUS_FULLY_PAID),
    (ORDER_STATUS_DEPOSIT_PAID, ORDER_STATUS_FULLY_PAID),
    (ORDER_STATUS_PENDING, ORDER_STATUS_CANCELLED),
    (ORDER_STATUS_CONFIRMED, ORDER_STATUS_CANCELLED),
    (ORDER_STATUS_DEPOSIT_PAID, ORDER_STATUS_CANCELLED),
    (ORDER_STATUS_DEPOSIT_PAID, ORDER_STATUS_REFUNDED),
    (ORDER_STATUS_FULLY_PAID, ORDER_STATUS_REFUNDED),
}


def validate_status(status: str) -> None:
    """
    Validate that a status value is one of the allowed states.

    Raises:
        ValidationError: If status is not in VALID_STATUSES
    """
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def is_terminal(status: str) -> bool:
    validate_status(status)
    return status in TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a status change is allowed.

    Same-state moves are no-ops and allowed for non-terminal states only
    (e.g. a second partial payment keeps a deposit_paid order in deposit_paid).
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return from_status not in TERMINAL_STATUSES

    return (from_status, to_status) in VALID_TRANSITIONS


def require_transition(order: Order, to_status: str) -> None:
    """Raise InvalidStateTransitionError unless order may move to to_status."""
    if not can_transition(order.status, to_status):
        raise InvalidStateTransitionError(
            order.status,
            to_status,
            f"Order {order.order_number} cannot move from '{order.status}' to '{to_status}'",
        )


def apply_transition(order: Order, to_status: str, *, reason: str | None = None) -> Order:
    """
    Move an order to to_status, stamping the matching timestamp.

    Does not commit; callers hold the order row lock and own the transaction.
    """
    require_transition(order, to_status)

    now = utcnow()
    order.status = to_status
    order.updated_at = now
    if to_status == ORDER_STATUS_CANCELLED:
        order.cancelled_at = now
    elif to_status == ORDER_STATUS_REFUNDED:
        order.refunded_at = now
    if reason:
        order.status_reason = reason[:255]
    return order


def status_after_payment(order: Order, *, new_balance_cents: int, is_deposit: bool, is_first_payment: bool) -> str:
    """
    Status an order lands in after a payment brings its balance to new_balance_cents.

    - balance 0                    -> fully_paid
    - first payment, flagged deposit -> deposit_paid
    - already deposit_paid         -> deposit_paid (stays until fully paid)
    - otherwise                    -> confirmed
    """
    if new_balance_cents == 0:
        return ORDER_STATUS_FULLY_PAID
    if is_first_payment and is_deposit:
        return ORDER_STATUS_DEPOSIT_PAID
    if order.status == ORDER_STATUS_DEPOSIT_PAID:
        return ORDER_STATUS_DEPOSIT_PAID
    return ORDER_STATUS_CONFIRMED
