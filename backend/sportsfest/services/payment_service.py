# Overview: Service-layer operations for order payments; encapsulates business logic and database work.

"""
Payment Recording Service

WHY: The payment provider confirms money out-of-band. Recording it must
decrement the order balance exactly once and move the order through the
lifecycle state machine.

DESIGN PRINCIPLES:
- balance_owed_cents is only decremented under the order row lock
- Append-only: every recorded payment adds an OrderPayment row
- Overpayment up to PAYMENT_TOLERANCE_CENTS is absorbed (rounding on the
  provider side); anything larger is rejected
- A provider_reference is recorded at most once; a retried webhook returns
  the order unchanged
- The order's open invoice is kept in step with the order; an order paid
  before it was ever invoiced gets an invoice created on the spot
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderPayment
from ..models.orders import (
    ORDER_STATUS_FULLY_PAID,
    PAYMENT_TYPE_BALANCE,
    PAYMENT_TYPE_DEPOSIT,
    PAYMENT_TYPE_REFUND,
)
from sportsfest.time_utils import utcnow
from .concurrency import run_with_retry
from .errors import InvalidPaymentAmountError, InvalidStateTransitionError
from . import invoice_service, lifecycle_service
from .order_service import get_order, lock_order


def _tolerance_cents() -> int:
    return int(current_app.config.get("PAYMENT_TOLERANCE_CENTS", 1))


def _validate_amount(amount_cents) -> None:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidPaymentAmountError("Payment amount must be an integer number of cents")
    if amount_cents <= 0:
        raise InvalidPaymentAmountError("Payment amount must be positive", amount_cents=amount_cents)


def _has_prior_payment(order: Order) -> bool:
    return any(p.payment_type != PAYMENT_TYPE_REFUND for p in order.payments)


def find_payment_by_reference(provider_reference: str | None) -> OrderPayment | None:
    if not provider_reference:
        return None
    return db.session.query(OrderPayment).filter_by(provider_reference=provider_reference).first()


def apply_order_payment(order: Order, amount_cents: int, *, is_deposit: bool,
                        provider_reference: str | None = None) -> int:
    """
    Apply a payment to a locked order without committing. Returns the amount applied.

    Status after the payment:
    - balance 0                              -> fully_paid
    - first payment and is_deposit           -> deposit_paid
    - otherwise                              -> confirmed (deposit_paid stays deposit_paid)

    Raises:
        InvalidPaymentAmountError: amount <= 0 or more than the balance (+ tolerance)
        InvalidStateTransitionError: order is fully_paid, cancelled or refunded
    """
    _validate_amount(amount_cents)

    if order.status not in lifecycle_service.PAYABLE_STATUSES:
        raise InvalidStateTransitionError(
            order.status,
            ORDER_STATUS_FULLY_PAID,
            f"Order {order.order_number} is {order.status}; no further payments accepted",
        )

    balance = order.balance_owed_cents
    if amount_cents > balance + _tolerance_cents():
        raise InvalidPaymentAmountError(
            f"Payment of {amount_cents} exceeds balance owed of {balance}",
            order_id=order.id,
            amount_cents=amount_cents,
            balance_owed_cents=balance,
        )

    applied = min(amount_cents, balance)
    new_balance = balance - applied
    is_first = not _has_prior_payment(order)
    deposit_payment = is_deposit and is_first

    next_status = lifecycle_service.status_after_payment(
        order,
        new_balance_cents=new_balance,
        is_deposit=is_deposit,
        is_first_payment=is_first,
    )

    order.balance_owed_cents = new_balance
    if next_status != order.status:
        lifecycle_service.apply_transition(order, next_status)
    else:
        order.updated_at = utcnow()

    order.payments.append(OrderPayment(
        payment_type=PAYMENT_TYPE_DEPOSIT if deposit_payment else PAYMENT_TYPE_BALANCE,
        status="completed",
        amount_cents=applied,
        provider_reference=provider_reference,
        processed_at=utcnow(),
    ))

    if applied != amount_cents:
        current_app.logger.info(
            "Absorbed %s cent overpayment on order %s", amount_cents - applied, order.order_number
        )
    return applied


def _sync_invoice(order: Order, applied: int) -> None:
    """Mirror an order payment onto its open invoice, or invoice the order if it never was."""
    invoice = invoice_service.open_invoice_for(order)
    if invoice is not None:
        if invoice.balance_owed_cents > 0:
            invoice_service.apply_invoice_payment(invoice, min(applied, invoice.balance_owed_cents))
        return
    if order.invoices:
        return

    invoice = invoice_service.build_invoice(
        order,
        order.total_amount_cents,
        notes=f"Payment of ${applied / 100:.2f} received",
    )
    invoice_service.stamp_sent(invoice)
    invoice_service.apply_invoice_payment(invoice, order.amount_collected_cents)
    current_app.logger.info("Created invoice %s for order %s", invoice.invoice_number, order.order_number)


def record_payment(order_id: int, amount_cents: int, is_deposit: bool,
                   provider_reference: str | None = None) -> Order:
    """
    Record money collected for an order.

    A provider_reference that was already recorded is not applied again; the
    order is returned as it stands.

    Raises:
        InvalidPaymentAmountError: amount <= 0 or more than the balance (+ tolerance)
        InvalidStateTransitionError: order is fully_paid, cancelled or refunded
        NotFoundError: order does not exist
    """
    _validate_amount(amount_cents)

    def _op():
        order = lock_order(order_id)

        if find_payment_by_reference(provider_reference) is not None:
            current_app.logger.info(
                "Payment %s already recorded; order %s unchanged", provider_reference, order.order_number
            )
            return order

        applied = apply_order_payment(
            order, amount_cents, is_deposit=is_deposit, provider_reference=provider_reference
        )
        _sync_invoice(order, applied)
        db.session.commit()

        current_app.logger.info(
            "Recorded %s cents on order %s: status %s, balance %s",
            applied, order.order_number, order.status, order.balance_owed_cents,
        )
        return order

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # A concurrent delivery of the same provider_reference won the insert
        db.session.rollback()
        if find_payment_by_reference(provider_reference) is None:
            raise
        current_app.logger.info("Payment %s recorded concurrently", provider_reference)
        return get_order(order_id)


def get_payment_summary(order_id: int) -> dict:
    """Totals and payment history for an order."""
    order = get_order(order_id)
    refunded = sum(p.amount_cents for p in order.payments if p.payment_type == PAYMENT_TYPE_REFUND)
    collected = sum(p.amount_cents for p in order.payments if p.payment_type != PAYMENT_TYPE_REFUND)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "total_amount_cents": order.total_amount_cents,
        "deposit_amount_cents": order.deposit_amount_cents,
        "amount_collected_cents": collected,
        "amount_refunded_cents": refunded,
        "balance_owed_cents": order.balance_owed_cents,
        "payments": [p.to_dict() for p in order.payments],
    }
