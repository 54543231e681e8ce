# Overview: Service-layer operations for order invoices; encapsulates business logic and database work.

"""
Invoice Reconciliation Service

WHY: Sponsorships and some organizations pay against a formal invoice. The
invoice tracks its own paid/balance amounts next to the order's.

INVARIANT:
    paid_amount_cents + balance_owed_cents == total_amount_cents

STATUS:
    unsent -> sent -> paid
    unsent/sent -> void     (order cancelled before any invoice payment)

Notification state is sent_at only: the first send stamps it, a plain re-send
keeps it, a forced re-send (resend_invoice) moves it.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, OrderInvoice
from ..models.invoices import (
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_SENT,
    INVOICE_STATUS_UNSENT,
    INVOICE_STATUS_VOID,
)
from sportsfest.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import (
    InvalidPaymentAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    ReconciliationMismatchError,
    ValidationError,
)
from .identifier_service import next_invoice_number
from .lifecycle_service import CLOSED_STATUSES
from . import notification_service


def _tolerance_cents() -> int:
    return int(current_app.config.get("PAYMENT_TOLERANCE_CENTS", 1))


def _lock_invoice(invoice_id: int) -> OrderInvoice:
    invoice = lock_for_update(db.session.query(OrderInvoice).filter_by(id=invoice_id)).first()
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)
    return invoice


def get_invoice(invoice_id: int) -> OrderInvoice:
    invoice = db.session.get(OrderInvoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=invoice_id)
    return invoice


def open_invoice_for(order: Order) -> OrderInvoice | None:
    """The order's most recent unsent/sent invoice, if any."""
    return db.session.query(OrderInvoice).filter(
        OrderInvoice.order_id == order.id,
        OrderInvoice.status.in_((INVOICE_STATUS_UNSENT, INVOICE_STATUS_SENT)),
    ).order_by(OrderInvoice.id.desc()).first()


def verify_reconciliation(invoice: OrderInvoice) -> None:
    """
    Raises:
        ReconciliationMismatchError: paid + balance != total
    """
    if invoice.paid_amount_cents + invoice.balance_owed_cents != invoice.total_amount_cents:
        raise ReconciliationMismatchError(
            f"Invoice {invoice.invoice_number} does not reconcile: "
            f"paid {invoice.paid_amount_cents} + balance {invoice.balance_owed_cents} "
            f"!= total {invoice.total_amount_cents}",
            invoice_id=invoice.id,
            paid_amount_cents=invoice.paid_amount_cents,
            balance_owed_cents=invoice.balance_owed_cents,
            total_amount_cents=invoice.total_amount_cents,
        )


def build_invoice(order: Order, total_amount_cents: int, *, notes: str | None = None,
                  metadata: dict | None = None) -> OrderInvoice:
    """Create an unsent invoice row for order inside the caller's transaction."""
    if isinstance(total_amount_cents, bool) or not isinstance(total_amount_cents, int):
        raise ValidationError("total_amount_cents must be an integer")
    if total_amount_cents <= 0:
        raise ValidationError("Invoice total must be positive")

    now = utcnow()
    invoice = OrderInvoice(
        order_id=order.id,
        invoice_number=next_invoice_number(sponsorship=order.is_sponsorship),
        total_amount_cents=total_amount_cents,
        paid_amount_cents=0,
        balance_owed_cents=total_amount_cents,
        status=INVOICE_STATUS_UNSENT,
        notes=notes,
        metadata_json=metadata,
        created_at=now,
        updated_at=now,
    )
    db.session.add(invoice)
    return invoice


def attach_invoice(order_id: int, total_amount_cents: int | None = None, *, notes: str | None = None) -> OrderInvoice:
    """
    Attach an unsent invoice to an order.

    total_amount_cents defaults to what the order still owes.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
        if order.status in CLOSED_STATUSES:
            raise ValidationError(f"Cannot invoice a {order.status} order", order_id=order_id)
        if open_invoice_for(order) is not None:
            raise ValidationError(f"Order {order.order_number} already has an open invoice", order_id=order_id)

        total = order.balance_owed_cents if total_amount_cents is None else total_amount_cents
        invoice = build_invoice(order, total, notes=notes)
        db.session.commit()
        current_app.logger.info("Attached invoice %s to order %s", invoice.invoice_number, order.order_number)
        return invoice

    return run_with_retry(_op)


def stamp_sent(invoice: OrderInvoice, *, force: bool = False) -> OrderInvoice:
    now = utcnow()
    if invoice.sent_at is None or force:
        invoice.sent_at = now
        invoice.updated_at = now
    if invoice.status == INVOICE_STATUS_UNSENT:
        invoice.status = INVOICE_STATUS_SENT
    return invoice


def mark_sent(invoice_id: int, force: bool = False) -> OrderInvoice:
    """Stamp sent_at once; later calls keep the first timestamp unless forced."""
    def _op():
        invoice = _lock_invoice(invoice_id)
        if invoice.status == INVOICE_STATUS_VOID:
            raise ValidationError(f"Invoice {invoice.invoice_number} is void", invoice_id=invoice_id)
        stamp_sent(invoice, force=force)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def apply_invoice_payment(invoice: OrderInvoice, amount_cents: int) -> int:
    """
    Apply a payment to a locked invoice without committing. Returns the amount applied.

    Same amount rules as order payments: positive, and at most
    PAYMENT_TOLERANCE_CENTS over the balance (the excess is absorbed).
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidPaymentAmountError("Payment amount must be a positive integer number of cents")
    if not invoice.is_open:
        raise InvalidPaymentAmountError(
            f"Invoice {invoice.invoice_number} is {invoice.status}; no balance due",
            invoice_id=invoice.id,
        )
    if amount_cents > invoice.balance_owed_cents + _tolerance_cents():
        raise InvalidPaymentAmountError(
            f"Payment of {amount_cents} exceeds invoice balance of {invoice.balance_owed_cents}",
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            balance_owed_cents=invoice.balance_owed_cents,
        )

    applied = min(amount_cents, invoice.balance_owed_cents)
    now = utcnow()
    invoice.paid_amount_cents += applied
    invoice.balance_owed_cents -= applied
    invoice.updated_at = now
    if invoice.balance_owed_cents == 0:
        invoice.status = INVOICE_STATUS_PAID
        invoice.paid_at = now

    verify_reconciliation(invoice)
    return applied


def record_invoice_payment(invoice_id: int, amount_cents: int) -> OrderInvoice:
    """
    Record money received against an invoice. balance 0 => status paid, paid_at set.

    The same money is booked on the parent order (balance, payment row,
    status), so an invoiced order never looks abandoned once paid.

    Raises:
        InvalidPaymentAmountError: amount <= 0, over the invoice balance, or invoice not open
        InvalidStateTransitionError: parent order is cancelled or refunded
        ReconciliationMismatchError: invoice no longer reconciles
    """
    # Order payments mirror onto invoices, so the import runs at call time
    from .payment_service import apply_order_payment

    def _op():
        invoice = _lock_invoice(invoice_id)
        order = lock_for_update(db.session.query(Order).filter_by(id=invoice.order_id)).first()
        if order.status in CLOSED_STATUSES:
            raise InvalidStateTransitionError(
                order.status,
                order.status,
                f"Order {order.order_number} is {order.status}; invoice payments not accepted",
            )

        applied = apply_invoice_payment(invoice, amount_cents)
        order_share = min(applied, order.balance_owed_cents)
        if order_share > 0:
            apply_order_payment(order, order_share, is_deposit=False)

        db.session.commit()
        current_app.logger.info(
            "Invoice %s payment %s (balance %s, status %s); order %s now %s",
            invoice.invoice_number, applied, invoice.balance_owed_cents, invoice.status,
            order.order_number, order.status,
        )
        return invoice

    return run_with_retry(_op)


def void_invoice(invoice: OrderInvoice) -> bool:
    """Void an open invoice nothing was paid against. Returns True when voided."""
    if not invoice.is_open or invoice.paid_amount_cents > 0:
        return False
    invoice.status = INVOICE_STATUS_VOID
    invoice.updated_at = utcnow()
    return True


def dispatch_invoice_emails(invoice: OrderInvoice, sender=None) -> dict:
    """
    Email the invoice to every admin of the owning organization.

    Per-recipient failures are logged and collected; they never raise.
    """
    send = sender or notification_service.send_email
    recipients = notification_service.get_admin_recipients(invoice.order.organization_id)
    if not recipients:
        raise ValidationError(
            "No organization admins found to send email to",
            invoice_id=invoice.id,
        )

    emails_sent = 0
    failed = []
    for recipient in recipients:
        message = notification_service.format_invoice_email(invoice, recipient)
        try:
            send(message)
        except notification_service.EmailDeliveryError as exc:
            current_app.logger.warning(
                "Failed to send invoice %s to %s: %s", invoice.invoice_number, recipient.email, exc
            )
            failed.append(recipient.email)
            continue
        emails_sent += 1

    return {"emails_sent": emails_sent, "failed_recipients": failed}


def _send(invoice_id: int, *, force: bool, sender=None) -> dict:
    invoice = get_invoice(invoice_id)
    if invoice.status == INVOICE_STATUS_VOID:
        raise ValidationError(f"Invoice {invoice.invoice_number} is void", invoice_id=invoice_id)

    result = dispatch_invoice_emails(invoice, sender=sender)
    if result["emails_sent"]:
        mark_sent(invoice_id, force=force)
    else:
        current_app.logger.warning("Invoice %s was not delivered to any admin", invoice.invoice_number)
    return {"invoice_id": invoice_id, **result}


def send_invoice(invoice_id: int, sender=None) -> dict:
    """First send: email admins, stamp sent_at if it was never set."""
    return _send(invoice_id, force=False, sender=sender)


def resend_invoice(invoice_id: int, sender=None) -> dict:
    """
    Email the invoice again to the organization admins.

    Returns {invoice_id, emails_sent, failed_recipients}. Only sent_at changes.
    """
    return _send(invoice_id, force=True, sender=sender)
