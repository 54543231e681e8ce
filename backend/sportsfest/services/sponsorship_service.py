# Overview: Service-layer operations for sponsorship orders; encapsulates business logic and database work.

"""
Sponsorship Service

Sponsorships are negotiated amounts, not catalog products. They never touch
the inventory ledger: the order carries no items, only
metadata["sponsorship"] = {base_amount_cents, processing_fee_cents, description}.

The card processing fee is passed through to the sponsor:
    fee = round_half_up(base * SPONSORSHIP_FEE_BPS / 10000) + SPONSORSHIP_FEE_FIXED_CENTS
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..extensions import db
from ..models import EventYear, Order, OrderInvoice, Organization
from ..models.invoices import INVOICE_STATUS_VOID
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_PENDING
from sportsfest.time_utils import to_utc_z, utcnow
from .concurrency import lock_for_update, run_with_retry
from .errors import NotFoundError, ValidationError
from .identifier_service import next_order_number
from . import invoice_service, lifecycle_service, notification_service


def calculate_processing_fee(base_amount_cents: int) -> int:
    bps = int(current_app.config.get("SPONSORSHIP_FEE_BPS", 290))
    fixed = int(current_app.config.get("SPONSORSHIP_FEE_FIXED_CENTS", 30))
    variable = (Decimal(base_amount_cents) * bps / Decimal(10000)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(variable) + fixed


def _active_event_year() -> EventYear:
    event_year = db.session.query(EventYear).filter_by(is_active=True, is_deleted=False).first()
    if event_year is None:
        raise NotFoundError("No active event year found")
    return event_year


def create_sponsorship_order(organization_id: int, base_amount_cents: int, description: str | None = None,
                             event_year_id: int | None = None, sender=None) -> dict:
    """
    Create a sponsorship order with its invoice and email the organization admins.

    The order and invoice are committed before any email goes out; delivery
    failures are reported in the result, never rolled back.

    Returns:
        {"order": Order, "invoice": OrderInvoice, "emails_sent": int, "failed_recipients": [str]}
    """
    if isinstance(base_amount_cents, bool) or not isinstance(base_amount_cents, int) or base_amount_cents <= 0:
        raise ValidationError("base_amount_cents must be a positive integer")

    def _op():
        organization = db.session.get(Organization, organization_id)
        if organization is None:
            raise NotFoundError(f"Organization {organization_id} not found", organization_id=organization_id)

        if event_year_id is None:
            event_year = _active_event_year()
        else:
            event_year = db.session.get(EventYear, event_year_id)
            if event_year is None or event_year.is_deleted:
                raise NotFoundError(f"Event year {event_year_id} not found", event_year_id=event_year_id)

        fee = calculate_processing_fee(base_amount_cents)
        total = base_amount_cents + fee
        now = utcnow()

        order = Order(
            order_number=next_order_number(sponsorship=True),
            organization_id=organization.id,
            event_year_id=event_year.id,
            status=ORDER_STATUS_PENDING,
            total_amount_cents=total,
            deposit_amount_cents=0,
            balance_owed_cents=total,
            is_sponsorship=True,
            is_manually_created=True,
            notes=description,
            metadata_json={
                "sponsorship": {
                    "base_amount_cents": base_amount_cents,
                    "processing_fee_cents": fee,
                    "description": description,
                }
            },
            created_at=now,
            updated_at=now,
        )
        db.session.add(order)
        db.session.flush()

        invoice = invoice_service.build_invoice(
            order,
            total,
            notes=description,
            metadata={
                "is_sponsorship": True,
                "base_amount_cents": base_amount_cents,
                "processing_fee_cents": fee,
            },
        )
        invoice_service.stamp_sent(invoice)
        db.session.commit()
        return order, invoice

    order, invoice = run_with_retry(_op)
    current_app.logger.info(
        "Created sponsorship order %s / invoice %s for org %s (%s cents incl. %s fee)",
        order.order_number, invoice.invoice_number, organization_id,
        order.total_amount_cents, order.sponsorship["processing_fee_cents"],
    )

    if notification_service.get_admin_recipients(organization_id):
        delivery = invoice_service.dispatch_invoice_emails(invoice, sender=sender)
    else:
        current_app.logger.warning("Sponsorship invoice %s has no recipients", invoice.invoice_number)
        delivery = {"emails_sent": 0, "failed_recipients": []}

    return {"order": order, "invoice": invoice, **delivery}


def _with_audit_entry(metadata: dict | None, entry: dict) -> dict:
    # New dict each time so the JSON column is flagged dirty
    updated = dict(metadata or {})
    updated["audit_trail"] = [*updated.get("audit_trail", []), entry]
    return updated


def _lock_sponsorship(order_id: int):
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError(f"Sponsorship {order_id} not found", order_id=order_id)
    if not order.is_sponsorship:
        raise ValidationError(f"Order {order.order_number} is not a sponsorship", order_id=order_id)

    invoice = lock_for_update(
        db.session.query(OrderInvoice).filter_by(order_id=order.id).order_by(OrderInvoice.id.desc())
    ).first()
    if invoice is None:
        raise NotFoundError(f"Invoice not found for sponsorship {order.order_number}", order_id=order_id)
    return order, invoice


def _has_payments(order: Order, invoice: OrderInvoice) -> bool:
    return invoice.paid_amount_cents > 0 or order.amount_collected_cents > 0


def update_sponsorship(order_id: int, base_amount_cents: int, description: str | None = None,
                       sender=None) -> dict:
    """
    Change the negotiated amount of an unpaid sponsorship and re-send the invoice.

    Fee, order total and invoice total are recomputed; the change is appended
    to the audit trail on both rows.

    Raises:
        ValidationError: not a sponsorship, already paid (in part) or closed
        NotFoundError: order or invoice missing
    """
    if isinstance(base_amount_cents, bool) or not isinstance(base_amount_cents, int) or base_amount_cents <= 0:
        raise ValidationError("base_amount_cents must be a positive integer")

    def _op():
        order, invoice = _lock_sponsorship(order_id)
        if _has_payments(order, invoice):
            raise ValidationError("Cannot edit a sponsorship that has received payments", order_id=order_id)
        if order.status != ORDER_STATUS_PENDING or not invoice.is_open:
            raise ValidationError(f"Cannot edit a {order.status} sponsorship", order_id=order_id)

        previous = order.sponsorship
        fee = calculate_processing_fee(base_amount_cents)
        total = base_amount_cents + fee
        now = utcnow()

        changes = {}
        if previous.get("base_amount_cents") != base_amount_cents:
            changes["base_amount_cents"] = {"from": previous.get("base_amount_cents"), "to": base_amount_cents}
        if previous.get("description") != description:
            changes["description"] = {"from": previous.get("description"), "to": description}
        entry = {"action": "updated", "timestamp": to_utc_z(now), "changes": changes}

        order_metadata = _with_audit_entry(order.metadata_json, entry)
        order_metadata["sponsorship"] = {
            "base_amount_cents": base_amount_cents,
            "processing_fee_cents": fee,
            "description": description,
        }
        order.metadata_json = order_metadata
        order.total_amount_cents = total
        order.balance_owed_cents = total
        order.notes = description
        order.updated_at = now

        invoice_metadata = _with_audit_entry(invoice.metadata_json, entry)
        invoice_metadata.update(base_amount_cents=base_amount_cents, processing_fee_cents=fee)
        invoice.metadata_json = invoice_metadata
        invoice.total_amount_cents = total
        invoice.balance_owed_cents = total
        invoice.notes = description
        invoice.updated_at = now

        invoice_service.verify_reconciliation(invoice)
        db.session.commit()
        return order, invoice

    order, invoice = run_with_retry(_op)
    current_app.logger.info(
        "Updated sponsorship %s to %s cents incl. %s fee",
        order.order_number, order.total_amount_cents, order.sponsorship["processing_fee_cents"],
    )

    if not notification_service.get_admin_recipients(order.organization_id):
        current_app.logger.warning("Sponsorship invoice %s has no recipients", invoice.invoice_number)
        return {"order": order, "invoice": invoice, "emails_sent": 0, "failed_recipients": []}

    delivery = invoice_service.dispatch_invoice_emails(invoice, sender=sender)
    if delivery["emails_sent"]:
        invoice = invoice_service.mark_sent(invoice.id, force=True)
    return {"order": order, "invoice": invoice, **delivery}


def delete_sponsorship(order_id: int, reason: str | None = None) -> dict:
    """
    Remove a sponsorship.

    Nothing paid: the order and its invoices are deleted outright.
    Partly paid: the order is cancelled and the invoice voided, with an audit
    entry on both. A fully paid sponsorship has to be refunded instead.

    Returns:
        {"order_id": int, "action": "deleted" | "cancelled"}

    Raises:
        ValidationError: not a sponsorship
        InvalidStateTransitionError: order can no longer be cancelled
        NotFoundError: order or invoice missing
    """
    reason = (reason or "Cancelled by admin")[:255]

    def _op():
        order, invoice = _lock_sponsorship(order_id)
        order_number = order.order_number

        if not _has_payments(order, invoice):
            db.session.delete(order)
            db.session.commit()
            current_app.logger.info("Deleted unpaid sponsorship %s", order_number)
            return {"order_id": order_id, "action": "deleted"}

        lifecycle_service.require_transition(order, ORDER_STATUS_CANCELLED)
        now = utcnow()
        entry = {"action": "cancelled", "timestamp": to_utc_z(now), "reason": reason}

        lifecycle_service.apply_transition(order, ORDER_STATUS_CANCELLED, reason=reason)
        order.metadata_json = _with_audit_entry(order.metadata_json, entry)

        invoice.status = INVOICE_STATUS_VOID
        invoice.metadata_json = _with_audit_entry(invoice.metadata_json, entry)
        invoice.updated_at = now

        db.session.commit()
        current_app.logger.info(
            "Cancelled sponsorship %s with %s cents collected", order_number, order.amount_collected_cents
        )
        return {"order_id": order_id, "action": "cancelled"}

    return run_with_retry(_op)
