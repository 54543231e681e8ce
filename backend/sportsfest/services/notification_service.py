# Overview: Service-layer email capability for invoice notifications (Flask-Mail).

"""
Notification Service

Formats invoice emails and hands them to Flask-Mail. Callers that fan out to
several recipients (invoice send/resend) catch EmailDeliveryError per
recipient so one bad address never blocks the others.
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass

from flask import current_app
from flask_mail import Message

from ..extensions import db, mail
from ..models import EventYear, Order, OrderInvoice, Organization, OrganizationMember


class EmailDeliveryError(Exception):
    """Raised when a single email could not be handed to the mail server."""
    pass


@dataclass(frozen=True)
class Recipient:
    email: str
    name: str


@dataclass(frozen=True)
class EmailMessage:
    recipient: Recipient
    subject: str
    body: str


def _format_cents(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def get_admin_recipients(organization_id: int) -> list[Recipient]:
    """Admins of an organization, falling back to its billing email when it has none."""
    members = db.session.query(OrganizationMember).filter_by(
        organization_id=organization_id,
        role="admin",
    ).order_by(OrganizationMember.id).all()

    recipients = [Recipient(m.email, m.name or "Team Admin") for m in members if m.email]
    if recipients:
        return recipients

    org = db.session.get(Organization, organization_id)
    if org is not None and org.billing_email:
        return [Recipient(org.billing_email, org.name)]
    return []


def payment_url(organization: Organization, order_id: int) -> str:
    base = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    return f"{base}/organizations/{organization.slug}/registration/orders?openOrder={order_id}"


def format_invoice_email(invoice: OrderInvoice, recipient: Recipient) -> EmailMessage:
    order: Order = invoice.order
    organization = db.session.get(Organization, order.organization_id)
    event_year = db.session.get(EventYear, order.event_year_id)
    event_name = event_year.name if event_year else "SportsFest"

    lines = [
        f"Hi {recipient.name},",
        "",
        f"An invoice is ready for {organization.name} ({event_name}).",
        "",
        f"Invoice: {invoice.invoice_number}",
    ]

    sponsorship = order.sponsorship
    if order.is_sponsorship and sponsorship:
        lines.append(f"Sponsorship: {_format_cents(sponsorship.get('base_amount_cents', 0))}")
        lines.append(f"Processing fee: {_format_cents(sponsorship.get('processing_fee_cents', 0))}")
        description = order.notes or sponsorship.get("description")
        if description:
            lines.append(f"Description: {description}")

    lines += [
        f"Total: {_format_cents(invoice.total_amount_cents)}",
        f"Balance due: {_format_cents(invoice.balance_owed_cents)}",
        "",
        f"Pay online: {payment_url(organization, order.id)}",
    ]

    kind = "Sponsorship invoice" if order.is_sponsorship else "Invoice"
    return EmailMessage(
        recipient=recipient,
        subject=f"{kind} {invoice.invoice_number} - {organization.name}",
        body="\n".join(lines),
    )


def send_email(message: EmailMessage) -> None:
    """
    Deliver one message through Flask-Mail.

    Raises:
        EmailDeliveryError: SMTP or socket failure
    """
    if current_app.config.get("MAIL_SUPPRESS_SEND"):
        current_app.logger.info(
            "[MAIL SUPPRESSED] %s for %s recorded, not delivered", message.subject, message.recipient.email
        )

    msg = Message(
        subject=message.subject,
        recipients=[message.recipient.email],
        body=message.body,
    )
    try:
        mail.send(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"Could not send to {message.recipient.email}: {exc}") from exc
