# Overview: Pytest coverage for invoices, sponsorship orders and invoice emails.

"""
Invoice Reconciliation Tests

1. paid + balance == total after every payment (Scenario E)
2. sent_at is stamped once unless forced
3. Per-recipient email failures are collected, never raised
4. Sponsorship orders carry fee metadata and never touch inventory
5. Invoice payments are booked on the parent order
6. Unpaid sponsorships can be edited or deleted; paid ones are cancelled
"""

import logging
from datetime import timedelta

import pytest

from sportsfest.extensions import mail
from sportsfest.models import Order, OrderInvoice, OrderPayment, Organization, Product
from sportsfest.services import invoice_service, maintenance_service, notification_service, sponsorship_service
from sportsfest.services.errors import (
    InvalidPaymentAmountError,
    InvalidStateTransitionError,
    NotFoundError,
    ReconciliationMismatchError,
    ValidationError,
)
from sportsfest.time_utils import utcnow


class FakeSender:
    """Collects messages; raises EmailDeliveryError for addresses in `failing`."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    def __call__(self, message):
        if message.recipient.email in self.failing:
            raise notification_service.EmailDeliveryError(f"mailbox unavailable: {message.recipient.email}")
        self.sent.append(message)


class TestInvoicePayments:

    def test_full_payment_marks_paid(self, db_session, make_order):
        """Scenario E."""
        order = make_order(825)
        invoice = invoice_service.attach_invoice(order.id, 825)
        assert invoice.status == "unsent"
        assert invoice.paid_amount_cents == 0
        assert invoice.balance_owed_cents == 825

        invoice = invoice_service.record_invoice_payment(invoice.id, 825)

        assert invoice.balance_owed_cents == 0
        assert invoice.paid_amount_cents == 825
        assert invoice.status == "paid"
        assert invoice.paid_at is not None

    def test_invoice_number_prefix(self, db_session, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)
        assert invoice.invoice_number.startswith("INV-")

    def test_partial_payments_reconcile(self, db_session, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)

        for amount in (200, 300):
            invoice = invoice_service.record_invoice_payment(invoice.id, amount)
            assert invoice.paid_amount_cents + invoice.balance_owed_cents == invoice.total_amount_cents

        assert invoice.status == "unsent"
        assert invoice.balance_owed_cents == 325

    def test_overpayment_rejected(self, db_session, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)

        with pytest.raises(InvalidPaymentAmountError):
            invoice_service.record_invoice_payment(invoice.id, 900)

    def test_paid_invoice_rejects_more_money(self, db_session, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)
        invoice_service.record_invoice_payment(invoice.id, 825)

        with pytest.raises(InvalidPaymentAmountError):
            invoice_service.record_invoice_payment(invoice.id, 1)

    def test_attach_defaults_to_order_balance(self, db_session, make_order):
        order = make_order(1000, status="confirmed", balance_owed_cents=400)
        invoice = invoice_service.attach_invoice(order.id)
        assert invoice.total_amount_cents == 400

    def test_attach_rejects_second_open_invoice(self, db_session, make_order):
        order = make_order(825)
        invoice_service.attach_invoice(order.id)

        with pytest.raises(ValidationError):
            invoice_service.attach_invoice(order.id)

    def test_attach_to_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            invoice_service.attach_invoice(99999, 100)

    def test_verify_reconciliation_detects_mismatch(self):
        invoice = OrderInvoice(
            invoice_number="INV-BROKEN",
            total_amount_cents=825,
            paid_amount_cents=500,
            balance_owed_cents=400,
        )

        with pytest.raises(ReconciliationMismatchError) as exc_info:
            invoice_service.verify_reconciliation(invoice)

        assert exc_info.value.status_code == 500


class TestMarkSent:

    def test_sent_at_kept_unless_forced(self, db_session, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)

        invoice = invoice_service.mark_sent(invoice.id)
        assert invoice.status == "sent"

        earlier = utcnow() - timedelta(days=2)
        invoice.sent_at = earlier
        db_session.commit()

        invoice = invoice_service.mark_sent(invoice.id)
        assert invoice.sent_at == earlier

        invoice = invoice_service.mark_sent(invoice.id, force=True)
        assert invoice.sent_at > earlier


class TestResendInvoice:

    def test_failures_are_collected(self, db_session, org_x, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)
        sender = FakeSender(failing={"bo@acme.test"})

        result = invoice_service.resend_invoice(invoice.id, sender=sender)

        assert result["emails_sent"] == 1
        assert result["failed_recipients"] == ["bo@acme.test"]
        assert [m.recipient.email for m in sender.sent] == ["ana@acme.test"]
        assert "https://sportsfest.test/organizations/acme/registration/orders?openOrder=" in sender.sent[0].body

        invoice = db_session.get(OrderInvoice, invoice.id)
        assert invoice.sent_at is not None
        assert invoice.paid_amount_cents == 0

    def test_all_failed_leaves_sent_at(self, db_session, org_x, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)
        sender = FakeSender(failing={"ana@acme.test", "bo@acme.test"})

        result = invoice_service.resend_invoice(invoice.id, sender=sender)

        assert result["emails_sent"] == 0
        assert db_session.get(OrderInvoice, invoice.id).sent_at is None

    def test_falls_back_to_billing_email(self, db_session, make_order, org_y):
        org_y.billing_email = "ap@beta.test"
        db_session.commit()
        invoice = invoice_service.attach_invoice(make_order(825, organization=org_y).id)
        sender = FakeSender()

        result = invoice_service.resend_invoice(invoice.id, sender=sender)

        assert result["emails_sent"] == 1
        assert sender.sent[0].recipient.email == "ap@beta.test"

    def test_no_recipients(self, db_session, make_order, org_y):
        invoice = invoice_service.attach_invoice(make_order(825, organization=org_y).id)

        with pytest.raises(ValidationError):
            invoice_service.resend_invoice(invoice.id, sender=FakeSender())

    def test_send_through_flask_mail(self, db_session, org_x, make_order):
        invoice = invoice_service.attach_invoice(make_order(825).id)

        with mail.record_messages() as outbox:
            result = invoice_service.send_invoice(invoice.id)

        assert result["emails_sent"] == 2
        assert sorted(m.recipients[0] for m in outbox) == ["ana@acme.test", "bo@acme.test"]
        assert invoice.invoice_number in outbox[0].subject


class TestSponsorship:

    def test_fee_is_card_pass_through(self, app):
        assert sponsorship_service.calculate_processing_fee(50000) == 1480
        # 2.9% of $12.34 = 35.786 cents -> 36
        assert sponsorship_service.calculate_processing_fee(1234) == 66

    def test_creates_order_and_sent_invoice(self, db_session, org_x, event_year, tent):
        sender = FakeSender()

        result = sponsorship_service.create_sponsorship_order(
            org_x.id, 50000, description="Gold sponsor", sender=sender
        )

        order = db_session.get(Order, result["order"].id)
        assert order.order_number.startswith("SPO-")
        assert order.is_sponsorship is True
        assert order.items == []
        assert order.total_amount_cents == 51480
        assert order.balance_owed_cents == 51480
        assert order.sponsorship == {
            "base_amount_cents": 50000,
            "processing_fee_cents": 1480,
            "description": "Gold sponsor",
        }

        invoice = db_session.get(OrderInvoice, result["invoice"].id)
        assert invoice.invoice_number.startswith("SPO-INV-")
        assert invoice.status == "sent"
        assert invoice.sent_at is not None
        assert invoice.total_amount_cents == 51480

        assert result["emails_sent"] == 2
        assert "Processing fee: $14.80" in sender.sent[0].body
        assert db_session.get(Product, tent.id).reserved_count == 0

    def test_requires_active_event_year(self, db_session, org_x, event_year):
        event_year.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())

        assert db_session.query(Order).count() == 0

    def test_unknown_organization(self, db_session, event_year):
        with pytest.raises(NotFoundError):
            sponsorship_service.create_sponsorship_order(99999, 50000, sender=FakeSender())

    def test_email_failure_does_not_undo_order(self, db_session, org_x, event_year):
        sender = FakeSender(failing={"ana@acme.test", "bo@acme.test"})

        result = sponsorship_service.create_sponsorship_order(org_x.id, 10000, sender=sender)

        assert result["emails_sent"] == 0
        assert len(result["failed_recipients"]) == 2
        assert db_session.query(Order).filter_by(is_sponsorship=True).count() == 1

    def test_organization_without_recipients(self, db_session, org_y, event_year):
        result = sponsorship_service.create_sponsorship_order(org_y.id, 10000, sender=FakeSender())
        assert result["emails_sent"] == 0
        assert db_session.get(Organization, org_y.id) is not None


class TestInvoicePaymentBooksOrder:

    def test_paid_sponsorship_invoice_settles_order(self, db_session, org_x, event_year):
        result = sponsorship_service.create_sponsorship_order(org_x.id, 80000, sender=FakeSender())
        order_id, invoice_id = result["order"].id, result["invoice"].id
        assert result["invoice"].total_amount_cents == 82350

        invoice_service.record_invoice_payment(invoice_id, 82350)

        db_session.expire_all()
        order = db_session.get(Order, order_id)
        assert order.status == "fully_paid"
        assert order.balance_owed_cents == 0
        assert [p.amount_cents for p in order.payments] == [82350]

        sweep = maintenance_service.cleanup_abandoned_orders(execute=True, now=utcnow() + timedelta(hours=30))

        assert sweep["found_orders"] == 0
        assert db_session.get(OrderInvoice, invoice_id) is not None

    def test_partial_invoice_payment_confirms_order(self, db_session, make_order):
        order = make_order(825)
        invoice = invoice_service.attach_invoice(order.id)

        invoice_service.record_invoice_payment(invoice.id, 200)

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.status == "confirmed"
        assert order.balance_owed_cents == 625
        assert db_session.query(OrderPayment).filter_by(order_id=order.id).count() == 1

    def test_cancelled_order_rejects_invoice_payment(self, db_session, make_order):
        order = make_order(825)
        invoice = invoice_service.attach_invoice(order.id)
        order.status = "cancelled"
        db_session.commit()

        with pytest.raises(InvalidStateTransitionError):
            invoice_service.record_invoice_payment(invoice.id, 825)

        db_session.expire_all()
        assert db_session.get(OrderInvoice, invoice.id).paid_amount_cents == 0


class TestSuppressedMail:

    def test_suppressed_send_is_logged_as_undelivered(self, app, db_session, org_x, make_order, caplog):
        invoice = invoice_service.attach_invoice(make_order(825).id)
        message = notification_service.format_invoice_email(
            invoice, notification_service.Recipient("ana@acme.test", "Ana")
        )
        caplog.set_level(logging.INFO, logger=app.logger.name)

        with mail.record_messages() as outbox:
            notification_service.send_email(message)

        assert len(outbox) == 1
        assert "not delivered" in caplog.text
        assert "ana@acme.test" in caplog.text


class TestSponsorshipEdits:

    def test_update_recomputes_fee_and_resends(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())
        sender = FakeSender()

        result = sponsorship_service.update_sponsorship(
            created["order"].id, 80000, description="Platinum sponsor", sender=sender
        )

        order, invoice = result["order"], result["invoice"]
        assert order.total_amount_cents == 82350
        assert order.balance_owed_cents == 82350
        assert order.sponsorship["processing_fee_cents"] == 2350
        assert invoice.total_amount_cents == 82350
        assert invoice.balance_owed_cents == 82350
        assert invoice.metadata_json["processing_fee_cents"] == 2350
        assert result["emails_sent"] == 2
        assert "$823.50" in sender.sent[0].body

        entry = order.metadata_json["audit_trail"][-1]
        assert entry["action"] == "updated"
        assert entry["changes"]["base_amount_cents"] == {"from": 50000, "to": 80000}
        assert invoice.metadata_json["audit_trail"][-1]["action"] == "updated"

    def test_update_rejected_after_payment(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())
        invoice_service.record_invoice_payment(created["invoice"].id, 1000)

        with pytest.raises(ValidationError):
            sponsorship_service.update_sponsorship(created["order"].id, 80000, sender=FakeSender())

        db_session.expire_all()
        assert db_session.get(Order, created["order"].id).total_amount_cents == 51480

    def test_update_rejects_bad_amount(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())

        with pytest.raises(ValidationError):
            sponsorship_service.update_sponsorship(created["order"].id, 0, sender=FakeSender())

    def test_regular_orders_are_not_sponsorships(self, db_session, make_order):
        order = make_order(825)

        with pytest.raises(ValidationError):
            sponsorship_service.update_sponsorship(order.id, 80000, sender=FakeSender())
        with pytest.raises(ValidationError):
            sponsorship_service.delete_sponsorship(order.id)

    def test_missing_sponsorship(self, db_session):
        with pytest.raises(NotFoundError):
            sponsorship_service.delete_sponsorship(99999)

    def test_delete_unpaid_removes_rows(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())

        result = sponsorship_service.delete_sponsorship(created["order"].id)

        assert result["action"] == "deleted"
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderInvoice).count() == 0

    def test_delete_partly_paid_cancels_and_voids(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())
        invoice_service.record_invoice_payment(created["invoice"].id, 10000)

        result = sponsorship_service.delete_sponsorship(created["order"].id, reason="Sponsor withdrew")

        assert result["action"] == "cancelled"
        db_session.expire_all()
        order = db_session.get(Order, created["order"].id)
        invoice = db_session.get(OrderInvoice, created["invoice"].id)
        assert order.status == "cancelled"
        assert invoice.status == "void"
        assert order.metadata_json["audit_trail"][-1] == {
            "action": "cancelled",
            "timestamp": order.metadata_json["audit_trail"][-1]["timestamp"],
            "reason": "Sponsor withdrew",
        }
        assert invoice.metadata_json["audit_trail"][-1]["action"] == "cancelled"

    def test_delete_fully_paid_requires_refund(self, db_session, org_x, event_year):
        created = sponsorship_service.create_sponsorship_order(org_x.id, 50000, sender=FakeSender())
        invoice_service.record_invoice_payment(created["invoice"].id, 51480)

        with pytest.raises(InvalidStateTransitionError):
            sponsorship_service.delete_sponsorship(created["order"].id)

        db_session.expire_all()
        assert db_session.get(Order, created["order"].id).status == "fully_paid"
