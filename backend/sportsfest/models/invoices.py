from __future__ import annotations

from ..extensions import db
from sportsfest.time_utils import to_utc_z, utcnow

INVOICE_STATUS_UNSENT = "unsent"
INVOICE_STATUS_SENT = "sent"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_VOID = "void"


class OrderInvoice(db.Model):
    """
    Billing document tied to an order (sponsorships, organizations that need
    formal invoices).

    Invariant: paid_amount_cents + balance_owed_cents == total_amount_cents.
    """
    __tablename__ = "order_invoices"
    __table_args__ = (
        db.CheckConstraint("paid_amount_cents >= 0", name="ck_invoices_paid_nonneg"),
        db.CheckConstraint("balance_owed_cents >= 0", name="ck_invoices_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_owed_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_UNSENT, index=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="invoices")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status in (INVOICE_STATUS_UNSENT, INVOICE_STATUS_SENT)

    def __repr__(self) -> str:
        return f"<OrderInvoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "invoice_number": self.invoice_number,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_owed_cents": self.balance_owed_cents,
            "status": self.status,
            "sent_at": to_utc_z(self.sent_at),
            "paid_at": to_utc_z(self.paid_at),
            "notes": self.notes,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
