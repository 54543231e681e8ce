from __future__ import annotations

from ..extensions import db
from sportsfest.time_utils import to_utc_z, utcnow

# Order statuses (must match lifecycle_service)
ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_DEPOSIT_PAID = "deposit_paid"
ORDER_STATUS_FULLY_PAID = "fully_paid"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_REFUNDED = "refunded"

PAYMENT_TYPE_DEPOSIT = "deposit"
PAYMENT_TYPE_BALANCE = "balance"
PAYMENT_TYPE_REFUND = "refund"


class Order(db.Model):
    """
    Durable purchase record.

    PAYMENT TRACKING (all amounts in cents):
    - balance_owed_cents = total_amount_cents - amount collected
    - pending orders have balance_owed_cents == total_amount_cents; the
      abandoned-order sweep relies on this equality to spot orders with no
      payment activity
    - fully_paid orders have balance_owed_cents == 0

    Units of limited products bought by this order stay counted in
    Product.reserved_count until the order is cancelled, refunded or
    deleted as abandoned.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("balance_owed_cents >= 0", name="ck_orders_balance_nonneg"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_org_year", "organization_id", "event_year_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    deposit_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_owed_cents = db.Column(db.Integer, nullable=False)

    is_sponsorship = db.Column(db.Boolean, nullable=False, default=False)
    is_manually_created = db.Column(db.Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization")
    event_year = db.relationship("EventYear")
    items = db.relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy=True)
    payments = db.relationship(
        "OrderPayment",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderPayment.id",
    )
    invoices = db.relationship(
        "OrderInvoice",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy=True,
        order_by="OrderInvoice.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def amount_collected_cents(self) -> int:
        return self.total_amount_cents - self.balance_owed_cents

    @property
    def sponsorship(self) -> dict:
        return (self.metadata_json or {}).get("sponsorship") or {}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "organization_id": self.organization_id,
            "event_year_id": self.event_year_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "deposit_amount_cents": self.deposit_amount_cents,
            "balance_owed_cents": self.balance_owed_cents,
            "amount_collected_cents": self.amount_collected_cents,
            "is_sponsorship": self.is_sponsorship,
            "is_manually_created": self.is_manually_created,
            "metadata": self.metadata_json,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "status_reason": self.status_reason,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item of an order. unit_price_cents is snapshotted at checkout."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderPayment(db.Model):
    """
    Append-only record of money collected on (or refunded from) an order.

    The sum of completed deposit/balance rows equals
    total_amount_cents - balance_owed_cents on the parent order.
    """
    __tablename__ = "order_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    payment_type = db.Column(db.String(16), nullable=False)  # deposit, balance, refund
    status = db.Column(db.String(16), nullable=False, default="completed")
    amount_cents = db.Column(db.Integer, nullable=False)
    provider_reference = db.Column(db.String(255), nullable=True, unique=True, index=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payment_type": self.payment_type,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "provider_reference": self.provider_reference,
            "processed_at": to_utc_z(self.processed_at),
        }
