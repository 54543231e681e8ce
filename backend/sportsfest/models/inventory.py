from __future__ import annotations

from ..extensions import db
from sportsfest.time_utils import to_utc_z

PRODUCT_TYPE_TEAM_REGISTRATION = "team_registration"
PRODUCT_TYPE_TENT_RENTAL = "tent_rental"
PRODUCT_TYPE_SPONSORSHIP = "sponsorship"
PRODUCT_TYPE_OTHER = "other"

PRODUCT_TYPES = (
    PRODUCT_TYPE_TEAM_REGISTRATION,
    PRODUCT_TYPE_TENT_RENTAL,
    PRODUCT_TYPE_SPONSORSHIP,
    PRODUCT_TYPE_OTHER,
)

PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_INACTIVE = "inactive"


class Product(db.Model):
    """
    Purchasable SKU scoped to one event year.

    INVENTORY LEDGER:
    - total_inventory is the capacity; NULL means unbounded.
    - reserved_count is the number of units held by live carts and live orders.
    - reserved_count is only ever changed by single conditional UPDATE statements
      in inventory_service (never read-modify-write in Python).

    Products referenced by an OrderItem are never deleted; set status='inactive'.
    OrderItem.unit_price_cents keeps the historical price.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("reserved_count >= 0", name="ck_products_reserved_nonneg"),
        db.CheckConstraint(
            "total_inventory IS NULL OR reserved_count <= total_inventory",
            name="ck_products_reserved_within_capacity",
        ),
        db.Index("ix_products_event_year_status", "event_year_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    product_type = db.Column(db.String(32), nullable=False, default=PRODUCT_TYPE_OTHER)

    base_price_cents = db.Column(db.Integer, nullable=False)
    requires_deposit = db.Column(db.Boolean, nullable=False, default=False)
    deposit_amount_cents = db.Column(db.Integer, nullable=True)

    # Purchase cap per organization per event year (NULL = no cap)
    max_quantity_per_org = db.Column(db.Integer, nullable=True)

    total_inventory = db.Column(db.Integer, nullable=True)
    reserved_count = db.Column(db.Integer, nullable=False, default=0, server_default=db.text("0"))

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    event_year = db.relationship("EventYear", backref=db.backref("products", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_STATUS_ACTIVE

    @property
    def is_bounded(self) -> bool:
        return self.total_inventory is not None

    @property
    def available_quantity(self) -> int | None:
        if self.total_inventory is None:
            return None
        return self.total_inventory - self.reserved_count

    def deposit_for(self, quantity: int) -> int:
        """Deposit due for `quantity` units (0 when the product takes no deposit)."""
        if not self.requires_deposit or not self.deposit_amount_cents:
            return 0
        return self.deposit_amount_cents * quantity

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} reserved={self.reserved_count}/{self.total_inventory}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_year_id": self.event_year_id,
            "name": self.name,
            "description": self.description,
            "product_type": self.product_type,
            "base_price_cents": self.base_price_cents,
            "requires_deposit": self.requires_deposit,
            "deposit_amount_cents": self.deposit_amount_cents,
            "max_quantity_per_org": self.max_quantity_per_org,
            "total_inventory": self.total_inventory,
            "reserved_count": self.reserved_count,
            "available_quantity": self.available_quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
