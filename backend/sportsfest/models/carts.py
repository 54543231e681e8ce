from __future__ import annotations

from ..extensions import db
from sportsfest.time_utils import to_utc_z, utcnow


class CartSession(db.Model):
    """
    In-progress selection of one organization for one event year.

    LIFECYCLE:
    1. Created on first add-to-cart (units reserved in the inventory ledger)
    2. Every mutation slides expires_at forward by CART_TTL_MINUTES
    3. Deleted by checkout (units become order-held) or by the expired-cart
       sweep (units released)

    While the row exists its units are counted in Product.reserved_count.

    cart_data is an ordered list of {"product_id": int, "quantity": int}.
    The same product may appear more than once in rows written by older
    clients; readers must aggregate per product.
    """
    __tablename__ = "cart_sessions"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "event_year_id", name="uq_cart_sessions_org_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    event_year_id = db.Column(db.Integer, db.ForeignKey("event_years.id"), nullable=False, index=True)

    cart_data = db.Column(db.JSON, nullable=False, default=list)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization")
    event_year = db.relationship("EventYear")
    __mapper_args__ = {"version_id_col": version_id}

    def is_expired(self, now=None) -> bool:
        return self.expires_at < (now or utcnow())

    def quantities_by_product(self) -> dict[int, int]:
        """Aggregate cart_data into {product_id: total quantity}, preserving first-seen order."""
        totals: dict[int, int] = {}
        for entry in self.cart_data or []:
            product_id = entry.get("product_id")
            if product_id is None:
                continue
            product_id = int(product_id)
            totals[product_id] = totals.get(product_id, 0) + int(entry.get("quantity") or 0)
        return totals

    def __repr__(self) -> str:
        return f"<CartSession id={self.id} org={self.organization_id} year={self.event_year_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "event_year_id": self.event_year_id,
            "cart_data": list(self.cart_data or []),
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
