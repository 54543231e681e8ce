from __future__ import annotations

from ..extensions import db
from sportsfest.time_utils import to_utc_z

class Organization(db.Model):
    """
    A company that registers teams and buys products for an event year.

    MULTI-TENANT: carts, orders and invoices are all scoped by organization_id.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, unique=True, index=True)
    billing_email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "billing_email": self.billing_email,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrganizationMember(db.Model):
    """
    Contact attached to an organization.

    Only admins receive invoice and sponsorship emails.
    """
    __tablename__ = "organization_members"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "email", name="uq_org_members_org_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="member")  # admin, member

    organization = db.relationship("Organization", backref=db.backref("members", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
        }


class EventYear(db.Model):
    """
    One edition of the event. Products and orders belong to exactly one.

    Event years are soft-deleted (is_deleted) so historical orders keep their
    parent row.
    """
    __tablename__ = "event_years"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    year = db.Column(db.Integer, nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<EventYear id={self.id} year={self.year}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "is_active": self.is_active,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
        }
