"""
Pytest fixtures for SportsFest backend tests.

Provides test database setup, tenant/catalog fixtures, and test client.
"""

import itertools
from datetime import timedelta

import pytest

from sportsfest import create_app
from sportsfest.extensions import db
from sportsfest.models import (
    CartSession,
    EventYear,
    Order,
    OrderItem,
    Organization,
    OrganizationMember,
    Product,
)
from sportsfest.time_utils import utcnow


CRON_SECRET = "cron-test-secret"
PAYMENT_SECRET = "payment-test-secret"

_order_seq = itertools.count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CRON_SECRET': CRON_SECRET,
        'PAYMENT_WEBHOOK_SECRET': PAYMENT_SECRET,
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_SENDER': 'no-reply@sportsfest.test',
        'APP_BASE_URL': 'https://sportsfest.test',
        'CART_TTL_MINUTES': 60,
        'ABANDONED_ORDER_HOURS': 24,
        'QUICK_CLEANUP_HOURS': 1,
        'PAYMENT_TOLERANCE_CENTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def event_year(db_session):
    year = EventYear(name="SportsFest 2026", year=2026, is_active=True, is_deleted=False)
    db_session.add(year)
    db_session.commit()
    return year


@pytest.fixture(scope='function')
def org_x(db_session):
    """Organization X with two admins and one plain member."""
    org = Organization(name="Acme Corp", slug="acme", billing_email="billing@acme.test")
    db_session.add(org)
    db_session.flush()
    db_session.add_all([
        OrganizationMember(organization_id=org.id, email="ana@acme.test", name="Ana", role="admin"),
        OrganizationMember(organization_id=org.id, email="bo@acme.test", name="Bo", role="admin"),
        OrganizationMember(organization_id=org.id, email="cy@acme.test", name="Cy", role="member"),
    ])
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_y(db_session):
    org = Organization(name="Beta Inc", slug="beta")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def make_product(db_session, event_year):
    """Factory for products in the active event year."""
    def _make(**overrides):
        values = {
            "event_year_id": event_year.id,
            "name": "Product",
            "product_type": "other",
            "base_price_cents": 1000,
            "requires_deposit": False,
            "status": "active",
            "reserved_count": 0,
        }
        values.update(overrides)
        product = Product(**values)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def tent(make_product):
    """Capacity-2 tent rental."""
    return make_product(
        name="Tent",
        product_type="tent_rental",
        base_price_cents=25000,
        total_inventory=2,
    )


@pytest.fixture(scope='function')
def team_slot(make_product):
    """Team registration: $1,000 with a $300 deposit, max 3 per organization."""
    return make_product(
        name="Team Registration",
        product_type="team_registration",
        base_price_cents=100000,
        requires_deposit=True,
        deposit_amount_cents=30000,
        max_quantity_per_org=3,
        total_inventory=20,
    )


@pytest.fixture(scope='function')
def make_order(db_session, org_x, event_year):
    """
    Insert an order directly (bypassing checkout).

    Units are NOT reserved; pass reserve=True to bump the products' reserved_count.
    """
    def _make(total_amount_cents=1000, *, status="pending", balance_owed_cents=None, created_at=None,
              items=(), deposit_amount_cents=0, organization=None, event_year_id=None, reserve=False):
        now = utcnow()
        order = Order(
            order_number=f"ORD-TEST-{next(_order_seq):05d}",
            organization_id=(organization or org_x).id,
            event_year_id=event_year_id or event_year.id,
            status=status,
            total_amount_cents=total_amount_cents,
            deposit_amount_cents=deposit_amount_cents,
            balance_owed_cents=total_amount_cents if balance_owed_cents is None else balance_owed_cents,
            is_sponsorship=False,
            is_manually_created=True,
            created_at=created_at or now,
            updated_at=created_at or now,
        )
        for product, quantity in items:
            order.items.append(OrderItem(
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.base_price_cents,
                line_total_cents=quantity * product.base_price_cents,
            ))
            if reserve:
                product.reserved_count += quantity
        db_session.add(order)
        db_session.commit()
        return order
    return _make


@pytest.fixture(scope='function')
def make_cart(db_session, event_year):
    """Insert a cart row directly. Units are NOT reserved."""
    def _make(organization, lines, *, expires_in_minutes=60):
        now = utcnow()
        cart = CartSession(
            organization_id=organization.id,
            event_year_id=event_year.id,
            cart_data=[{"product_id": p.id, "quantity": q} for p, q in lines],
            expires_at=now + timedelta(minutes=expires_in_minutes),
            created_at=now,
            updated_at=now,
        )
        db_session.add(cart)
        db_session.commit()
        return cart
    return _make


def bearer(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
