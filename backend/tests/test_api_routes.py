# Overview: Pytest coverage for HTTP routes (cron, payments, carts, orders, invoices, health).

from datetime import timedelta

import pytest

from sportsfest.models import Order, OrderInvoice
from sportsfest.services import inventory_service, invoice_service, order_service
from sportsfest.time_utils import utcnow

from conftest import CRON_SECRET, PAYMENT_SECRET, bearer


class TestCronRoutes:

    def test_cart_cleanup_requires_secret(self, client, db_session):
        assert client.post("/api/cron/cleanup").status_code == 401
        assert client.post("/api/cron/cleanup", headers=bearer("wrong")).status_code == 401

    def test_cart_cleanup(self, client, db_session, org_x, tent, make_cart):
        make_cart(org_x, [(tent, 1)], expires_in_minutes=-10)

        response = client.post("/api/cron/cleanup", headers=bearer(CRON_SECRET))

        assert response.status_code == 200
        assert response.json["deletedCartCount"] == 1
        assert response.json["totalUnitsReleased"] == 1

    def test_health_snapshot(self, client, db_session, org_x, org_y, tent, make_cart):
        make_cart(org_x, [(tent, 1)])
        make_cart(org_y, [(tent, 1)], expires_in_minutes=-10)

        response = client.get("/api/cron/cleanup")

        assert response.status_code == 200
        assert response.json["activeCarts"] == 1
        assert response.json["expiredCarts"] == 1

    def test_order_cleanup_defaults_to_dry_run(self, client, db_session, make_order):
        make_order(500, created_at=utcnow() - timedelta(hours=30))

        response = client.post("/api/orders/cleanup", json={}, headers=bearer(CRON_SECRET))

        assert response.status_code == 200
        assert response.json["foundOrders"] == 1
        assert response.json["deletedOrders"] == 0
        assert response.json["dryRun"] is True
        assert response.json["olderThanHours"] == 24
        assert db_session.query(Order).count() == 1

    def test_order_cleanup_execute(self, client, db_session, make_order):
        make_order(500, created_at=utcnow() - timedelta(hours=30))

        response = client.post(
            "/api/orders/cleanup",
            json={"execute": True, "olderThanHours": 24},
            headers=bearer(CRON_SECRET),
        )

        assert response.json["deletedOrders"] == 1
        assert response.json["dryRun"] is False

    def test_order_cleanup_quick(self, client, db_session, make_order):
        make_order(500, created_at=utcnow() - timedelta(hours=2))

        response = client.post("/api/orders/cleanup", json={"quick": True}, headers=bearer(CRON_SECRET))

        assert response.json["olderThanHours"] == 1
        assert response.json["foundOrders"] == 1

    def test_order_cleanup_quick_overrides_threshold(self, client, db_session, make_order):
        make_order(500, created_at=utcnow() - timedelta(hours=2))

        response = client.post(
            "/api/orders/cleanup",
            json={"quick": True, "olderThanHours": 48},
            headers=bearer(CRON_SECRET),
        )

        assert response.status_code == 200
        assert response.json["olderThanHours"] == 1
        assert response.json["foundOrders"] == 1

    def test_order_cleanup_bad_threshold(self, client, db_session):
        response = client.post(
            "/api/orders/cleanup",
            json={"olderThanHours": -1},
            headers=bearer(CRON_SECRET),
        )
        assert response.status_code == 400

    def test_order_cleanup_requires_secret(self, client, db_session):
        response = client.post("/api/orders/cleanup", json={}, headers=bearer(PAYMENT_SECRET))
        assert response.status_code == 401


class TestPaymentRoutes:

    def test_record_payment(self, client, db_session, make_order):
        order = make_order(1000)

        response = client.post(
            "/api/payments/record",
            json={"orderId": order.id, "amountCollected": 300, "isDeposit": True, "providerReference": "pi_1"},
            headers=bearer(PAYMENT_SECRET),
        )

        assert response.status_code == 200
        assert response.json["status"] == "deposit_paid"
        assert response.json["balanceOwed"] == 700

    def test_record_payment_requires_secret(self, client, db_session, make_order):
        order = make_order(1000)
        response = client.post(
            "/api/payments/record",
            json={"orderId": order.id, "amountCollected": 300, "isDeposit": True},
            headers=bearer(CRON_SECRET),
        )
        assert response.status_code == 401

    def test_overpayment_is_400(self, client, db_session, make_order):
        order = make_order(1000)

        response = client.post(
            "/api/payments/record",
            json={"orderId": order.id, "amountCollected": 5000, "isDeposit": False},
            headers=bearer(PAYMENT_SECRET),
        )

        assert response.status_code == 400
        assert response.json["code"] == "invalid_payment_amount"

    def test_payment_on_cancelled_order_is_409(self, client, db_session, make_order):
        order = make_order(1000, status="cancelled")

        response = client.post(
            "/api/payments/record",
            json={"orderId": order.id, "amountCollected": 100, "isDeposit": False},
            headers=bearer(PAYMENT_SECRET),
        )

        assert response.status_code == 409
        assert response.json["code"] == "invalid_state_transition"

    def test_redelivered_payment_is_booked_once(self, client, db_session, make_order):
        order = make_order(1000)
        body = {"orderId": order.id, "amountCollected": 300, "isDeposit": True, "providerReference": "pi_123"}

        first = client.post("/api/payments/record", json=body, headers=bearer(PAYMENT_SECRET))
        second = client.post("/api/payments/record", json=body, headers=bearer(PAYMENT_SECRET))

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json["balanceOwed"] == 700

    def test_decimal_amount_rejected(self, client, db_session, make_order):
        order = make_order(1000)

        response = client.post(
            "/api/payments/record",
            json={"orderId": order.id, "amountCollected": 12.5, "isDeposit": False},
            headers=bearer(PAYMENT_SECRET),
        )

        assert response.status_code == 400


class TestShoppingRoutes:

    def test_cart_to_order_flow(self, client, db_session, org_x, org_y, event_year, tent):
        response = client.put(
            f"/api/carts/{org_x.id}/{event_year.id}/items",
            json={"product_id": tent.id, "quantity": 2},
        )
        assert response.status_code == 200

        sold_out = client.put(
            f"/api/carts/{org_y.id}/{event_year.id}/items",
            json={"product_id": tent.id, "quantity": 1},
        )
        assert sold_out.status_code == 409
        assert sold_out.json["code"] == "sold_out"

        inventory = client.get(f"/api/inventory/products/{tent.id}")
        assert inventory.json["inventory"]["available_quantity"] == 0

        checkout = client.post(
            "/api/orders/checkout",
            json={"organization_id": org_x.id, "event_year_id": event_year.id},
        )
        assert checkout.status_code == 201
        order_id = checkout.json["order"]["id"]
        assert checkout.json["order"]["total_amount_cents"] == 50000

        cancel = client.post(f"/api/orders/{order_id}/cancel", json={"reason": "duplicate"})
        assert cancel.status_code == 200
        assert cancel.json["order"]["status"] == "cancelled"

        again = client.post(f"/api/orders/{order_id}/cancel")
        assert again.status_code == 409

        inventory = client.get(f"/api/inventory/products/{tent.id}")
        assert inventory.json["inventory"]["available_quantity"] == 2

    def test_quota_is_409(self, client, db_session, org_x, event_year, team_slot):
        response = client.put(
            f"/api/carts/{org_x.id}/{event_year.id}/items",
            json={"product_id": team_slot.id, "quantity": 4},
        )
        assert response.status_code == 409
        assert response.json["code"] == "limit_reached"

    def test_missing_order_is_404(self, client, db_session):
        assert client.get("/api/orders/99999").status_code == 404

    def test_invoice_flow(self, client, db_session, make_order):
        order = make_order(825)

        created = client.post("/api/invoices/", json={"order_id": order.id})
        assert created.status_code == 201
        invoice_id = created.json["invoice"]["id"]

        paid = client.post(f"/api/invoices/{invoice_id}/payments", json={"amount_cents": 825})
        assert paid.status_code == 200
        assert paid.json["invoice"]["status"] == "paid"
        assert paid.json["invoice"]["paid_at"].endswith("Z")

    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"

    def test_list_orders_requires_organization(self, client, db_session):
        assert client.get("/api/orders/").status_code == 400

    def test_list_orders(self, client, db_session, org_x, make_order):
        order = make_order(500)

        response = client.get(f"/api/orders/?organization_id={org_x.id}")

        assert response.status_code == 200
        assert [o["id"] for o in response.json["orders"]] == [order.id]


class TestSponsorshipRoutes:

    def create(self, client, org_x, amount=50000):
        response = client.post(
            "/api/orders/sponsorships",
            json={"organization_id": org_x.id, "base_amount_cents": amount},
        )
        assert response.status_code == 201
        return response.json

    def test_update_sponsorship(self, client, db_session, org_x, event_year):
        created = self.create(client, org_x)

        response = client.put(
            f"/api/orders/sponsorships/{created['order']['id']}",
            json={"base_amount_cents": 80000, "description": "Platinum sponsor"},
        )

        assert response.status_code == 200
        assert response.json["order"]["total_amount_cents"] == 82350
        assert response.json["invoice"]["total_amount_cents"] == 82350
        assert response.json["emails_sent"] == 2

    def test_update_requires_amount(self, client, db_session, org_x, event_year):
        created = self.create(client, org_x)

        response = client.put(f"/api/orders/sponsorships/{created['order']['id']}", json={})

        assert response.status_code == 400

    def test_delete_unpaid_sponsorship(self, client, db_session, org_x, event_year):
        created = self.create(client, org_x)

        response = client.delete(f"/api/orders/sponsorships/{created['order']['id']}")

        assert response.status_code == 200
        assert response.json["success"] is True
        assert response.json["action"] == "deleted"
        assert db_session.query(Order).count() == 0

    def test_delete_partly_paid_sponsorship(self, client, db_session, org_x, event_year):
        created = self.create(client, org_x)
        client.post(f"/api/invoices/{created['invoice']['id']}/payments", json={"amount_cents": 10000})

        response = client.delete(
            f"/api/orders/sponsorships/{created['order']['id']}",
            json={"reason": "Sponsor withdrew"},
        )

        assert response.json["action"] == "cancelled"
        db_session.expire_all()
        assert db_session.get(OrderInvoice, created["invoice"]["id"]).status == "void"

    def test_delete_fully_paid_sponsorship_is_409(self, client, db_session, org_x, event_year):
        created = self.create(client, org_x)
        client.post(
            f"/api/invoices/{created['invoice']['id']}/payments",
            json={"amount_cents": created["invoice"]["total_amount_cents"]},
        )

        response = client.delete(f"/api/orders/sponsorships/{created['order']['id']}")

        assert response.status_code == 409

    def test_missing_sponsorship_is_404(self, client, db_session):
        assert client.delete("/api/orders/sponsorships/99999").status_code == 404


class TestReadRouteFailures:

    @pytest.fixture
    def broken(self, monkeypatch):
        def _break(module, name):
            def fail(*args, **kwargs):
                raise RuntimeError("database unavailable")
            monkeypatch.setattr(module, name, fail)
        return _break

    def test_get_order(self, client, db_session, broken):
        broken(order_service, "get_order")

        response = client.get("/api/orders/1")

        assert response.status_code == 500
        assert response.json == {"error": "Internal server error"}

    def test_list_orders(self, client, db_session, org_x, broken):
        broken(order_service, "list_orders")

        response = client.get(f"/api/orders/?organization_id={org_x.id}")

        assert response.status_code == 500
        assert response.json == {"error": "Internal server error"}

    def test_get_invoice(self, client, db_session, broken):
        broken(invoice_service, "get_invoice")

        response = client.get("/api/invoices/1")

        assert response.status_code == 500
        assert response.json == {"error": "Internal server error"}

    @pytest.mark.parametrize("path, name", [
        ("/api/inventory/products/1", "get_inventory_status"),
        ("/api/inventory/products/1/integrity", "check_ledger_integrity"),
    ])
    def test_inventory_routes(self, client, db_session, broken, path, name):
        broken(inventory_service, name)

        response = client.get(path)

        assert response.status_code == 500
        assert response.json == {"error": "Internal server error"}
