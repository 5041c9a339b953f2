"""
System endpoint and CLI tests.
"""

import pytest

from storefront.extensions import db
from storefront.models import Admin
from storefront.services import order_service
from storefront.validation import LineItem


class TestHealth:

    def test_health_reports_database(self, client, catalog):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["products"] == 3
        assert body["checks"]["database"]["details"]["dialect"] == "sqlite"

    def test_missing_media_is_404(self, client):
        assert client.get("/media/nothing-here.png").status_code == 404

    def test_media_path_traversal_is_404(self, client):
        assert client.get("/media/../config.py").status_code == 404


class TestCors:

    def test_allowed_origin_is_echoed(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "Authorization" in resp.headers["Access-Control-Allow-Headers"]

    def test_unknown_origin_gets_no_header(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestCli:

    SUPERADMIN_ENV = {
        "SUPERADMIN_USERNAME": "owner",
        "SUPERADMIN_EMAIL": "Owner@Example.com",
        "SUPERADMIN_NAME": "Store Owner",
        "SUPERADMIN_PASSWORD": "Password123",
    }

    def test_seed_superadmin_is_idempotent(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "seed-superadmin"], env=self.SUPERADMIN_ENV)
        second = runner.invoke(args=["system", "seed-superadmin"], env=self.SUPERADMIN_ENV)

        assert first.exit_code == 0, first.output
        assert "Created super admin owner" in first.output
        assert "SKIP" in second.output
        admin = db.session.query(Admin).one()
        assert admin.super_admin is True
        assert admin.email == "owner@example.com"

    def test_seed_superadmin_requires_env(self, app, monkeypatch):
        for name in self.SUPERADMIN_ENV:
            monkeypatch.delenv(name, raising=False)

        result = app.test_cli_runner().invoke(args=["system", "seed-superadmin"])

        assert result.exit_code != 0
        assert "must be set" in result.output

    @pytest.mark.parametrize("args", [["orders", "list"], ["orders", "list", "--status", "Completed"]])
    def test_orders_list_empty(self, app, args):
        result = app.test_cli_runner().invoke(args=args)
        assert result.exit_code == 0
        assert "No orders found" in result.output

    def test_orders_list(self, app, catalog, shopper):
        order = order_service.place_order(shopper.id, [LineItem(product_id="TEE-1", size="M", quantity=1)])

        result = app.test_cli_runner().invoke(args=["orders", "list"])

        assert order.order_id in result.output
        assert "RESERVE_FIRST" in result.output
