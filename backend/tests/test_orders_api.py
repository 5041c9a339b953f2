"""
HTTP tests for order and payment endpoints.

Verifies status codes and the JSON error shape at the route layer; the
business rules themselves are covered by the service tests.
"""

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import Order, RequestEvent
from storefront.services.order_throttle_service import EVENT_ORDER_ATTEMPT
from storefront.services.payment_gateway import compute_signature
from storefront.time_utils import utcnow


CART = {"products": [
    {"productId": "TEE-1", "size": "M", "quantity": 2},
    {"productId": "SOCK-1", "size": "OS", "quantity": 3},
]}


# =============================================================================
# AUTHENTICATION (401 / 403)
# =============================================================================


class TestOrderAccess:

    @pytest.mark.parametrize("method,path", [
        ("POST", "/api/orders"),
        ("GET", "/api/orders"),
        ("GET", "/api/orders/completed"),
        ("GET", "/api/orders/mine"),
        ("PUT", "/api/orders/ORD-1/status"),
        ("PUT", "/api/orders/ORD-1"),
        ("POST", "/api/payments/orders"),
    ])
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_invalid_token(self, client):
        resp = client.get("/api/orders/mine", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_client_cannot_list_all_orders(self, client, shopper_headers):
        resp = client.get("/api/orders", headers=shopper_headers)
        assert resp.status_code == 403

    def test_admin_cannot_place_order(self, client, catalog, admin_headers):
        resp = client.post("/api/orders", json=CART, headers=admin_headers)
        assert resp.status_code == 403


# =============================================================================
# PLACE ORDER
# =============================================================================


class TestPlaceOrderRoute:

    def test_created(self, client, catalog, shopper_headers, admin_user, notifier):
        resp = client.post("/api/orders", json=CART, headers=shopper_headers)

        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["total_amount"] == "36.50"
        assert order["status"] == "Pending"
        assert [p["price"] for p in order["products"]] == ["10.00", "5.50"]
        assert notifier.kinds() == ["order.created"]

    def test_validation_error(self, client, catalog, shopper_headers):
        resp = client.post("/api/orders", json={"products": []}, headers=shopper_headers)

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["retryable"] is False

    def test_insufficient_stock(self, client, catalog, shopper_headers):
        resp = client.post(
            "/api/orders",
            json={"products": [{"productId": "TEE-1", "size": "L", "quantity": 3}]},
            headers=shopper_headers,
        )

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["shortfall"] == 1

    def test_unknown_variant(self, client, catalog, shopper_headers):
        resp = client.post(
            "/api/orders",
            json={"products": [{"productId": "TEE-1", "size": "XS", "quantity": 1}]},
            headers=shopper_headers,
        )

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "UNKNOWN_VARIANT"
        assert body["details"] == {"productId": "TEE-1", "size": "XS"}

    def test_deleted_client_profile_is_404(self, client, catalog, shopper, shopper_headers):
        db.session.delete(shopper)
        db.session.commit()

        resp = client.post("/api/orders", json=CART, headers=shopper_headers)

        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Client profile not found."

    def test_mine_lists_only_own_orders(self, client, catalog, shopper_headers, other_shopper_headers):
        client.post("/api/orders", json=CART, headers=shopper_headers)
        client.post("/api/orders", json=CART, headers=other_shopper_headers)

        resp = client.get("/api/orders/mine", headers=shopper_headers)

        assert resp.status_code == 200
        assert len(resp.get_json()) == 1


# =============================================================================
# RATE LIMIT
# =============================================================================


class TestOrderRateLimit:
    """
    Verifies:
    - Attempts over ORDER_RATE_LIMIT inside the window get 429
    - Every attempt counts, including rejected ones
    - The limit is per client IP
    - Attempts older than the window no longer count
    """

    ONE_TEE = {"products": [{"productId": "TEE-1", "size": "M", "quantity": 1}]}

    def test_limit_per_ip(self, app, client, catalog, shopper_headers, stock):
        app.config["ORDER_RATE_LIMIT"] = 2

        first = client.post("/api/orders", json=self.ONE_TEE, headers=shopper_headers)
        rejected = client.post("/api/orders", json={"products": []}, headers=shopper_headers)
        limited = client.post("/api/orders", json=self.ONE_TEE, headers=shopper_headers)

        assert first.status_code == 201
        assert rejected.status_code == 400
        assert limited.status_code == 429
        body = limited.get_json()
        assert body["code"] == "RATE_LIMITED"
        assert body["retryable"] is True
        assert 0 < body["details"]["retry_after_seconds"] <= app.config["ORDER_RATE_WINDOW_SECONDS"]
        assert stock("TEE-1", "M") == 4
        assert db.session.query(Order).count() == 1

        elsewhere = client.post(
            "/api/orders",
            json=self.ONE_TEE,
            headers=shopper_headers,
            environ_base={"REMOTE_ADDR": "10.0.0.2"},
        )
        assert elsewhere.status_code == 201

    def test_old_attempts_expire(self, app, client, catalog, shopper_headers):
        app.config["ORDER_RATE_LIMIT"] = 1
        db.session.add(RequestEvent(
            event_type=EVENT_ORDER_ATTEMPT,
            ip_address="127.0.0.1",
            occurred_at=utcnow() - timedelta(seconds=app.config["ORDER_RATE_WINDOW_SECONDS"] + 60),
        ))
        db.session.commit()

        resp = client.post("/api/orders", json=self.ONE_TEE, headers=shopper_headers)

        assert resp.status_code == 201


# =============================================================================
# ADMIN ORDER MANAGEMENT
# =============================================================================


class TestAdminOrderRoutes:

    def _place(self, client, headers):
        return client.post("/api/orders", json=CART, headers=headers).get_json()["order"]["order_id"]

    def test_list_orders(self, client, catalog, shopper_headers, admin_headers):
        self._place(client, shopper_headers)
        resp = client.get("/api/orders", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.get_json()) == 1

    def test_status_update_and_completed_list(self, client, catalog, shopper_headers, admin_headers):
        order_id = self._place(client, shopper_headers)

        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "Completed"}, headers=admin_headers)
        assert resp.status_code == 200

        completed = client.get("/api/orders/completed", headers=admin_headers).get_json()
        assert [o["order_id"] for o in completed] == [order_id]

    def test_shipped_is_rejected(self, client, catalog, shopper_headers, admin_headers):
        order_id = self._place(client, shopper_headers)

        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "Shipped"}, headers=admin_headers)

        assert resp.status_code == 400
        order = client.get(f"/api/orders/{order_id}", headers=admin_headers).get_json()["order"]
        assert order["status"] == "Pending"

    def test_status_unknown_order(self, client, admin_headers):
        resp = client.put("/api/orders/ORD-NOPE/status", json={"status": "Completed"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_details_update_rejects_total(self, client, catalog, shopper_headers, admin_headers):
        order_id = self._place(client, shopper_headers)

        resp = client.put(f"/api/orders/{order_id}", json={"totalAmount": "0.01"}, headers=admin_headers)

        assert resp.status_code == 400
        order = client.get(f"/api/orders/{order_id}", headers=admin_headers).get_json()["order"]
        assert order["total_amount"] == "36.50"

    def test_details_update(self, client, catalog, shopper_headers, admin_headers):
        order_id = self._place(client, shopper_headers)

        resp = client.put(f"/api/orders/{order_id}", json={"phoneNumber": "5550199"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["order"]["phone_number"] == "5550199"


# =============================================================================
# PAYMENTS
# =============================================================================


class TestPaymentRoutes:

    def test_full_pay_first_flow(self, app, client, catalog, shopper_headers, stock):
        resp = client.post("/api/payments/orders", json={
            "amount": "36.50",
            "cartItems": [
                {"productId": "TEE-1", "variantSize": "M", "quantity": 2},
                {"productId": "SOCK-1", "size": "OS", "quantity": 3},
            ],
            "shippingAddress": {"line1": "1 Main St"},
        }, headers=shopper_headers)

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["amount"] == 3650
        assert body["currency"] == "INR"
        assert body["keyId"] == "rzp_test_key"
        provider_order_id = body["id"]

        signature = compute_signature(app.config["PAYMENT_KEY_SECRET"], provider_order_id, "pay_123")
        verify = {
            "razorpay_order_id": provider_order_id,
            "razorpay_payment_id": "pay_123",
            "razorpay_signature": signature,
        }
        first = client.post("/api/payments/verify", json=verify)
        second = client.post("/api/payments/verify", json=verify)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.get_json()["order"]["payment_status"] == "Paid"
        assert stock("TEE-1", "M") == 3
        assert stock("SOCK-1", "OS") == 7

    def test_amount_mismatch(self, client, catalog, shopper_headers):
        resp = client.post("/api/payments/orders", json={
            "amount": "5.00",
            "cartItems": [{"productId": "TEE-1", "size": "M", "quantity": 1}],
        }, headers=shopper_headers)
        assert resp.status_code == 400

    def test_provider_outage_is_502(self, client, catalog, shopper_headers, gateway):
        gateway.fail = True
        resp = client.post("/api/payments/orders", json={
            "amount": "10.00",
            "cartItems": [{"productId": "TEE-1", "size": "M", "quantity": 1}],
        }, headers=shopper_headers)

        assert resp.status_code == 502
        assert resp.get_json()["retryable"] is True

    def test_bad_signature_is_400(self, client, catalog, shopper_headers):
        created = client.post("/api/payments/orders", json={
            "amount": "10.00",
            "cartItems": [{"productId": "TEE-1", "size": "M", "quantity": 1}],
        }, headers=shopper_headers).get_json()

        resp = client.post("/api/payments/verify", json={
            "razorpay_order_id": created["id"],
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "0" * 64,
        })

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "SIGNATURE_MISMATCH"

    def test_verify_unknown_order_is_404(self, app, client):
        signature = compute_signature(app.config["PAYMENT_KEY_SECRET"], "order_x", "pay_x")
        resp = client.post("/api/payments/verify", json={
            "order_id": "order_x",
            "payment_id": "pay_x",
            "signature": signature,
        })
        assert resp.status_code == 404

    def test_payment_failed(self, client, catalog, shopper_headers):
        created = client.post("/api/payments/orders", json={
            "amount": "10.00",
            "cartItems": [{"productId": "TEE-1", "size": "M", "quantity": 1}],
        }, headers=shopper_headers).get_json()

        resp = client.post("/api/payments/failed", json={"order_id": created["id"]}, headers=shopper_headers)

        assert resp.status_code == 200
        assert resp.get_json()["order"]["payment_status"] == "Failed"
