"""
Pay-first checkout tests.

Verifies:
- initiate_payment prices the cart server-side and opens one provider order
- Provider failures remove the local order
- confirm_payment checks the HMAC before touching anything
- Confirmation is idempotent (stock moves once per order)
- Per-line stock failures are skipped, the payment still commits
- Reserve-first orders are never decremented a second time
"""

from decimal import Decimal

import pytest

from storefront.errors import (
    NotFoundError,
    PaymentProviderError,
    SignatureMismatchError,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import Order, Product, ProductVariant
from storefront.models.orders import (
    FLOW_PAY_FIRST,
    PAYMENT_FAILED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    STATUS_CONFIRMED,
    STATUS_PENDING,
)
from storefront.services import order_service, payment_service
from storefront.services.payment_gateway import compute_signature, to_minor_units, verify_signature
from storefront.validation import LineItem


# Matches PAYMENT_KEY_SECRET in the app fixture
PAYMENT_SECRET = "test-payment-secret"


def _cart(*lines):
    return [LineItem(product_id=p, size=s, quantity=q) for p, s, q in lines]


def _initiate(shopper, gateway, cart, amount):
    return payment_service.initiate_payment(
        shopper.id,
        Decimal(amount),
        cart,
        {"line1": "1 Main St"},
        gateway=gateway,
    )


def _confirm(provider_order_id, payment_id="pay_001", signature=None):
    signature = signature or compute_signature(PAYMENT_SECRET, provider_order_id, payment_id)
    return payment_service.confirm_payment(provider_order_id, payment_id, signature, secret=PAYMENT_SECRET)


# =============================================================================
# SIGNATURES
# =============================================================================


class TestSignatures:

    def test_round_trip(self):
        sig = compute_signature("s3cret", "order_1", "pay_1")
        assert verify_signature("s3cret", "order_1", "pay_1", sig)

    def test_any_altered_byte_fails(self):
        sig = compute_signature("s3cret", "order_1", "pay_1")
        for i in range(len(sig)):
            altered = sig[:i] + ("0" if sig[i] != "0" else "1") + sig[i + 1:]
            assert not verify_signature("s3cret", "order_1", "pay_1", altered)

    def test_empty_secret_never_verifies(self):
        assert not verify_signature("", "order_1", "pay_1", compute_signature("", "order_1", "pay_1"))

    def test_minor_units(self):
        assert to_minor_units(Decimal("36.50")) == 3650
        assert to_minor_units(Decimal("0.01")) == 1


# =============================================================================
# INITIATE
# =============================================================================


class TestInitiatePayment:

    def test_creates_pending_order_and_provider_order(self, app, catalog, shopper, gateway, stock):
        order, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 2), ("SOCK-1", "OS", 3)), "36.50")

        assert provider_order.id == "order_test_1"
        assert gateway.calls[0]["amount"] == 3650
        assert gateway.calls[0]["receipt"] == order.order_id
        assert order.total_amount == Decimal("36.50")
        assert order.fulfillment_flow == FLOW_PAY_FIRST
        assert order.stock_applied is False
        assert order.payment_status == PAYMENT_PENDING
        assert order.status == STATUS_PENDING
        assert order.provider_order_id == "order_test_1"
        assert order.shipping_address == {"line1": "1 Main St"}
        # No stock moves until payment is confirmed
        assert stock("TEE-1", "M") == 5
        assert stock("SOCK-1", "OS") == 10

    def test_amount_must_match_cart(self, app, catalog, shopper, gateway):
        with pytest.raises(ValidationError) as exc:
            _initiate(shopper, gateway, _cart(("TEE-1", "M", 2)), "1.00")

        assert exc.value.details["expected"] == "20.00"
        assert gateway.calls == []
        assert db.session.query(Order).count() == 0

    def test_unknown_product(self, app, catalog, shopper, gateway):
        with pytest.raises(NotFoundError):
            _initiate(shopper, gateway, _cart(("NOPE", None, 1)), "1.00")

    def test_provider_failure_removes_local_order(self, app, catalog, shopper, gateway):
        gateway.fail = True
        with pytest.raises(PaymentProviderError) as exc:
            _initiate(shopper, gateway, _cart(("TEE-1", "M", 1)), "10.00")

        assert exc.value.retryable is True
        assert db.session.query(Order).count() == 0


# =============================================================================
# CONFIRM
# =============================================================================


class TestConfirmPayment:

    def test_marks_paid_and_decrements_once(self, app, catalog, shopper, gateway, stock):
        order, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 2), ("SOCK-1", "OS", 3)), "36.50")

        confirmed = _confirm(provider_order.id)

        assert confirmed.order_id == order.order_id
        assert confirmed.payment_status == PAYMENT_PAID
        assert confirmed.status == STATUS_CONFIRMED
        assert confirmed.provider_payment_id == "pay_001"
        assert confirmed.paid_at is not None
        assert confirmed.stock_applied is True
        assert stock("TEE-1", "M") == 3
        assert stock("SOCK-1", "OS") == 7

    def test_duplicate_confirmation_is_noop(self, app, catalog, shopper, gateway, stock):
        _, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 2)), "20.00")

        first = _confirm(provider_order.id)
        second = _confirm(provider_order.id)

        assert first.order_id == second.order_id
        assert second.payment_status == PAYMENT_PAID
        assert stock("TEE-1", "M") == 3

    def test_signature_mismatch_changes_nothing(self, app, catalog, shopper, gateway, stock):
        order, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 1)), "10.00")
        good = compute_signature(PAYMENT_SECRET, provider_order.id, "pay_001")
        bad = ("f" if good[0] != "f" else "e") + good[1:]

        with pytest.raises(SignatureMismatchError) as exc:
            _confirm(provider_order.id, signature=bad)

        assert exc.value.status_code == 400
        db.session.expire_all()
        stored = db.session.get(Order, order.id)
        assert stored.payment_status == PAYMENT_PENDING
        assert stored.provider_payment_id is None
        assert stock("TEE-1", "M") == 5

    def test_missing_fields(self, app):
        with pytest.raises(ValidationError):
            payment_service.confirm_payment("", "pay_1", "sig", secret=PAYMENT_SECRET)

    def test_unknown_provider_order(self, app):
        with pytest.raises(NotFoundError):
            _confirm("order_does_not_exist")

    def test_vanished_variant_is_skipped(self, app, catalog, shopper, gateway, stock):
        _, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "L", 1), ("SOCK-1", "OS", 2)), "21.00")
        db.session.query(ProductVariant).filter_by(product_id="TEE-1", size="L").delete()
        db.session.commit()

        confirmed = _confirm(provider_order.id)

        assert confirmed.payment_status == PAYMENT_PAID
        assert stock("SOCK-1", "OS") == 8

    def test_short_variant_is_skipped_not_negative(self, app, catalog, shopper, gateway, stock):
        _, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "L", 2)), "20.00")
        variant = db.session.query(ProductVariant).filter_by(product_id="TEE-1", size="L").one()
        variant.quantity = 1
        db.session.commit()

        confirmed = _confirm(provider_order.id)

        assert confirmed.payment_status == PAYMENT_PAID
        assert stock("TEE-1", "L") == 1

    def test_product_level_stock_floors_at_zero(self, app, catalog, shopper, gateway):
        _, provider_order = _initiate(shopper, gateway, _cart(("MUG-1", None, 6)), "72.00")

        _confirm(provider_order.id)

        db.session.expire_all()
        assert db.session.get(Product, "MUG-1").other_details["stock"] == 0

    def test_reserve_first_order_not_decremented_again(self, app, catalog, shopper, stock):
        order = order_service.place_order(shopper.id, _cart(("TEE-1", "M", 2)))
        assert stock("TEE-1", "M") == 3

        # Link a provider order the way a later online payment would
        order = db.session.get(Order, order.id)
        order_service.set_payment_fields(order, payment_status=PAYMENT_PENDING, provider_order_id="order_reserve_1")
        db.session.commit()

        confirmed = _confirm("order_reserve_1")

        assert confirmed.payment_status == PAYMENT_PAID
        assert stock("TEE-1", "M") == 3


class TestMarkPaymentFailed:

    def test_marks_failed_without_stock_change(self, app, catalog, shopper, gateway, stock):
        _, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 1)), "10.00")

        order = payment_service.mark_payment_failed(provider_order.id, client_id=shopper.id)

        assert order.payment_status == PAYMENT_FAILED
        assert stock("TEE-1", "M") == 5

    def test_other_clients_order_is_not_found(self, app, catalog, shopper, other_shopper, gateway):
        _, provider_order = _initiate(shopper, gateway, _cart(("TEE-1", "M", 1)), "10.00")

        with pytest.raises(NotFoundError):
            payment_service.mark_payment_failed(provider_order.id, client_id=other_shopper.id)
