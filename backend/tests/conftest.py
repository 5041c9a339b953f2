"""
Pytest fixtures for storefront backend tests.

Provides a fresh in-memory database per test, seeded catalog and accounts,
and fake collaborators (payment gateway, notifier) in place of the real ones.
"""

from decimal import Decimal

import pytest

from storefront import create_app
from storefront.errors import PaymentProviderError
from storefront.extensions import db
from storefront.models import Admin, Client, Product, ProductVariant
from storefront.services.auth_service import hash_password
from storefront.services.payment_gateway import ProviderOrder
from storefront.services.session_service import SUBJECT_ADMIN, SUBJECT_CLIENT


PAYMENT_SECRET = "test-payment-secret"
CLIENT_PASSWORD = "Password123"


class RecordingNotifier:
    """Synchronous stand-in for the notification dispatcher."""

    def __init__(self):
        self.events = []
        self.fail = False

    def notify(self, kind, payload):
        if self.fail:
            raise RuntimeError("mail relay down")
        self.events.append((kind, payload))

    def submit(self, func, *args, **kwargs):
        return func(*args, **kwargs)

    def kinds(self):
        return [kind for kind, _ in self.events]


class FakeGateway:
    """Payment provider double; set `fail` to simulate an outage."""

    currency = "INR"

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_provider_order(self, amount_minor_units, currency, receipt_id, notes=None):
        self.calls.append({
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt_id,
            "notes": notes,
        })
        if self.fail:
            raise PaymentProviderError("Payment provider unreachable")
        return ProviderOrder(
            id=f"order_test_{len(self.calls)}",
            amount=amount_minor_units,
            currency=currency,
            receipt=receipt_id,
        )


def _replace_collaborators(app, notifier, gateway):
    app.extensions["storefront.notifier"].shutdown(wait=False)
    app.extensions["storefront.payment_gateway"].close()
    app.extensions["storefront.notifier"] = notifier
    app.extensions["storefront.payment_gateway"] = gateway


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, notifier, gateway):
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "BCRYPT_ROUNDS": 4,
        "PAYMENT_KEY_ID": "rzp_test_key",
        "PAYMENT_KEY_SECRET": PAYMENT_SECRET,
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "MEDIA_BASE_URL": "http://testserver/media",
        "MAIL_SERVER": None,
    })
    _replace_collaborators(app, notifier, gateway)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def catalog(app):
    """
    Seed products:
    - TEE-1  10.00, sizes M (5) and L (2)
    - SOCK-1  5.50, size OS (10)
    - MUG-1  12.00, no sizes, product-level stock 4
    """
    tee = Product(id="TEE-1", title="Basic Tee", category="Apparel", price=Decimal("10.00"))
    tee.variants = [ProductVariant(size="M", quantity=5), ProductVariant(size="L", quantity=2)]
    sock = Product(id="SOCK-1", title="Wool Socks", category="Apparel", price=Decimal("5.50"))
    sock.variants = [ProductVariant(size="OS", quantity=10)]
    mug = Product(
        id="MUG-1",
        title="Enamel Mug",
        category="Kitchen",
        price=Decimal("12.00"),
        other_details={"stock": 4},
    )
    db.session.add_all([tee, sock, mug])
    db.session.commit()
    return {"tee": tee.id, "sock": sock.id, "mug": mug.id}


@pytest.fixture
def shopper(app):
    shopper = Client(
        email="shopper@example.com",
        password_hash=hash_password(CLIENT_PASSWORD),
        name="Sam Shopper",
        phone_number="5550100",
    )
    db.session.add(shopper)
    db.session.commit()
    return shopper


@pytest.fixture
def other_shopper(app):
    other = Client(
        email="other@example.com",
        password_hash=hash_password(CLIENT_PASSWORD),
        name="Olive Other",
    )
    db.session.add(other)
    db.session.commit()
    return other


@pytest.fixture
def admin_user(app):
    admin = Admin(
        username="admin",
        email="admin@example.com",
        name="Ada Admin",
        password_hash=hash_password(CLIENT_PASSWORD),
        super_admin=False,
    )
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def super_admin(app):
    admin = Admin(
        username="root",
        email="root@example.com",
        name="Rita Root",
        password_hash=hash_password(CLIENT_PASSWORD),
        super_admin=True,
    )
    db.session.add(admin)
    db.session.commit()
    return admin


def _headers(app, subject_type, subject_id):
    token = app.extensions["storefront.identity"].issue(subject_type, subject_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def shopper_headers(app, shopper):
    return _headers(app, SUBJECT_CLIENT, shopper.id)


@pytest.fixture
def other_shopper_headers(app, other_shopper):
    return _headers(app, SUBJECT_CLIENT, other_shopper.id)


@pytest.fixture
def admin_headers(app, admin_user):
    return _headers(app, SUBJECT_ADMIN, admin_user.id)


@pytest.fixture
def super_admin_headers(app, super_admin):
    return _headers(app, SUBJECT_ADMIN, super_admin.id)


@pytest.fixture
def stock(app):
    """Current ledger quantity for (product_id, size), bypassing the identity map."""
    def _stock(product_id, size):
        db.session.expire_all()
        return (
            db.session.query(ProductVariant.quantity)
            .filter_by(product_id=product_id, size=size)
            .scalar()
        )
    return _stock
