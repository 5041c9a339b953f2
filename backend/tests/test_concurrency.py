"""
Concurrency tests for the order engine.

Uses a temporary file database so each worker thread gets its own
connection and the database's write lock is really contended.
"""

import sqlite3
import threading
from decimal import Decimal

import pytest

from storefront import create_app
from storefront.errors import InsufficientStockError, TransactionTimeoutError
from storefront.extensions import db
from storefront.models import Client, Order, Product, ProductVariant
from storefront.services import order_service
from storefront.validation import LineItem


WORKERS = 12
STOCK = 5


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.db'}",
        "BCRYPT_ROUNDS": 4,
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "MAIL_SERVER": None,
        # Generous lock wait so contention shows up as ordering, not timeouts
        "ORDER_TX_MAX_WAIT_MS": 30000,
        "ORDER_TX_TIMEOUT_MS": 60000,
    })
    app.extensions["storefront.notifier"].shutdown(wait=False)
    app.extensions["storefront.payment_gateway"].close()

    with app.app_context():
        db.create_all()
        product = Product(id="LIMITED-1", title="Limited Hoodie", category="Apparel", price=Decimal("49.00"))
        product.variants = [ProductVariant(size="M", quantity=STOCK)]
        db.session.add(product)
        clients = [
            Client(email=f"buyer{i}@example.com", password_hash="x", name=f"Buyer {i}")
            for i in range(WORKERS)
        ]
        db.session.add_all(clients)
        db.session.commit()
        client_ids = [c.id for c in clients]
        db.session.remove()

    yield app, client_ids

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _run_buyers(app, client_ids, quantity=1):
    outcomes = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(client_ids))

    def buy(client_id):
        with app.app_context():
            barrier.wait()
            try:
                order = order_service.place_order(
                    client_id,
                    [LineItem(product_id="LIMITED-1", size="M", quantity=quantity)],
                )
                result = ("ok", order.order_id)
            except InsufficientStockError as e:
                result = ("short", e.available)
            except Exception as e:
                result = ("error", repr(e))
            finally:
                db.session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=buy, args=(cid,)) for cid in client_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)
    return outcomes


class TestNoOversell:

    def test_exactly_stock_successes(self, file_app):
        app, client_ids = file_app
        outcomes = _run_buyers(app, client_ids)

        errors = [o for o in outcomes if o[0] == "error"]
        assert errors == []
        successes = [o for o in outcomes if o[0] == "ok"]
        shortfalls = [o for o in outcomes if o[0] == "short"]
        assert len(successes) == STOCK
        assert len(shortfalls) == WORKERS - STOCK

        with app.app_context():
            quantity = db.session.query(ProductVariant.quantity).filter_by(product_id="LIMITED-1", size="M").scalar()
            assert quantity == 0
            assert db.session.query(Order).count() == STOCK
            assert len({o[1] for o in successes}) == STOCK

    def test_multi_unit_orders_never_go_negative(self, file_app):
        app, client_ids = file_app
        # 12 buyers x 2 units against 5 in stock: at most two succeed
        outcomes = _run_buyers(app, client_ids, quantity=2)

        assert [o for o in outcomes if o[0] == "error"] == []
        assert len([o for o in outcomes if o[0] == "ok"]) == 2

        with app.app_context():
            quantity = db.session.query(ProductVariant.quantity).filter_by(product_id="LIMITED-1", size="M").scalar()
            assert quantity == 1


class TestLockTimeout:

    def test_held_write_lock_times_out_without_writing(self, file_app):
        """
        Verifies:
        - A writer blocked past ORDER_TX_MAX_WAIT_MS gets TransactionTimeoutError
        - The error is retryable
        - Neither the variant quantity nor the orders table changes
        """
        app, client_ids = file_app
        app.config["ORDER_TX_MAX_WAIT_MS"] = 200

        with app.app_context():
            holder = sqlite3.connect(db.engine.url.database, isolation_level=None)
            try:
                holder.execute("BEGIN IMMEDIATE")
                with pytest.raises(TransactionTimeoutError) as exc:
                    order_service.place_order(
                        client_ids[0],
                        [LineItem(product_id="LIMITED-1", size="M", quantity=1)],
                    )
                assert exc.value.retryable is True
                assert exc.value.status_code == 503
            finally:
                holder.execute("ROLLBACK")
                holder.close()

            db.session.remove()
            quantity = db.session.query(ProductVariant.quantity).filter_by(product_id="LIMITED-1", size="M").scalar()
            assert quantity == STOCK
            assert db.session.query(Order).count() == 0
