from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_READY_TO_DISPATCH = "Ready to dispatch"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"

ORDER_STATUSES = [
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_READY_TO_DISPATCH,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
]

# Confirmed is reserved for payment confirmation
ADMIN_SETTABLE_STATUSES = [
    STATUS_PENDING,
    STATUS_READY_TO_DISPATCH,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
]

PAYMENT_PENDING = "Pending"
PAYMENT_PAID = "Paid"
PAYMENT_FAILED = "Failed"

PAYMENT_STATUSES = [PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED]

# Which path owns the stock decrement for an order
FLOW_RESERVE_FIRST = "RESERVE_FIRST"
FLOW_PAY_FIRST = "PAY_FIRST"


class Order(db.Model):
    """
    Committed order: an immutable snapshot of what was bought at what price.

    SNAPSHOT DESIGN DECISION:
    products holds an ordered list of line items copied by value
    (product_id, variant_id, size, title, quantity, price). They are never
    re-derived from the catalog, so repricing or deleting a product leaves
    historical orders intact. Contact fields are copied from the client the
    same way.

    After creation only status, payment fields, stock_applied and the
    contact/shipping fields change, each through its own service function.

    stock_applied records whether the Stock Ledger has been decremented for
    this order. Exactly one of place_order (reserve-first) or
    confirm_payment (pay-first) flips it, so stock moves once per order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_client_created", "client_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code (e.g., "ORD-3F9A1C2B")
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    # Contact snapshot
    first_name = db.Column(db.String(255), nullable=False, default="N/A")
    last_name = db.Column(db.String(255), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(32), nullable=False, default="N/A")
    shipping_address = db.Column(db.JSON, nullable=True)

    products = db.Column(db.JSON, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(32), nullable=False, default=STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)

    fulfillment_flow = db.Column(db.String(16), nullable=False, default=FLOW_RESERVE_FIRST)
    stock_applied = db.Column(db.Boolean, nullable=False, default=False)

    # Payment provider correlation
    provider_order_id = db.Column(db.String(128), nullable=True, unique=True, index=True)
    provider_payment_id = db.Column(db.String(128), nullable=True)
    provider_signature = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client", back_populates="orders")

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_id={self.order_id!r} status={self.status!r} payment={self.payment_status!r}>"

    @property
    def line_total(self) -> Decimal:
        """Sum of quantity * price over the snapshot (should equal total_amount)."""
        total = Decimal("0")
        for item in self.products or []:
            total += Decimal(str(item["price"])) * int(item["quantity"])
        return total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "shipping_address": self.shipping_address,
            "products": list(self.products or []),
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "fulfillment_flow": self.fulfillment_flow,
            "stock_applied": self.stock_applied,
            "provider_order_id": self.provider_order_id,
            "provider_payment_id": self.provider_payment_id,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
