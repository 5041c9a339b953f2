"""
Order Service - reserve-first order placement and the order record store

WHY: Converting a cart into an order is the one place where concurrent
requests compete for the same stock. Validation, decrement, pricing and the
order insert run as a single ledger transaction, so a cart is committed
whole or not at all and two buyers can never both take the last unit.

DESIGN PRINCIPLES:
- All-or-nothing: any unknown variant or shortfall rolls the whole cart back
- Compare-and-set decrement: UPDATE ... WHERE quantity >= requested
- Decimal money end to end; the stored total equals the snapshot sum
- Orders are snapshots: line items copied by value, never re-derived
- Notifications are published after commit and never affect the outcome
"""

from __future__ import annotations

import secrets
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Admin, Client, Order, ProductVariant
from ..models.orders import (
    ADMIN_SETTABLE_STATUSES,
    FLOW_RESERVE_FIRST,
    PAYMENT_PENDING,
    STATUS_COMPLETED,
    STATUS_PENDING,
)
from ..validation import LineItem, merge_line_items
from .concurrency import ledger_transaction, lock_for_update
from .notification_service import KIND_ORDER_CREATED, Notifier, publish
from .variant_resolver import ResolvedLine, resolve_line_items


# Contact and delivery fields an admin may correct after creation.
# Everything else on an order is a snapshot or belongs to a dedicated operation.
EDITABLE_ORDER_FIELDS = {
    "first_name": "first_name",
    "firstName": "first_name",
    "last_name": "last_name",
    "lastName": "last_name",
    "email": "email",
    "phone_number": "phone_number",
    "phoneNumber": "phone_number",
    "shipping_address": "shipping_address",
    "shippingAddress": "shipping_address",
}

PROTECTED_ORDER_FIELDS = {
    "id", "order_id", "orderId", "client_id", "clientId",
    "products", "total_amount", "totalAmount",
    "status", "payment_status", "paymentStatus",
    "fulfillment_flow", "stock_applied",
    "provider_order_id", "provider_payment_id", "provider_signature",
    "razorpayOrderId", "razorpayPaymentId", "razorpaySignature",
    "paid_at", "created_at", "updated_at",
}


def generate_order_code() -> str:
    """Short display code. Uniqueness is enforced by the orders.order_id index."""
    return f"ORD-{secrets.token_hex(4).upper()}"


def _check_stock(resolved: list[ResolvedLine]) -> None:
    for line in resolved:
        if line.available < line.quantity:
            raise InsufficientStockError(
                variant_id=line.variant_id,
                requested=line.quantity,
                available=line.available,
                label=line.label,
            )


def decrement_variant(variant_id: int, quantity: int) -> bool:
    """
    Compare-and-set stock decrement.

    Returns False when the row is gone or holds less than `quantity`; the
    ledger is untouched in that case.
    """
    result = db.session.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.quantity >= quantity)
        .values(quantity=ProductVariant.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _apply_decrement(line: ResolvedLine) -> None:
    if decrement_variant(line.variant_id, line.quantity):
        return
    available = (
        db.session.query(ProductVariant.quantity)
        .filter(ProductVariant.id == line.variant_id)
        .scalar()
    )
    raise InsufficientStockError(
        variant_id=line.variant_id,
        requested=line.quantity,
        available=available or 0,
        label=line.label,
    )


def snapshot_contact(client: Client) -> dict:
    return {
        "first_name": client.name or "N/A",
        "last_name": "",
        "email": client.email,
        "phone_number": client.phone_number or "N/A",
    }


def admin_notification_recipients() -> list[str]:
    return [row[0] for row in db.session.query(Admin.email).order_by(Admin.id).all() if row[0]]


def _notify_order_created(notifier: Notifier | None, order: Order, client_name: str) -> None:
    if notifier is None:
        return
    try:
        recipients = admin_notification_recipients()
    except Exception:
        current_app.logger.exception("Failed to load admin recipients for order %s", order.order_id)
        return
    if not recipients:
        current_app.logger.warning("No admin recipients for order %s notification", order.order_id)
        return
    publish(notifier, KIND_ORDER_CREATED, {
        "recipients": recipients,
        "order_id": order.order_id,
        "customer_name": client_name,
        "total_amount": str(order.total_amount),
    })


def place_order(client_id: int, line_items: list[LineItem], *, notifier: Notifier | None = None) -> Order:
    """
    Convert a validated cart into a committed order (reserve-first flow).

    Steps, inside one ledger transaction:
    1. Resolve all lines to variant rows (single locked lookup)
    2. Verify every line is covered by current stock
    3. Compare-and-set decrement each variant
    4. Total = sum(price * quantity) in Decimal
    5. Insert the Order with its line-item snapshot

    Raises:
        ValidationError: empty cart
        NotFoundError: client profile missing
        UnknownVariantError: any (productId, size) missing (HTTP 400)
        InsufficientStockError: first uncovered line; nothing is decremented
        TransactionTimeoutError / SerializationFailureError: retryable, nothing written
        ConflictError: order code collision
    """
    if not line_items:
        raise ValidationError("A non-empty products array is required.")

    items = merge_line_items(line_items)

    with ledger_transaction() as deadline:
        client = db.session.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client profile not found.", details={"client_id": client_id})

        resolved = resolve_line_items(items, lock=True)
        deadline.check("resolve")

        _check_stock(resolved)

        total = Decimal("0.00")
        snapshot = []
        for line in resolved:
            _apply_decrement(line)
            total += line.line_total
            snapshot.append(line.snapshot())
        deadline.check("decrement")

        order = Order(
            order_id=generate_order_code(),
            client_id=client.id,
            products=snapshot,
            total_amount=total.quantize(Decimal("0.01")),
            status=STATUS_PENDING,
            payment_status=PAYMENT_PENDING,
            fulfillment_flow=FLOW_RESERVE_FIRST,
            stock_applied=True,
            **snapshot_contact(client),
        )
        db.session.add(order)
        db.session.flush()
        client_name = (client.name or client.email).strip()

    current_app.logger.info(
        "Order %s placed by client %s: %d line(s), total %s",
        order.order_id, client_id, len(snapshot), order.total_amount,
    )
    _notify_order_created(notifier, order, client_name)
    return order


# =============================================================================
# ORDER RECORD STORE
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.query(Order).filter_by(order_id=order_id).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found.", details={"order_id": order_id})
    return order


def list_orders(status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_completed_orders() -> list[Order]:
    return list_orders(status=STATUS_COMPLETED)


def list_client_orders(client_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.client_id == client_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def set_status(order_id: str, status: str) -> Order:
    """Admin status change, restricted to the admin-settable statuses."""
    if status not in ADMIN_SETTABLE_STATUSES:
        raise ValidationError(
            "Invalid status update.",
            details={"status": status, "allowed": list(ADMIN_SETTABLE_STATUSES)},
        )

    order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
    if order is None:
        db.session.rollback()
        raise NotFoundError(f"Order {order_id} not found.", details={"order_id": order_id})

    order.status = status
    db.session.commit()
    return order


def set_payment_fields(
    order: Order,
    *,
    payment_status: str,
    status: str | None = None,
    provider_order_id: str | None = None,
    provider_payment_id: str | None = None,
    provider_signature: str | None = None,
    paid_at=None,
) -> Order:
    """
    Write payment correlation fields. Caller owns the transaction.

    Only the payment handler calls this; admin endpoints cannot reach these columns.
    """
    order.payment_status = payment_status
    if status is not None:
        order.status = status
    if provider_order_id is not None:
        order.provider_order_id = provider_order_id
    if provider_payment_id is not None:
        order.provider_payment_id = provider_payment_id
    if provider_signature is not None:
        order.provider_signature = provider_signature
    if paid_at is not None:
        order.paid_at = paid_at
    return order


def update_order_details(order_id: str, data: dict) -> Order:
    """
    Correct contact/shipping details on an order.

    Snapshot, money, status and payment fields are rejected outright; they
    are only ever written by place_order, set_status and the payment handler.
    """
    if not isinstance(data, dict) or not data:
        raise ValidationError("Request body must be a non-empty object")

    protected = sorted(k for k in data if k in PROTECTED_ORDER_FIELDS)
    if protected:
        raise ValidationError(
            f"Field(s) cannot be changed through order details: {', '.join(protected)}",
            details={"fields": protected},
        )
    unknown = sorted(k for k in data if k not in EDITABLE_ORDER_FIELDS)
    if unknown:
        raise ValidationError(
            f"Unknown order field(s): {', '.join(unknown)}",
            details={"fields": unknown, "allowed": sorted(set(EDITABLE_ORDER_FIELDS.values()))},
        )

    updates = {}
    for key, value in data.items():
        column = EDITABLE_ORDER_FIELDS[key]
        if column == "shipping_address":
            if value is not None and not isinstance(value, (dict, str)):
                raise ValidationError("shipping_address must be an object or string")
        elif not isinstance(value, str) or (column in {"first_name", "email"} and not value.strip()):
            raise ValidationError(f"{column} must be a non-empty string")
        updates[column] = value.strip() if isinstance(value, str) else value

    order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
    if order is None:
        db.session.rollback()
        raise NotFoundError(f"Order {order_id} not found.", details={"order_id": order_id})

    for column, value in updates.items():
        setattr(order, column, value)
    db.session.commit()
    return order
