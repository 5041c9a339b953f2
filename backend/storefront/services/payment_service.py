# Overview: Pay-first checkout; provider order creation and payment confirmation.

"""
Payment Reconciliation Service

WHY: The pay-first flow records an order before any stock moves, opens a
provider order, and only touches inventory once the provider confirms
payment through a signed callback.

DESIGN PRINCIPLES:
- One decrement per order: Order.stock_applied is set by whichever flow
  moved the stock, and confirm_payment only decrements when it is unset
- Idempotent confirmation: a repeated callback for a Paid order is a no-op
- Signature first: nothing is read or written until the HMAC matches
- Payment truth wins: per-line stock failures are logged and skipped, the
  confirmation itself still commits (money has already moved)
- Compensation: a provider failure deletes the locally created order
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    ConflictError,
    NotFoundError,
    PaymentProviderError,
    SignatureMismatchError,
    ValidationError,
)
from ..extensions import db
from ..models import Client, Order, Product, ProductVariant
from ..models.orders import (
    FLOW_PAY_FIRST,
    PAYMENT_FAILED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    STATUS_CONFIRMED,
    STATUS_PENDING,
)
from ..time_utils import utcnow
from ..validation import LineItem, merge_line_items
from .concurrency import ledger_transaction, lock_for_update, run_with_retry
from .order_service import generate_order_code, set_payment_fields, snapshot_contact
from .payment_gateway import PaymentGateway, ProviderOrder, to_minor_units, verify_signature
from .variant_resolver import resolve_checkout_items


class StockAdjustmentSkipped(Exception):
    """One pay-first line item could not be applied to the ledger."""


# =============================================================================
# PAYMENT INITIATION
# =============================================================================

def _discard_order(order_pk: int) -> None:
    """Compensating delete for an order whose provider order never materialized."""
    db.session.rollback()
    order = db.session.get(Order, order_pk)
    if order is not None:
        db.session.delete(order)
        db.session.commit()


def initiate_payment(
    client_id: int,
    amount: Decimal,
    cart_items: list[LineItem],
    shipping_address,
    *,
    gateway: PaymentGateway,
) -> tuple[Order, ProviderOrder]:
    """
    Record a pay-first order and open the matching provider order.

    The submitted amount must equal the cart total computed from current
    catalog prices. Stock is NOT touched here; see confirm_payment.

    Raises:
        NotFoundError: client profile missing
        UnknownVariantError: a cart product missing (HTTP 400)
        ValidationError: empty cart or amount mismatch
        PaymentProviderError: provider call failed (local order removed)
    """
    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client profile not found.", details={"client_id": client_id})

    if not cart_items:
        raise ValidationError("A non-empty cart_items array is required.")

    items = merge_line_items(cart_items)
    resolved = resolve_checkout_items(items)

    total = sum((line.line_total for line in resolved), Decimal("0.00")).quantize(Decimal("0.01"))
    if amount != total:
        raise ValidationError(
            "Amount does not match cart total.",
            details={"amount": str(amount), "expected": str(total)},
        )
    if total <= 0:
        raise ValidationError("Order total must be greater than zero.")

    order = Order(
        order_id=generate_order_code(),
        client_id=client.id,
        shipping_address=shipping_address,
        products=[line.snapshot() for line in resolved],
        total_amount=total,
        status=STATUS_PENDING,
        payment_status=PAYMENT_PENDING,
        fulfillment_flow=FLOW_PAY_FIRST,
        stock_applied=False,
        **snapshot_contact(client),
    )
    db.session.add(order)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Order code collision; please retry.") from exc

    order_pk = order.id
    order_code = order.order_id

    # Provider call happens outside any transaction
    try:
        provider_order = gateway.create_provider_order(
            to_minor_units(total),
            gateway.currency,
            order_code,
            notes={"internalOrderId": order_pk},
        )
    except Exception as exc:
        current_app.logger.exception("Provider order creation failed for %s; removing local order", order_code)
        _discard_order(order_pk)
        if isinstance(exc, PaymentProviderError):
            raise
        raise PaymentProviderError("Payment provider order creation failed") from exc

    set_payment_fields(order, payment_status=PAYMENT_PENDING, provider_order_id=provider_order.id)
    try:
        db.session.commit()
    except IntegrityError as exc:
        current_app.logger.error("Provider order id %s already linked; removing %s", provider_order.id, order_code)
        _discard_order(order_pk)
        raise ConflictError("Provider order id already linked to another order.") from exc

    current_app.logger.info(
        "Pay-first order %s opened provider order %s for %s %s",
        order_code, provider_order.id, total, gateway.currency,
    )
    return order, provider_order


# =============================================================================
# PAYMENT CONFIRMATION
# =============================================================================

def _decrement_variant_by_size(product_id: str, size: str, quantity: int) -> None:
    result = db.session.execute(
        update(ProductVariant)
        .where(
            ProductVariant.product_id == product_id,
            ProductVariant.size == size,
            ProductVariant.quantity >= quantity,
        )
        .values(quantity=ProductVariant.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    available = (
        db.session.query(ProductVariant.quantity)
        .filter_by(product_id=product_id, size=size)
        .scalar()
    )
    if available is None:
        raise StockAdjustmentSkipped(f'variant {product_id}/"{size}" no longer exists')
    raise StockAdjustmentSkipped(f'variant {product_id}/"{size}" has {available}, needed {quantity}')


def _decrement_product_stock(product_id: str, quantity: int) -> None:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise StockAdjustmentSkipped(f"product {product_id} no longer exists")

    details = dict(product.other_details or {})
    try:
        current = int(details.get("stock") or 0)
    except (TypeError, ValueError):
        raise StockAdjustmentSkipped(f"product {product_id} has a non-numeric stock value")

    # Product-level counters floor at zero
    details["stock"] = max(current - quantity, 0)
    product.other_details = details


def apply_pay_first_stock(order: Order) -> list[dict]:
    """
    Decrement stock for every snapshot line of a paid pay-first order.

    Each line runs in its own SAVEPOINT; a failing line is logged and
    skipped without undoing the others or the payment update.
    """
    outcomes = []
    for index, item in enumerate(order.products or []):
        product_id = item.get("productId")
        size = item.get("size")
        try:
            quantity = int(item.get("quantity") or 0)
            if not product_id or quantity <= 0:
                raise StockAdjustmentSkipped("malformed line item")
            with db.session.begin_nested():
                if size:
                    _decrement_variant_by_size(product_id, size, quantity)
                else:
                    _decrement_product_stock(product_id, quantity)
                db.session.flush()
            outcomes.append({"line": index, "productId": product_id, "size": size, "applied": True})
        except (StockAdjustmentSkipped, ValueError, TypeError) as exc:
            current_app.logger.warning(
                "Order %s line %d: stock adjustment skipped (%s)", order.order_id, index, exc,
            )
            outcomes.append({"line": index, "productId": product_id, "size": size, "applied": False, "reason": str(exc)})
        except SQLAlchemyError:
            current_app.logger.exception(
                "Order %s line %d: stock adjustment failed", order.order_id, index,
            )
            outcomes.append({"line": index, "productId": product_id, "size": size, "applied": False, "reason": "database error"})
    return outcomes


def confirm_payment(provider_order_id: str, payment_id: str, signature: str, *, secret: str) -> Order:
    """
    Apply a provider payment confirmation.

    Verifies the HMAC signature, marks the order Paid/Confirmed and, when
    the order's stock has not been applied yet, decrements it once.
    A repeated confirmation for a Paid order returns it unchanged.

    Raises:
        ValidationError: missing fields
        SignatureMismatchError: signature does not match (no state change)
        NotFoundError: no order carries this provider order id
    """
    for name, value in (("order_id", provider_order_id), ("payment_id", payment_id), ("signature", signature)):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required")

    if not verify_signature(secret, provider_order_id, payment_id, signature):
        current_app.logger.warning("Signature mismatch for provider order %s", provider_order_id)
        raise SignatureMismatchError("Payment verification failed: Signature mismatch.")

    def _op() -> Order:
        with ledger_transaction():
            order = lock_for_update(
                db.session.query(Order).filter_by(provider_order_id=provider_order_id)
            ).first()
            if order is None:
                raise NotFoundError("Order not found.", details={"order_id": provider_order_id})

            if order.payment_status == PAYMENT_PAID:
                if order.provider_payment_id != payment_id:
                    current_app.logger.warning(
                        "Order %s already paid by %s; ignoring confirmation for %s",
                        order.order_id, order.provider_payment_id, payment_id,
                    )
                else:
                    current_app.logger.info("Duplicate confirmation for order %s ignored", order.order_id)
                return order

            set_payment_fields(
                order,
                payment_status=PAYMENT_PAID,
                status=STATUS_CONFIRMED,
                provider_payment_id=payment_id,
                provider_signature=signature,
                paid_at=utcnow(),
            )

            if not order.stock_applied:
                outcomes = apply_pay_first_stock(order)
                order.stock_applied = True
                skipped = [o for o in outcomes if not o["applied"]]
                if skipped:
                    current_app.logger.warning(
                        "Order %s confirmed with %d unapplied stock line(s)", order.order_id, len(skipped),
                    )
            return order

    order = run_with_retry(_op)
    current_app.logger.info("Payment %s confirmed for order %s", payment_id, order.order_id)
    return order


def mark_payment_failed(provider_order_id: str, *, client_id: int | None = None) -> Order:
    """
    Record a provider-reported failure on a still-pending order. Stock is untouched.

    With client_id set, orders belonging to other clients are reported as not found.
    """
    with ledger_transaction():
        order = lock_for_update(
            db.session.query(Order).filter_by(provider_order_id=provider_order_id)
        ).first()
        if order is None or (client_id is not None and order.client_id != client_id):
            raise NotFoundError("Order not found.", details={"order_id": provider_order_id})
        if order.payment_status == PAYMENT_PAID:
            raise ConflictError("Order is already paid.", details={"order_id": order.order_id})
        set_payment_fields(order, payment_status=PAYMENT_FAILED)
    return order
