# Overview: Maps cart line items onto Stock Ledger rows in one batched lookup.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import and_, or_
from sqlalchemy.orm import contains_eager

from ..errors import UnknownVariantError
from ..extensions import db
from ..models import Product, ProductVariant
from ..validation import LineItem
from .concurrency import lock_for_update


@dataclass
class ResolvedLine:
    """A requested line joined to its variant row and the product's current price/title."""
    item: LineItem
    variant_id: int | None
    product_id: str
    size: str | None
    title: str
    unit_price: Decimal
    available: int | None

    @property
    def quantity(self) -> int:
        return self.item.quantity

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.item.quantity

    @property
    def label(self) -> str:
        if self.size:
            return f"{self.title} (Size: {self.size})"
        return self.title

    def snapshot(self) -> dict:
        """Line-item snapshot stored on the Order (JSON-safe, copied by value)."""
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "title": self.title,
            "size": self.size,
            "quantity": self.item.quantity,
            "price": str(self.unit_price),
        }


def _not_found(item: LineItem) -> UnknownVariantError:
    if item.size is None:
        return UnknownVariantError(
            f"Product with ID {item.product_id} not found.",
            details={"productId": item.product_id},
        )
    return UnknownVariantError(
        f'Product with ID {item.product_id} and size "{item.size}" not found.',
        details={"productId": item.product_id, "size": item.size},
    )


def resolve_line_items(items: list[LineItem], *, lock: bool = True) -> list[ResolvedLine]:
    """
    Resolve every (productId, size) to exactly one variant row, in request order.

    One query for the whole cart. With lock=True the variant rows are selected
    FOR UPDATE, so the caller's transaction snapshot is the one the decrement
    step sees. Any unknown pair fails the whole request with UnknownVariantError.
    """
    if not items:
        return []

    for item in items:
        if item.size is None:
            raise _not_found(item)

    pairs = {(item.product_id, item.size) for item in items}
    query = (
        db.session.query(ProductVariant)
        .join(Product, ProductVariant.product_id == Product.id)
        .options(contains_eager(ProductVariant.product))
        .filter(or_(*[
            and_(ProductVariant.product_id == product_id, ProductVariant.size == size)
            for product_id, size in pairs
        ]))
        .order_by(ProductVariant.id)
    )
    if lock:
        query = lock_for_update(query, of=ProductVariant)

    by_key = {(v.product_id, v.size): v for v in query.all()}

    resolved = []
    for item in items:
        variant = by_key.get(item.key)
        if variant is None:
            raise _not_found(item)
        resolved.append(ResolvedLine(
            item=item,
            variant_id=variant.id,
            product_id=variant.product_id,
            size=variant.size,
            title=variant.product.title,
            unit_price=Decimal(variant.product.price),
            available=variant.quantity,
        ))
    return resolved


def resolve_checkout_items(items: list[LineItem]) -> list[ResolvedLine]:
    """
    Price a pay-first cart without locking.

    Sized items resolve through their variant; unsized items resolve to the
    product alone (their stock lives in other_details["stock"]).
    """
    sized = [item for item in items if item.size is not None]
    unsized = [item for item in items if item.size is None]

    by_key = {r.item.key: r for r in resolve_line_items(sized, lock=False)}

    if unsized:
        product_ids = {item.product_id for item in unsized}
        products = {
            p.id: p
            for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        for item in unsized:
            product = products.get(item.product_id)
            if product is None:
                raise _not_found(item)
            by_key[item.key] = ResolvedLine(
                item=item,
                variant_id=None,
                product_id=product.id,
                size=None,
                title=product.title,
                unit_price=Decimal(product.price),
                available=None,
            )

    return [by_key[item.key] for item in items]
