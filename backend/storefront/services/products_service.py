# backend/storefront/services/products_service.py
"""
Products Service

Catalog CRUD. Products are keyed by an externally assigned id and own a set
of size variants, each carrying its Stock Ledger quantity.

Variant edits replace the whole set and run inside a ledger transaction so
they serialize with concurrent order placement.
"""
from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductVariant
from ..validation import parse_decimal, parse_int
from .concurrency import ledger_transaction, lock_for_update

PRODUCT_MUTABLE_FIELDS = {
    "title", "description", "category", "sub_category", "price", "tax_rate",
    "charge_tax", "image_urls", "dimensions", "weight", "other_details",
}

# camelCase aliases accepted from clients and CSV headers
FIELD_ALIASES = {
    "subCategory": "sub_category",
    "taxRate": "tax_rate",
    "chargeTax": "charge_tax",
    "imageUrls": "image_urls",
    "otherDetails": "other_details",
}

JSON_FIELDS = {"dimensions", "weight", "other_details"}

MAX_PAGE_SIZE = 100


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no", ""}:
        return False
    raise ValidationError(f"{field} must be a boolean")


def normalize_product_patch(data: dict) -> dict:
    """Map aliases, drop unknown keys and coerce typed fields."""
    patch = {}
    for key, value in data.items():
        key = FIELD_ALIASES.get(key, key)
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        if key == "price":
            value = parse_decimal(value, "price")
        elif key == "tax_rate":
            value = parse_decimal(value, "tax_rate", allow_none=True)
        elif key == "charge_tax":
            value = _parse_bool(value, "charge_tax")
        elif key == "image_urls":
            if value is None:
                value = []
            if not isinstance(value, list) or not all(isinstance(u, str) for u in value):
                raise ValidationError("image_urls must be a list of strings")
        elif key in JSON_FIELDS:
            if value is not None and not isinstance(value, dict):
                raise ValidationError(f"{key} must be an object")
        elif key in {"title", "category"}:
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{key} must be a non-empty string")
            value = value.strip()
        patch[key] = value
    return patch


def parse_variants(raw) -> list[dict]:
    if not isinstance(raw, list):
        raise ValidationError("variants must be a list")
    variants = []
    seen = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"variants[{index}] must be an object")
        size = item.get("size")
        if not isinstance(size, (str, int)) or not str(size).strip():
            raise ValidationError("Each variant must have a 'size' and 'quantity'.")
        size = str(size).strip()
        if item.get("quantity") is None:
            raise ValidationError("Each variant must have a 'size' and 'quantity'.")
        quantity = parse_int(item["quantity"], f"variants[{index}].quantity")
        if quantity < 0:
            raise ValidationError(f"variants[{index}].quantity must be >= 0")
        if size in seen:
            raise ValidationError(f'Duplicate variant size "{size}"')
        seen.add(size)
        variants.append({"size": size, "quantity": quantity})
    return variants


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found.")
    return product


def add_product(data: dict) -> Product:
    """
    Create a product with its variants.

    Requires id, title, category, price and at least one variant.
    """
    product_id = data.get("id")
    variants = parse_variants(data.get("variants") or [])
    if not product_id or not data.get("title") or not data.get("category") or data.get("price") in (None, "") or not variants:
        raise ValidationError(
            "Missing required fields: id, title, category, price, and at least one variant are required."
        )
    product_id = str(product_id).strip()

    patch = normalize_product_patch(data)
    if db.session.get(Product, product_id) is not None:
        raise ConflictError(f"A product with ID '{product_id}' already exists.")

    fields = {"image_urls": [], "charge_tax": False}
    fields.update(patch)
    product = Product(id=product_id, **fields)
    product.variants = [ProductVariant(size=v["size"], quantity=v["quantity"]) for v in variants]
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"A product with ID '{product_id}' already exists.") from exc
    return product


def replace_variants(product: Product, variants: list[dict]) -> None:
    """Swap the variant set. Caller owns the transaction."""
    db.session.query(ProductVariant).filter(ProductVariant.product_id == product.id).delete(
        synchronize_session=False
    )
    db.session.flush()
    for v in variants:
        db.session.add(ProductVariant(product_id=product.id, size=v["size"], quantity=v["quantity"]))


def update_product(product_id: str, data: dict) -> Product:
    """Patch product fields; when `variants` is present the variant set is replaced."""
    patch = normalize_product_patch(data)
    variants = parse_variants(data["variants"]) if "variants" in data else None

    with ledger_transaction():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product with ID {product_id} not found.")
        for key, value in patch.items():
            setattr(product, key, value)
        if variants is not None:
            replace_variants(product, variants)

    db.session.expire_all()
    return get_product(product_id)


def delete_product(product_id: str) -> None:
    with ledger_transaction():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product with ID {product_id} not found.")
        db.session.delete(product)


def _paginate(query, page: int | None, limit: int | None) -> dict:
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), MAX_PAGE_SIZE)
    total = query.order_by(None).count()
    products = (
        query.order_by(Product.created_at.desc(), Product.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = (total + limit - 1) // limit if total > 0 else 0
    return {
        "products": [p.to_dict() for p in products],
        "totalProducts": total,
        "totalPages": total_pages,
        "currentPage": page,
    }


def list_products(page: int | None = None, limit: int | None = None) -> dict:
    return _paginate(db.session.query(Product), page, limit)


def search_products(query_text: str, page: int | None = None, limit: int | None = None) -> dict:
    if not query_text or not query_text.strip():
        raise ValidationError("Query parameter is required")
    pattern = f"%{query_text.strip().lower()}%"
    query = db.session.query(Product).filter(
        or_(func.lower(Product.title).like(pattern), func.lower(Product.id).like(pattern))
    )
    return _paginate(query, page, limit)


def products_by_category(category: str, page: int | None = None, limit: int | None = None) -> dict:
    if not category or not category.strip():
        raise ValidationError("Category name is required in the URL.")
    query = db.session.query(Product).filter(func.lower(Product.category) == category.strip().lower())
    return _paginate(query, page, limit)


def add_image_urls(product: Product, urls: list[str]) -> None:
    product.image_urls = list(product.image_urls or []) + list(urls)
