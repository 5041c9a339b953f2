from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError


# Maximum unit price / order amount: 9,999,999,999.99
MAX_AMOUNT = Decimal("9999999999.99")
MAX_LINE_QUANTITY = 10_000
MAX_LINES_PER_ORDER = 200


@dataclass(frozen=True)
class LineItem:
    """One validated (product, size, quantity) request within a cart."""
    product_id: str
    size: str | None
    quantity: int

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.product_id, self.size)


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer parsing.

    Rejects bools, floats, decimals and scientific notation so "1.5" or 1e3
    never silently become a quantity.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_decimal(value: Any, field: str, *, allow_none: bool = False) -> Decimal | None:
    """Parse money into a 2dp Decimal. Floats go through str() to avoid binary noise."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a decimal number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a decimal number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT}")
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    return amount.quantize(Decimal("0.01"))


def _require_str(item: dict, *names: str) -> str | None:
    for name in names:
        value = item.get(name)
        if value is None:
            continue
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{name} must be a string")
        value = str(value).strip()
        if value:
            return value
    return None


def parse_line_items(payload: Any, *, require_size: bool = True) -> list[LineItem]:
    """
    Validate a raw cart payload into LineItems.

    Accepts ``productId``/``product_id`` and ``size`` (``variantSize`` is
    accepted for carts built by the payment checkout). Unknown shapes raise
    ValidationError before any database work happens.
    """
    if not isinstance(payload, list) or not payload:
        raise ValidationError("A non-empty products array is required.")
    if len(payload) > MAX_LINES_PER_ORDER:
        raise ValidationError(f"An order may contain at most {MAX_LINES_PER_ORDER} line items.")

    items: list[LineItem] = []
    for index, raw in enumerate(payload):
        if not isinstance(raw, dict):
            raise ValidationError(f"products[{index}] must be an object")

        product_id = _require_str(raw, "productId", "product_id", "id")
        size = _require_str(raw, "size", "variantSize")
        quantity = parse_int(raw.get("quantity"), f"products[{index}].quantity")

        if not product_id:
            raise ValidationError(f"products[{index}] is missing productId")
        if require_size and not size:
            raise ValidationError(f"products[{index}] is missing size")
        if quantity <= 0:
            raise ValidationError(f"products[{index}].quantity must be greater than 0")
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"products[{index}].quantity exceeds maximum of {MAX_LINE_QUANTITY}")

        items.append(LineItem(product_id=product_id, size=size, quantity=quantity))

    return items


def merge_line_items(items: list[LineItem]) -> list[LineItem]:
    """Collapse repeated (product, size) pairs, keeping first-seen order."""
    merged: dict[tuple[str, str | None], int] = {}
    for item in items:
        merged[item.key] = merged.get(item.key, 0) + item.quantity
    return [LineItem(product_id=pid, size=size, quantity=qty) for (pid, size), qty in merged.items()]
