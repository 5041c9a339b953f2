# Overview: Bulk catalog import from CSV/XLSX rows; one row per product variant.

"""
Catalog Import Service

WHY: Merchandisers maintain the catalog in spreadsheets. Each row describes
one (product, size) pair; rows sharing an id are grouped into one product
whose variant set is the union of its rows.

Column layout:
- Base columns: id, title, description, imageUrls (comma separated),
  category, subCategory, price, taxRate, chargeTax
- dimension_height / dimension_width / dimension_depth -> dimensions
- weight_value / weight_unit -> weight
- size, quantity -> one variant
- Anything else -> other_details

MODES:
- skip:   existing product ids are left untouched
- update: existing products are overwritten, variant set replaced

Each product is written on its own; a bad product is reported in the result
and does not stop the rest of the file.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field

from flask import current_app

from ..errors import StorefrontError, ValidationError
from ..extensions import db
from ..models import Product
from .products_service import add_product, update_product


IMPORT_MODES = {"skip", "update"}

DIMENSION_COLUMNS = {
    "dimension_height": "height",
    "dimension_width": "width",
    "dimension_depth": "depth",
}

PRODUCT_BASE_COLUMNS = {
    "id", "title", "description", "imageUrls", "category", "subCategory",
    "price", "taxRate", "chargeTax", "weight_value", "weight_unit",
    "size", "quantity",
} | set(DIMENSION_COLUMNS)

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


@dataclass
class ImportResult:
    mode: str
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "created": len(self.created),
            "updated": len(self.updated),
            "skipped": len(self.skipped),
            "failed": len(self.errors),
            "createdIds": self.created,
            "updatedIds": self.updated,
            "skippedIds": self.skipped,
            "errors": self.errors,
        }


def _clean(value) -> str | None:
    """Cell -> stripped string, or None when blank. Whole floats lose their '.0'."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _number_or_none(value):
    text = _clean(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else number


def read_rows(filename: str, data: bytes) -> list[dict]:
    """
    Decode an uploaded spreadsheet into a list of header -> value dicts.

    CSV is read as UTF-8 (a BOM is tolerated); Excel workbooks use the
    active sheet with the first row as headers.
    """
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext == "csv":
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc
        return list(csv.DictReader(io.StringIO(text)))
    if ext in XLSX_EXTENSIONS:
        from openpyxl import load_workbook
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            values = list(workbook.active.values)
        finally:
            workbook.close()
        if not values:
            return []
        headers = [str(h).strip() if h is not None else "" for h in values[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]}
            for row in values[1:]
            if any(cell is not None for cell in row)
        ]
    raise ValidationError("Unsupported file format", details={"filename": filename})


def _product_from_row(row: dict) -> dict:
    dimensions = {key: _number_or_none(row.get(col)) for col, key in DIMENSION_COLUMNS.items()}
    weight = {
        "value": _number_or_none(row.get("weight_value")),
        "unit": _clean(row.get("weight_unit")),
    }
    image_urls = [u.strip() for u in (_clean(row.get("imageUrls")) or "").split(",") if u.strip()]
    other_details = {}
    for column, value in row.items():
        if column is None or column in PRODUCT_BASE_COLUMNS:
            continue
        cleaned = _clean(value)
        if cleaned is not None:
            other_details[column] = cleaned

    return {
        "id": _clean(row.get("id")),
        "title": _clean(row.get("title")),
        "description": _clean(row.get("description")),
        "imageUrls": image_urls,
        "category": _clean(row.get("category")),
        "subCategory": _clean(row.get("subCategory")),
        "price": _clean(row.get("price")),
        "taxRate": _clean(row.get("taxRate")),
        "chargeTax": (_clean(row.get("chargeTax")) or "").lower() == "true",
        "dimensions": dimensions if any(v is not None for v in dimensions.values()) else None,
        "weight": weight if any(v is not None for v in weight.values()) else None,
        "otherDetails": other_details or None,
        "variants": [],
    }


def group_rows(rows: list[dict]) -> tuple[dict[str, dict], list[dict]]:
    """
    Group rows by product id, first row wins for product fields.

    Returns (products_by_id, row_errors). Rows without an id are reported;
    rows whose size/quantity do not form a variant contribute no variant.
    """
    products: dict[str, dict] = {}
    errors: list[dict] = []
    for line_no, row in enumerate(rows, start=2):
        product_id = _clean(row.get("id"))
        if not product_id:
            errors.append({"row": line_no, "error": "Missing product id"})
            continue
        entry = products.get(product_id)
        if entry is None:
            entry = products[product_id] = _product_from_row(row)

        size = _clean(row.get("size"))
        quantity = _clean(row.get("quantity"))
        if size and quantity and quantity.lstrip("-").isdigit():
            if any(v["size"] == size for v in entry["variants"]):
                errors.append({"row": line_no, "productId": product_id, "error": f'Duplicate size "{size}" ignored'})
                continue
            entry["variants"].append({"size": size, "quantity": int(quantity)})
    return products, errors


def import_products(rows: list[dict], mode: str = "skip") -> ImportResult:
    """Create or update catalog products from parsed rows."""
    if mode not in IMPORT_MODES:
        raise ValidationError("Invalid import mode", details={"mode": mode, "allowed": sorted(IMPORT_MODES)})

    result = ImportResult(mode=mode)
    products, row_errors = group_rows(rows)
    result.errors.extend(row_errors)
    if not products:
        return result

    existing_ids = {
        row[0]
        for row in db.session.query(Product.id).filter(Product.id.in_(list(products))).all()
    }

    for product_id, data in products.items():
        try:
            if product_id not in existing_ids:
                add_product(data)
                result.created.append(product_id)
            elif mode == "skip":
                result.skipped.append(product_id)
            else:
                patch = {k: v for k, v in data.items() if k != "id"}
                if not patch["variants"]:
                    # Keep the current variant set when the file lists none
                    patch.pop("variants")
                update_product(product_id, patch)
                result.updated.append(product_id)
        except StorefrontError as e:
            db.session.rollback()
            result.errors.append({"productId": product_id, "error": e.message, "code": e.code})

    current_app.logger.info(
        "Catalog import (%s): %d created, %d updated, %d skipped, %d error(s)",
        mode, len(result.created), len(result.updated), len(result.skipped), len(result.errors),
    )
    return result


def import_products_csv(stream, mode: str = "skip") -> ImportResult:
    """Import from a text stream of CSV data."""
    return import_products(list(csv.DictReader(stream)), mode)
