# Overview: Flask API routes for catalog products; parses input and returns JSON responses.

"""
Product catalog routes

SECURITY:
- Read operations are public (storefront browsing)
- Write operations and imports require an admin session
"""

import json
import uuid

from flask import Blueprint, current_app, jsonify, request
from werkzeug.utils import secure_filename

from ..decorators import require_admin
from ..errors import StorefrontError, ValidationError
from ..extensions import db
from ..services import import_service, products_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

MAX_IMAGES_PER_PRODUCT = 3
IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png"}


def _page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("limit", type=int)


def _product_payload() -> dict:
    """JSON body, or multipart form where "data" (or each field) carries the product."""
    if request.files or request.form:
        if "data" in request.form:
            try:
                data = json.loads(request.form["data"])
            except ValueError as exc:
                raise ValidationError("data must be valid JSON") from exc
        else:
            data = request.form.to_dict()
        for key in ("variants", "dimensions", "weight", "otherDetails", "imageUrls"):
            if isinstance(data.get(key), str):
                try:
                    data[key] = json.loads(data[key])
                except ValueError as exc:
                    raise ValidationError(f"{key} must be valid JSON") from exc
        if not isinstance(data, dict):
            raise ValidationError("Product data must be an object")
        return data
    return request.get_json(silent=True) or {}


def _image_files() -> list:
    files = [f for f in request.files.getlist("images") if f and f.filename]
    if len(files) > MAX_IMAGES_PER_PRODUCT:
        raise ValidationError(f"At most {MAX_IMAGES_PER_PRODUCT} images may be uploaded.")
    for f in files:
        if f.mimetype not in IMAGE_TYPES:
            raise ValidationError("Invalid file type. Only JPG, JPEG, and PNG are allowed.")
    return files


def _store_images(product_id: str, files: list) -> list[str]:
    blob_store = current_app.extensions["storefront.blob_store"]
    urls = []
    for f in files:
        name = secure_filename(f.filename) or "image"
        key = f"products/{secure_filename(product_id) or 'product'}/{uuid.uuid4().hex[:8]}-{name}"
        urls.append(blob_store.store(f.read(), key, f.mimetype))
    return urls


@products_bp.get("")
def list_products_route():
    page, limit = _page_args()
    return jsonify(products_service.list_products(page, limit)), 200


@products_bp.get("/search")
def search_products_route():
    try:
        page, limit = _page_args()
        query_text = request.args.get("q") or request.args.get("query") or ""
        return jsonify(products_service.search_products(query_text, page, limit)), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/category/<category>")
def products_by_category_route(category: str):
    try:
        page, limit = _page_args()
        return jsonify(products_service.products_by_category(category, page, limit)), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/<product_id>")
def get_product_route(product_id: str):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_admin
def create_product_route():
    """
    Create a product with variants and optional images.

    Accepts JSON, or multipart with a "data" JSON field plus up to three
    "images" files.
    """
    try:
        data = _product_payload()
        # Validate the image parts before anything is written
        files = _image_files()

        product = products_service.add_product(data)
        if files:
            products_service.add_image_urls(product, _store_images(product.id, files))
            db.session.commit()
        return jsonify({"message": "Product created successfully", "product": product.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<product_id>")
@require_admin
def update_product_route(product_id: str):
    try:
        data = _product_payload()
        product = products_service.update_product(product_id, data)
        return jsonify({"message": "Product updated successfully", "product": product.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<product_id>")
@require_admin
def delete_product_route(product_id: str):
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": f"Product {product_id} deleted successfully"}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/import")
@require_admin
def import_products_route():
    """
    Bulk import from CSV or Excel.

    Form fields: file (required), mode = skip | update (default skip).
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    mode = (request.form.get("mode") or request.args.get("mode") or "skip").lower()

    try:
        rows = import_service.read_rows(file.filename or "", file.stream.read())
        result = import_service.import_products(rows, mode)
        return jsonify(result.to_dict()), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Failed to parse upload"}), 400
