# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order API routes: client checkout and admin order management"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_client
from ..errors import StorefrontError
from ..services import order_service, order_throttle_service
from ..validation import parse_line_items


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_client
def place_order_route():
    """
    Place an order from the caller's cart (reserve-first).

    Body: {"products": [{"productId": "...", "size": "M", "quantity": 2}, ...]}

    Stock is decremented atomically with the order insert. 400 on
    validation, insufficient stock or unknown product/size, 404 when the
    client profile is missing, 429 when the caller is rate limited,
    503 (retryable) when the inventory transaction times out or conflicts.
    """
    try:
        order_throttle_service.check_and_record(request.remote_addr, g.client_id)

        data = request.get_json(silent=True) or {}
        items = parse_line_items(data.get("products"))

        order = order_service.place_order(
            g.client_id,
            items,
            notifier=current_app.extensions["storefront.notifier"],
        )
        return jsonify({"message": "Order created successfully!", "order": order.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_admin
def list_orders_route():
    status = request.args.get("status")
    orders = order_service.list_orders(status=status)
    return jsonify([o.to_dict() for o in orders]), 200


@orders_bp.get("/completed")
@require_admin
def list_completed_orders_route():
    orders = order_service.list_completed_orders()
    return jsonify([o.to_dict() for o in orders]), 200


@orders_bp.get("/mine")
@require_client
def list_my_orders_route():
    orders = order_service.list_client_orders(g.client_id)
    return jsonify([o.to_dict() for o in orders]), 200


@orders_bp.get("/<order_id>")
@require_admin
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<order_id>/status")
@require_admin
def set_status_route(order_id: str):
    """
    Change order status.

    Allowed: Pending, Ready to dispatch, Completed, Cancelled.
    Confirmed is set only by payment confirmation.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.set_status(order_id, data.get("status"))
        return jsonify({"message": "Order status updated successfully.", "order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<order_id>")
@require_admin
def update_order_route(order_id: str):
    """Correct contact and shipping details. Money, snapshot and payment fields are rejected."""
    try:
        data = request.get_json(silent=True)
        order = order_service.update_order_details(order_id, data)
        return jsonify({"message": "Order updated successfully.", "order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500
