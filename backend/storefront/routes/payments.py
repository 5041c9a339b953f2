# Overview: Flask API routes for payments; parses input and returns JSON responses.

"""
Payment API routes

Pay-first checkout: the client opens a provider order, pays on the provider's
page, and the signed confirmation is posted back to /verify.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_client
from ..errors import StorefrontError, ValidationError
from ..services import payment_service
from ..validation import parse_decimal, parse_line_items


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/orders")
@require_client
def initiate_payment_route():
    """
    Create a pending order and the matching provider order.

    Body: {"amount": "36.50", "cartItems": [...], "shippingAddress": {...}}

    Returns the provider order (amount in minor units) and the local order id.
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("amount") is None:
            raise ValidationError("amount is required")
        amount = parse_decimal(data.get("amount"), "amount")
        cart = data.get("cartItems", data.get("cart_items"))
        if not isinstance(cart, list) or not cart:
            raise ValidationError("A non-empty cartItems array is required.")
        items = parse_line_items(cart, require_size=False)
        shipping_address = data.get("shippingAddress", data.get("shipping_address"))

        order, provider_order = payment_service.initiate_payment(
            g.client_id,
            amount,
            items,
            shipping_address,
            gateway=current_app.extensions["storefront.payment_gateway"],
        )
        return jsonify({
            **provider_order.to_dict(),
            "internalOrderId": order.id,
            "orderId": order.order_id,
            "keyId": current_app.config.get("PAYMENT_KEY_ID"),
        }), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to initiate payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/verify")
def verify_payment_route():
    """
    Apply a provider payment confirmation.

    Body: {"razorpay_order_id", "razorpay_payment_id", "razorpay_signature"}
    (order_id / payment_id / signature are accepted too).

    SECURITY: No session is required. The HMAC signature over
    "order_id|payment_id" is the credential.
    """
    try:
        data = request.get_json(silent=True) or {}
        provider_order_id = data.get("razorpay_order_id") or data.get("order_id")
        payment_id = data.get("razorpay_payment_id") or data.get("payment_id")
        signature = data.get("razorpay_signature") or data.get("signature")

        order = payment_service.confirm_payment(
            provider_order_id,
            payment_id,
            signature,
            secret=current_app.config.get("PAYMENT_KEY_SECRET", ""),
        )
        return jsonify({
            "message": "Payment verified successfully.",
            "orderId": order.order_id,
            "order": order.to_dict(),
        }), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/failed")
@require_client
def payment_failed_route():
    """Record a checkout the provider reported as failed. Stock is untouched."""
    try:
        data = request.get_json(silent=True) or {}
        provider_order_id = data.get("razorpay_order_id") or data.get("order_id")
        if not provider_order_id:
            raise ValidationError("order_id is required")
        order = payment_service.mark_payment_failed(provider_order_id, client_id=g.client_id)
        return jsonify({"order": order.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment failure")
        return jsonify({"error": "Internal server error"}), 500
