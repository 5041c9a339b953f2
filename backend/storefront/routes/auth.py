# Overview: Flask API routes for client and admin authentication; parses input and returns JSON responses.

"""
Authentication API routes

Clients sign up and log in with email + password. Admins log in with
username or email; super admins create further admins, who then choose a
password through /admin/setup.

Every successful login returns an opaque bearer token. Send it as
"Authorization: Bearer <token>" on protected routes.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, get_identity, require_admin, require_client, require_super_admin
from ..errors import StorefrontError, ValidationError
from ..extensions import db
from ..models import Admin, Client
from ..services import auth_service, session_service
from ..services.notification_service import KIND_ADMIN_INVITED, publish
from ..services.session_service import SUBJECT_ADMIN, SUBJECT_CLIENT


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _issue(subject_type: str, subject_id: int) -> str:
    return get_identity().issue(
        subject_type,
        subject_id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )


# =============================================================================
# CLIENTS
# =============================================================================

@auth_bp.post("/signup")
def signup_route():
    try:
        data = request.get_json(silent=True) or {}
        client = auth_service.signup_client(
            data.get("email"),
            data.get("password"),
            name=data.get("name"),
            phone_number=data.get("phoneNumber") or data.get("phone_number"),
        )
        token = _issue(SUBJECT_CLIENT, client.id)
        return jsonify({"message": "Client registered successfully.", "token": token, "client": client.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sign up client")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    client = auth_service.authenticate_client(email, password)
    if client is None:
        return jsonify({"error": "Invalid credentials"}), 401

    token = _issue(SUBJECT_CLIENT, client.id)
    return jsonify({"token": token, "client": client.to_dict()}), 200


@auth_bp.post("/logout")
def logout_route():
    """Revoke the presented token (client or admin). Idempotent."""
    token = bearer_token()
    if not token:
        return jsonify({"error": "Unauthorized: No token provided."}), 401
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.get("/me")
@require_client
def me_route():
    client = db.session.get(Client, g.client_id)
    if client is None:
        return jsonify({"error": "Client profile not found.", "code": "NOT_FOUND"}), 404
    return jsonify({"client": client.to_dict()}), 200


@auth_bp.get("/clients")
@require_admin
def list_clients_route():
    return jsonify([c.to_dict() for c in auth_service.list_clients()]), 200


# =============================================================================
# ADMINS
# =============================================================================

@auth_bp.post("/admin/login")
def admin_login_route():
    data = request.get_json(silent=True) or {}
    login = data.get("username") or data.get("email")
    password = data.get("password")
    if not login or not password:
        return jsonify({"error": "username/email and password required"}), 400

    admin = auth_service.authenticate_admin(login, password)
    if admin is None:
        return jsonify({"error": "Invalid credentials"}), 401

    token = _issue(SUBJECT_ADMIN, admin.id)
    return jsonify({"token": token, "admin": admin.to_dict()}), 200


@auth_bp.post("/admin/setup")
def admin_setup_route():
    """First-time password for an invited admin."""
    try:
        data = request.get_json(silent=True) or {}
        admin = auth_service.set_admin_password(data.get("email"), data.get("password"))
        return jsonify({"message": "Admin account setup complete.", "admin": admin.to_dict()}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code


@auth_bp.get("/admin/me")
@require_admin
def admin_me_route():
    admin = db.session.get(Admin, g.admin_id)
    return jsonify({"admin": admin.to_dict()}), 200


@auth_bp.get("/admins")
@require_super_admin
def list_admins_route():
    return jsonify([a.to_dict() for a in auth_service.list_admins()]), 200


@auth_bp.post("/admins")
@require_super_admin
def create_admin_route():
    """
    Create an admin record and notify the invitee.

    Body: {"username", "email", "name", "superAdmin": false}
    """
    try:
        data = request.get_json(silent=True) or {}
        super_admin = data.get("superAdmin", data.get("super_admin", False))
        if not isinstance(super_admin, bool):
            raise ValidationError("superAdmin must be a boolean")

        admin = auth_service.create_admin(
            username=data.get("username"),
            email=data.get("email"),
            name=data.get("name"),
            super_admin=super_admin,
        )
        publish(current_app.extensions["storefront.notifier"], KIND_ADMIN_INVITED, {
            "recipients": [admin.email],
            "admin_name": admin.name,
            "frontend_url": current_app.config.get("FRONTEND_URL"),
        })
        return jsonify({"message": "Admin created successfully.", "admin": admin.to_dict()}), 201

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create admin")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.delete("/admins/<admin_id>")
@require_super_admin
def delete_admin_route(admin_id: str):
    """
    Delete another admin. Super admins cannot delete themselves.

    400 on a non-numeric id, 403 on self-deletion, 404 when the admin is missing.
    """
    try:
        deleted_id = auth_service.delete_admin(admin_id, acting_admin_id=g.admin_id)
        return jsonify({"message": "Admin deleted successfully.", "id": deleted_id}), 200

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete admin")
        return jsonify({"error": "Internal server error"}), 500
