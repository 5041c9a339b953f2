# Overview: Request authentication decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import AuthError, ForbiddenError
from .services.session_service import SUBJECT_ADMIN, SUBJECT_CLIENT


def get_identity():
    return current_app.extensions["storefront.identity"]


def bearer_token() -> str | None:
    """Token from "Authorization: Bearer <token>", or None when absent/malformed."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip()


def _authenticate(subject_type: str):
    """
    Verify the bearer token and populate g.

    Sets:
    - g.claims: the SessionClaims for this request
    - g.client_id or g.admin_id depending on subject type

    Raises AuthError / ForbiddenError; the decorators turn them into JSON.
    """
    token = bearer_token()
    if token is None:
        raise AuthError("Unauthorized: No token provided.")

    claims = get_identity().verify(token)
    if claims.subject_type != subject_type:
        raise ForbiddenError("Forbidden: Wrong account type for this endpoint.")

    g.claims = claims
    g.token = token
    if subject_type == SUBJECT_CLIENT:
        g.client_id = claims.subject_id
    else:
        g.admin_id = claims.subject_id
    return claims


def require_client(f):
    """Require a valid client session (shopper endpoints)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            _authenticate(SUBJECT_CLIENT)
        except (AuthError, ForbiddenError) as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require a valid admin session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            _authenticate(SUBJECT_ADMIN)
        except (AuthError, ForbiddenError) as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_super_admin(f):
    """
    Require a super admin session.

    SECURITY: Admin management and bulk uploads are restricted to super
    admins; ordinary admins get 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            claims = _authenticate(SUBJECT_ADMIN)
            if not claims.is_super_admin:
                raise ForbiddenError("Forbidden: Super admin access required.")
        except (AuthError, ForbiddenError) as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function
