# Overview: Service-layer operations for client/admin accounts; password hashing and credential checks.

"""
Account Service

WHY: Orders are placed by authenticated clients and managed by admins.
Both authenticate with email/username + password; passwords are hashed
with bcrypt and never stored in plaintext.

SECURITY NOTES:
- bcrypt cost factor from BCRYPT_ROUNDS (12 in production)
- Minimum 8 characters, at least one letter and one digit
- Emails are stored lowercase; lookups are case-insensitive by construction
- Admins created by a super admin have no password until they set one
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Admin, Client, SessionToken, UploadJob
from ..time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password with bcrypt after validating strength."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check. Missing hashes never match."""
    if not password_hash or not isinstance(password, str):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError("A valid email is required")
    return email.strip().lower()


# =============================================================================
# CLIENTS
# =============================================================================

def signup_client(email: str, password: str, name: str | None = None, phone_number: str | None = None) -> Client:
    email = normalize_email(email)

    if db.session.query(Client).filter_by(email=email).first():
        raise ConflictError("Client with this email already exists.")

    client = Client(
        email=email,
        password_hash=hash_password(password),
        name=(name or "").strip() or None,
        phone_number=(phone_number or "").strip() or None,
    )
    db.session.add(client)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Client with this email already exists.") from exc
    return client


def authenticate_client(email: str, password: str) -> Client | None:
    """Return the Client for valid credentials, else None."""
    if not isinstance(email, str) or not email.strip():
        return None
    client = db.session.query(Client).filter_by(email=email.strip().lower()).first()
    if not client or not verify_password(password, client.password_hash):
        return None
    client.last_login_at = utcnow()
    db.session.commit()
    return client


def list_clients() -> list[Client]:
    return db.session.query(Client).order_by(Client.created_at.desc(), Client.id.desc()).all()


# =============================================================================
# ADMINS
# =============================================================================

def authenticate_admin(login: str, password: str) -> Admin | None:
    """Accepts username or email."""
    if not isinstance(login, str) or not login.strip():
        return None
    login = login.strip()
    admin = db.session.query(Admin).filter(
        db.or_(Admin.username == login, Admin.email == login.lower())
    ).first()
    if not admin or not verify_password(password, admin.password_hash):
        return None
    admin.last_login_at = utcnow()
    db.session.commit()
    return admin


def create_admin(
    *,
    username: str,
    email: str,
    name: str,
    password: str | None = None,
    super_admin: bool = False,
) -> Admin:
    """
    Create an admin record. Without a password the admin must complete setup
    via set_admin_password before logging in.
    """
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    email = normalize_email(email)

    existing = db.session.query(Admin).filter(
        db.or_(Admin.username == username.strip(), Admin.email == email)
    ).first()
    if existing:
        raise ConflictError("An admin with this username or email already exists.")

    admin = Admin(
        username=username.strip(),
        email=email,
        name=name.strip(),
        password_hash=hash_password(password) if password else None,
        super_admin=bool(super_admin),
    )
    db.session.add(admin)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("An admin with this username or email already exists.") from exc
    return admin


def set_admin_password(email: str, password: str) -> Admin:
    """First-time setup for an invited admin. Refuses to overwrite an existing password."""
    email = normalize_email(email)
    admin = db.session.query(Admin).filter_by(email=email).first()
    if admin is None:
        raise NotFoundError("No admin record exists for this email.")
    if admin.password_hash:
        raise ForbiddenError("Admin account is already set up.")
    admin.password_hash = hash_password(password)
    db.session.commit()
    return admin


def list_admins() -> list[Admin]:
    return db.session.query(Admin).order_by(Admin.created_at.desc(), Admin.id.desc()).all()


def delete_admin(admin_id, *, acting_admin_id: int) -> int:
    """
    Remove an admin account and revoke its sessions.

    Raises:
        ValidationError: admin_id is not an integer
        ForbiddenError: an admin tried to delete their own account
        NotFoundError: no such admin
    """
    try:
        admin_id = int(admin_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid Admin ID format.") from None

    if admin_id == acting_admin_id:
        raise ForbiddenError("Admins cannot delete their own account.")

    admin = db.session.get(Admin, admin_id)
    if admin is None:
        raise NotFoundError("Admin not found.", details={"admin_id": admin_id})
    email = admin.email

    db.session.query(SessionToken).filter_by(
        subject_type="admin",
        subject_id=admin_id,
        revoked_at=None,
    ).update({"revoked_at": utcnow()}, synchronize_session=False)
    # Upload history outlives the uploader
    db.session.query(UploadJob).filter_by(uploaded_by_admin_id=admin_id).update(
        {"uploaded_by_admin_id": None}, synchronize_session=False
    )
    db.session.delete(admin)
    db.session.commit()

    current_app.logger.info("Admin %s (%s) deleted by admin %s", admin_id, email, acting_admin_id)
    return admin_id
