# Overview: Bearer session tokens and the identity verifier consumed by request decorators.

"""
Session Token Management Service

WHY: Every order must be attributable to a verified subject. The rest of
the application only consumes `verify(bearer_token) -> SessionClaims`;
this module is the one implementation of that contract.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_TTL_HOURS) and idle timeout (SESSION_IDLE_HOURS)
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import timedelta

from flask import Flask

from ..errors import AuthError
from ..extensions import db
from ..models import Admin, Client, SessionToken
from ..time_utils import utcnow


SUBJECT_CLIENT = "client"
SUBJECT_ADMIN = "admin"


@dataclass
class SessionClaims:
    """Verified identity for one request."""
    subject_id: int
    subject_type: str
    email: str | None
    claims: dict = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.subject_type == SUBJECT_ADMIN

    @property
    def is_super_admin(self) -> bool:
        return self.is_admin and bool(self.claims.get("super_admin"))


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    subject_type: str,
    subject_id: int,
    *,
    ttl: timedelta = timedelta(hours=24),
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for a client or admin.

    Returns (session_record, plaintext_token). Only the hash is persisted.
    """
    if subject_type not in {SUBJECT_CLIENT, SUBJECT_ADMIN}:
        raise ValueError(f"Unknown subject type: {subject_type}")

    plaintext_token = generate_token()
    now = utcnow()
    session = SessionToken(
        subject_type=subject_type,
        subject_id=subject_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def revoke_session(token: str) -> bool:
    """Returns True if an active session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()
    if not session:
        return False
    session.revoked_at = utcnow()
    db.session.commit()
    return True


class SessionTokenVerifier:
    """Identity collaborator: verify(bearer_token) -> SessionClaims | AuthError."""

    def __init__(self, *, ttl: timedelta, idle_timeout: timedelta):
        self.ttl = ttl
        self.idle_timeout = idle_timeout

    def issue(self, subject_type: str, subject_id: int, **kwargs) -> str:
        _, token = create_session(subject_type, subject_id, ttl=self.ttl, **kwargs)
        return token

    def verify(self, bearer_token: str) -> SessionClaims:
        if not bearer_token:
            raise AuthError("Unauthorized: Token missing after Bearer.")

        now = utcnow()
        session = db.session.query(SessionToken).filter_by(
            token_hash=hash_token(bearer_token),
            revoked_at=None,
        ).first()
        if not session:
            raise AuthError("Unauthorized: Invalid token.")

        if session.expires_at < now:
            raise AuthError("Unauthorized: Token has expired.")

        if session.last_used_at and now - session.last_used_at > self.idle_timeout:
            session.revoked_at = now
            db.session.commit()
            raise AuthError("Unauthorized: Session idle timeout.")

        if session.subject_type == SUBJECT_ADMIN:
            # Missing admins are never authenticated
            subject = db.session.get(Admin, session.subject_id)
            if subject is None:
                session.revoked_at = now
                db.session.commit()
                raise AuthError("Unauthorized: Account no longer exists.")
            email = subject.email
            claims = {"super_admin": bool(subject.super_admin)}
        else:
            # A client whose profile is gone keeps its verified id; services
            # that need the profile answer 404 themselves
            subject = db.session.get(Client, session.subject_id)
            email = subject.email if subject else None
            claims = {"name": subject.name} if subject else {}

        session.last_used_at = now
        db.session.commit()

        return SessionClaims(
            subject_id=session.subject_id,
            subject_type=session.subject_type,
            email=email,
            claims=claims,
        )


def build_identity(app: Flask) -> SessionTokenVerifier:
    return SessionTokenVerifier(
        ttl=timedelta(hours=app.config.get("SESSION_TTL_HOURS", 24)),
        idle_timeout=timedelta(hours=app.config.get("SESSION_IDLE_HOURS", 2)),
    )
