# backend/storefront/config.py
from __future__ import annotations
import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # postgresql+psycopg2://... in production
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Order transaction bounds. MAX_WAIT caps lock acquisition, TIMEOUT caps
    # the whole validate -> decrement -> persist unit.
    ORDER_TX_MAX_WAIT_MS = int(os.environ.get("ORDER_TX_MAX_WAIT_MS", "5000"))
    ORDER_TX_TIMEOUT_MS = int(os.environ.get("ORDER_TX_TIMEOUT_MS", "10000"))

    # Order creation rate limit per client IP
    ORDER_RATE_LIMIT = int(os.environ.get("ORDER_RATE_LIMIT", "10"))
    ORDER_RATE_WINDOW_SECONDS = int(os.environ.get("ORDER_RATE_WINDOW_SECONDS", "300"))

    # Payment provider (Razorpay-compatible REST API)
    PAYMENT_PROVIDER_URL = os.environ.get("PAYMENT_PROVIDER_URL", "https://api.razorpay.com/v1")
    PAYMENT_KEY_ID = os.environ.get("PAYMENT_KEY_ID", "")
    PAYMENT_KEY_SECRET = os.environ.get("PAYMENT_KEY_SECRET", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "INR")
    PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10"))

    # Outbound mail. Without MAIL_SERVER notifications are only logged.
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_SENDER = os.environ.get("MAIL_SENDER", "Storefront Order System <orders@storefront.local>")
    MAIL_USE_TLS = _bool_env("MAIL_USE_TLS", True)
    NOTIFY_MAX_WORKERS = int(os.environ.get("NOTIFY_MAX_WORKERS", "4"))

    # Blob storage (local filesystem served under /media)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MEDIA_BASE_URL = os.environ.get("MEDIA_BASE_URL", "http://localhost:5000/media")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(50 * 1024 * 1024)))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    SESSION_IDLE_HOURS = int(os.environ.get("SESSION_IDLE_HOURS", "2"))

    # Linked from admin invitation emails
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173/admin")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
