# Overview: Per-IP rate limit on order creation, backed by the request_events table.

"""
Order Throttling Service

WHY: Limit how fast a single address can create orders, so a scripted
client cannot drain scarce stock or flood admins with order emails.

- Every POST /api/orders attempt is recorded, whatever its outcome
- More than ORDER_RATE_LIMIT attempts inside ORDER_RATE_WINDOW_SECONDS
  from one IP is refused with 429 until the oldest attempt ages out
- Window and limit come from config; defaults are 10 per 5 minutes
"""

from datetime import timedelta

from flask import current_app

from ..errors import RateLimitedError
from ..extensions import db
from ..models import RequestEvent
from ..time_utils import utcnow


EVENT_ORDER_ATTEMPT = "ORDER_ATTEMPT"

DEFAULT_LIMIT = 10
DEFAULT_WINDOW = timedelta(minutes=5)


def _limit() -> int:
    return int(current_app.config.get("ORDER_RATE_LIMIT", DEFAULT_LIMIT))


def _window() -> timedelta:
    seconds = current_app.config.get("ORDER_RATE_WINDOW_SECONDS")
    return timedelta(seconds=int(seconds)) if seconds else DEFAULT_WINDOW


def _recent_attempts(ip_address: str | None, now):
    return db.session.query(RequestEvent).filter(
        RequestEvent.event_type == EVENT_ORDER_ATTEMPT,
        RequestEvent.ip_address == ip_address,
        RequestEvent.occurred_at >= now - _window(),
    )


def get_recent_attempts(ip_address: str | None) -> int:
    """Count order attempts from this IP inside the current window."""
    return _recent_attempts(ip_address, utcnow()).count()


def seconds_until_allowed(ip_address: str | None) -> int | None:
    """
    None when the IP may place another order, otherwise the number of
    seconds until the oldest attempt in the window expires.
    """
    now = utcnow()
    query = _recent_attempts(ip_address, now)
    limit = _limit()
    if query.count() < limit:
        return None

    # The attempt that must age out before one more is allowed
    blocking = query.order_by(RequestEvent.occurred_at.desc()).offset(limit - 1).first()
    if blocking is None:
        return None
    return max(1, int((blocking.occurred_at + _window() - now).total_seconds()))


def record_attempt(ip_address: str | None, client_id: int | None = None) -> None:
    event = RequestEvent(
        event_type=EVENT_ORDER_ATTEMPT,
        ip_address=ip_address,
        client_id=client_id,
        resource="/api/orders",
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()


def check_and_record(ip_address: str | None, client_id: int | None = None) -> None:
    """
    Refuse the attempt when the IP is over its limit, else record it.

    Raises:
        RateLimitedError: too many order attempts from this IP (HTTP 429)
    """
    retry_after = seconds_until_allowed(ip_address)
    if retry_after is not None:
        current_app.logger.warning("Order rate limit hit for %s (client %s)", ip_address, client_id)
        raise RateLimitedError(
            "Too many order requests. Please try again later.",
            details={"retry_after_seconds": retry_after, "limit": _limit()},
        )
    record_attempt(ip_address, client_id)
