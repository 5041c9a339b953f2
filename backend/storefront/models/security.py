from __future__ import annotations

from ..extensions import db


class RequestEvent(db.Model):
    """
    Append-only log of throttled requests.

    WHY: Order creation is rate limited per client IP. Each attempt is one
    row; the throttle counts rows for an IP inside its window.

    IMMUTABLE: Never updated. Old rows may be pruned.
    """
    __tablename__ = "request_events"
    __table_args__ = (
        db.Index("ix_request_events_type_ip_occurred", "event_type", "ip_address", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False)  # ORDER_ATTEMPT
    ip_address = db.Column(db.String(64), nullable=True)
    client_id = db.Column(db.Integer, nullable=True)
    resource = db.Column(db.String(128), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
