# Overview: Best-effort admin notifications, delivered after commit on a worker pool.

"""
Notification delivery.

WHY: Order placement must never wait on (or fail because of) email. The
order engine publishes an event after its transaction commits; the
dispatcher runs delivery on a thread pool inside a fresh app context and
logs failures instead of raising.

Kinds:
- order.created   {recipients, order_id, customer_name, total_amount}
- zip.report      {recipients, original_zip_name, report_url, status}
- admin.invited   {recipients, admin_name, frontend_url}
"""

from __future__ import annotations

import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from html import escape
from typing import Protocol

from flask import Flask, current_app


KIND_ORDER_CREATED = "order.created"
KIND_ZIP_REPORT = "zip.report"
KIND_ADMIN_INVITED = "admin.invited"


class Notifier(Protocol):
    def notify(self, kind: str, payload: dict) -> None:
        ...


def render_message(kind: str, payload: dict) -> tuple[str, str]:
    """Return (subject, html body) for a notification kind."""
    if kind == KIND_ORDER_CREATED:
        order_id = escape(str(payload.get("order_id")))
        customer = escape(str(payload.get("customer_name") or "Unknown customer"))
        total = escape(str(payload.get("total_amount", "")))
        return (
            f"New Order Placed - ID: {payload.get('order_id')}",
            f"<h3>A new order has been received.</h3>"
            f"<p><strong>Order ID:</strong> {order_id}</p>"
            f"<p><strong>Placed By:</strong> {customer}</p>"
            f"<p><strong>Total:</strong> {total}</p>"
            f"<p>Please log in to the admin panel to view the complete order details.</p>",
        )
    if kind == KIND_ZIP_REPORT:
        name = escape(str(payload.get("original_zip_name")))
        url = escape(str(payload.get("report_url") or ""))
        status = escape(str(payload.get("status", "completed")))
        return (
            f"Report for your upload: {payload.get('original_zip_name')}",
            f"<h3>Hello,</h3>"
            f"<p>The ZIP file you uploaded (<strong>{name}</strong>) finished with status {status}.</p>"
            f'<p><a href="{url}" target="_blank">Download Upload Report</a></p>',
        )
    if kind == KIND_ADMIN_INVITED:
        admin_name = escape(str(payload.get("admin_name")))
        url = escape(str(payload.get("frontend_url") or ""))
        return (
            "Your Admin Account is Ready for Setup",
            f"<h3>Hello {admin_name},</h3>"
            f"<p>An administrator record has been created for you.</p>"
            f'<p>Complete setup by choosing a password: <a href="{url}" target="_blank">Admin Panel</a></p>',
        )
    raise ValueError(f"Unknown notification kind: {kind}")


class LogNotifier:
    """Fallback used when no mail server is configured."""

    def notify(self, kind: str, payload: dict) -> None:
        recipients = payload.get("recipients") or []
        current_app.logger.info("Notification %s for %d recipient(s): %s", kind, len(recipients), payload)


class SmtpNotifier:
    """Sends notifications as BCC'd HTML email through an SMTP relay."""

    def __init__(
        self,
        *,
        server: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.server = server
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def notify(self, kind: str, payload: dict) -> None:
        recipients = [r for r in (payload.get("recipients") or []) if r]
        if not recipients:
            current_app.logger.warning("No recipients provided for %s notification", kind)
            return

        subject, html = render_message(kind, payload)
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = self.sender
        message["Bcc"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)

        current_app.logger.info("Sent %s notification to %d recipient(s)", kind, len(recipients))


class NotificationDispatcher:
    """
    Fire-and-forget front for a Notifier.

    notify() returns immediately; delivery happens on the pool and any
    exception is logged, never propagated to the caller.
    """

    def __init__(self, app: Flask, notifier: Notifier, *, max_workers: int = 4):
        self.app = app
        self.notifier = notifier
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def notify(self, kind: str, payload: dict) -> Future | None:
        try:
            return self.executor.submit(self._deliver, kind, payload)
        except RuntimeError:
            # Executor already shut down (process exiting)
            self.app.logger.warning("Dropped %s notification: dispatcher is shut down", kind)
            return None

    def submit(self, func, *args, **kwargs) -> Future:
        """Run arbitrary background work inside an app context."""
        return self.executor.submit(self._run_in_context, func, *args, **kwargs)

    def _run_in_context(self, func, *args, **kwargs):
        with self.app.app_context():
            return func(*args, **kwargs)

    def _deliver(self, kind: str, payload: dict) -> None:
        with self.app.app_context():
            try:
                self.notifier.notify(kind, payload)
            except Exception:
                self.app.logger.exception("Failed to deliver %s notification", kind)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


def build_notifier(app: Flask) -> NotificationDispatcher:
    """Construct the process-wide dispatcher from config."""
    config = app.config
    if config.get("MAIL_SERVER"):
        notifier: Notifier = SmtpNotifier(
            server=config["MAIL_SERVER"],
            port=config.get("MAIL_PORT", 587),
            sender=config.get("MAIL_SENDER"),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            use_tls=config.get("MAIL_USE_TLS", True),
        )
    else:
        notifier = LogNotifier()
    return NotificationDispatcher(app, notifier, max_workers=config.get("NOTIFY_MAX_WORKERS", 4))


def publish(notifier: Notifier | None, kind: str, payload: dict) -> None:
    """
    Hand an event to a notifier without letting failures escape.

    Called only after the owning transaction has committed.
    """
    if notifier is None:
        return
    try:
        notifier.notify(kind, payload)
    except Exception:
        current_app.logger.exception("Failed to publish %s notification", kind)
