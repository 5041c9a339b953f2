# Overview: Payment provider client (Razorpay-compatible orders API) and signature helpers.

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

import httpx

from ..errors import PaymentProviderError


@dataclass
class ProviderOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    raw: dict | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "status": self.status,
        }


class PaymentGateway(Protocol):
    currency: str

    def create_provider_order(self, amount_minor_units: int, currency: str, receipt_id: str, notes: dict | None = None) -> ProviderOrder:
        ...


def to_minor_units(amount: Decimal) -> int:
    """Decimal major units (e.g. rupees) -> integer minor units (paise)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(secret: str, provider_order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 hex digest over "<provider_order_id>|<payment_id>"."""
    message = f"{provider_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, provider_order_id: str, payment_id: str, signature: str) -> bool:
    """Constant-time comparison of the supplied signature against the recomputed one."""
    if not secret or not signature:
        return False
    expected = compute_signature(secret, provider_order_id, payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), str(signature).encode("utf-8"))


class RazorpayGateway:
    """
    Minimal client for POST /orders on a Razorpay-compatible API.

    Uses HTTP basic auth with the key id/secret. Network errors, timeouts and
    non-2xx responses become PaymentProviderError.
    """

    def __init__(self, *, base_url: str, key_id: str, key_secret: str, currency: str = "INR", timeout: float = 10.0, transport=None):
        self.currency = currency
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    def create_provider_order(self, amount_minor_units: int, currency: str, receipt_id: str, notes: dict | None = None) -> ProviderOrder:
        body = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt_id,
            "notes": notes or {},
        }
        try:
            response = self._client.post("/orders", json=body)
        except httpx.HTTPError as exc:
            raise PaymentProviderError(
                "Payment provider unreachable",
                details={"reason": exc.__class__.__name__},
            ) from exc

        if response.status_code >= 400:
            raise PaymentProviderError(
                "Payment provider order creation failed",
                details={"status": response.status_code},
            )

        data = response.json()
        if not data or not data.get("id"):
            raise PaymentProviderError("Payment provider returned no order id")

        return ProviderOrder(
            id=data["id"],
            amount=int(data.get("amount", amount_minor_units)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt_id),
            status=data.get("status", "created"),
            raw=data,
        )

    def close(self) -> None:
        self._client.close()


def build_gateway(config) -> RazorpayGateway:
    return RazorpayGateway(
        base_url=config.get("PAYMENT_PROVIDER_URL", "https://api.razorpay.com/v1"),
        key_id=config.get("PAYMENT_KEY_ID", ""),
        key_secret=config.get("PAYMENT_KEY_SECRET", ""),
        currency=config.get("PAYMENT_CURRENCY", "INR"),
        timeout=config.get("PAYMENT_TIMEOUT_SECONDS", 10.0),
    )
