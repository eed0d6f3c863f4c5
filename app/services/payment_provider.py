"""Payment provider contract and its HTTP implementation.

The engine only needs two calls: create an invoice the customer is sent
to, and read an invoice back when the provider's webhook reports on it.
Amounts are in the currency's minor unit (halalas for SAR).
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from app.core.config import Settings
from app.core.errors import PaymentProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Invoice:
    id: str
    status: str  # paid|unpaid|expired|refunded
    amount: int
    currency: str
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


class PaymentProvider(Protocol):
    name: str

    async def create_invoice(
        self,
        *,
        amount: int,
        currency: str,
        description: str,
        callback_url: str,
        success_url: str,
        metadata: dict[str, Any],
    ) -> Invoice: ...

    async def get_invoice(self, invoice_id: str) -> Invoice: ...


def _invoice_from_json(data: dict[str, Any]) -> Invoice:
    return Invoice(
        id=str(data["id"]),
        status=str(data.get("status", "unpaid")),
        amount=int(data.get("amount", 0)),
        currency=str(data.get("currency", "SAR")),
        url=data.get("url") or data.get("invoice_url"),
        metadata=dict(data.get("metadata") or {}),
    )


class HttpPaymentProvider:
    """Invoice API client.  Authenticates with the secret key as Basic user."""

    name = "moyasar"

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(secret_key, "")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_invoice(
        self,
        *,
        amount: int,
        currency: str,
        description: str,
        callback_url: str,
        success_url: str,
        metadata: dict[str, Any],
    ) -> Invoice:
        body = {
            "amount": amount,
            "currency": currency,
            "description": description,
            "callback_url": callback_url,
            "success_url": success_url,
            "metadata": metadata,
        }
        try:
            async with self._client() as client:
                response = await client.post("/invoices", json=body)
                response.raise_for_status()
            invoice = _invoice_from_json(response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.error("Invoice creation failed: %r", exc)
            raise PaymentProviderError("Failed to create invoice") from exc
        logger.info("Invoice created id=%s amount=%d %s", invoice.id, amount, currency)
        return invoice

    async def get_invoice(self, invoice_id: str) -> Invoice:
        try:
            async with self._client() as client:
                response = await client.get(f"/invoices/{invoice_id}")
                response.raise_for_status()
            return _invoice_from_json(response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.error("Invoice lookup failed id=%s: %r", invoice_id, exc)
            raise PaymentProviderError("Failed to fetch invoice") from exc


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of a hex HMAC-SHA256 webhook signature."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip().lower())


def build_payment_provider(settings: Settings) -> PaymentProvider | None:
    secret_key = settings.payment_secret_key
    if secret_key is None:
        logger.info("No PAYMENT_SECRET_KEY configured, subscriptions activate directly")
        return None
    return HttpPaymentProvider(settings.payment_api_url, secret_key)
