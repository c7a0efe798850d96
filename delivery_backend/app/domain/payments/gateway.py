"""
Payment gateway client.

Talks to a Stripe-compatible PaymentIntents REST API. The reconciler only
depends on ``create_intent`` and ``retrieve_intent``; tests swap in a fake
through the ``get_payment_gateway`` dependency.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from delivery_backend.app.core.config import settings
from delivery_backend.app.core.exceptions import PaymentGatewayError
from delivery_backend.app.core.reliability import CircuitBreaker, CircuitOpenError

logger = logging.getLogger("delivery.payments.gateway")

PROVIDER_NAME = "stripe"


@dataclass
class PaymentIntent:
    """The subset of a gateway payment intent the backend relies on."""
    id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    payment_method_types: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "PaymentIntent":
        return cls(
            id=data["id"],
            status=data.get("status", "unknown"),
            amount=int(data.get("amount_received") or data.get("amount") or 0),
            currency=data.get("currency", settings.payment_currency),
            client_secret=data.get("client_secret"),
            payment_method_types=list(data.get("payment_method_types") or []),
            metadata=dict(data.get("metadata") or {}),
        )


class StripeGateway:
    """
    Minimal async client for the PaymentIntents endpoints.

    Every call goes through a circuit breaker that only counts transport
    failures; an error answer from the gateway does not trip it. Transport
    errors, non-2xx answers and an open circuit all surface as
    ``PaymentGatewayError``.
    """

    provider = PROVIDER_NAME

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.stripe.com/v1",
        timeout: float = 10.0,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.breaker = breaker or CircuitBreaker(
            "payment-gateway",
            failure_threshold=settings.payment_breaker_failure_threshold,
            reset_timeout=settings.payment_breaker_reset_seconds,
            expected_exceptions=(httpx.TransportError,),
        )

    async def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.api_key, ""),
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            response = await client.request(method, path, data=data)
            response.raise_for_status()
            return response.json()

    async def _call(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await self.breaker.call(self._request, method, path, data)
        except CircuitOpenError as exc:
            logger.error("Payment gateway circuit open: %s", exc)
            raise PaymentGatewayError("Payment gateway temporarily unavailable") from exc
        except httpx.HTTPStatusError as exc:
            logger.error("Payment gateway answered %s for %s %s",
                         exc.response.status_code, method, path)
            raise PaymentGatewayError(f"Payment gateway error ({exc.response.status_code})") from exc
        except httpx.HTTPError as exc:
            logger.error("Payment gateway unreachable: %s", exc)
            raise PaymentGatewayError() from exc

    async def create_intent(
        self, amount_minor_units: int, currency: str, metadata: Optional[Dict[str, str]] = None
    ) -> PaymentIntent:
        form = {
            "amount": amount_minor_units,
            "currency": currency,
            "payment_method_types[]": "card",
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = value
        data = await self._call("POST", "/payment_intents", form)
        return PaymentIntent.from_response(data)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        data = await self._call("GET", f"/payment_intents/{intent_id}")
        return PaymentIntent.from_response(data)


_gateway: Optional[StripeGateway] = None


def get_payment_gateway() -> StripeGateway:
    """FastAPI dependency returning the process-wide gateway client."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway(
            api_key=settings.payment_gateway_key,
            base_url=settings.payment_gateway_base_url,
            timeout=settings.payment_gateway_timeout_seconds,
        )
    return _gateway
