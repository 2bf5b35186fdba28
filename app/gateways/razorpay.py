"""Razorpay payment gateway adapter.

Orders API: https://razorpay.com/docs/api/orders/
Checkout signature: HMAC-SHA256 of "<order_id>|<payment_id>" keyed with the key secret.
"""

import hashlib
import hmac
import logging
from decimal import Decimal

import httpx

from app.config import Settings, settings as default_settings
from app.core.exceptions import GatewayFailure
from app.gateways.base import PaymentGateway, PaymentOrder, to_minor_units

logger = logging.getLogger(__name__)


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders/Payments client."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = settings or default_settings
        self.key_id = settings.razorpay_key_id
        self.key_secret = settings.razorpay_key_secret
        self.api_url = settings.razorpay_api_url.rstrip("/")
        self.timeout = settings.razorpay_timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _auth(self) -> tuple[str, str]:
        if not self.key_id or not self.key_secret:
            raise GatewayFailure("Razorpay credentials not configured")
        return (self.key_id, self.key_secret)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        auth = self._auth()
        try:
            response = await self.http_client.request(
                method,
                f"{self.api_url}{path}",
                auth=auth,
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise GatewayFailure(f"request timed out ({e.__class__.__name__})")
        except httpx.HTTPError as e:
            raise GatewayFailure(str(e) or e.__class__.__name__)

        if response.status_code >= 400:
            description = ""
            try:
                description = response.json().get("error", {}).get("description", "")
            except ValueError:
                pass
            raise GatewayFailure(
                f"API returned {response.status_code}" + (f": {description}" if description else "")
            )

        try:
            return response.json()
        except ValueError:
            raise GatewayFailure("API returned a non-JSON response")

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict | None = None,
    ) -> PaymentOrder:
        """Create a Razorpay order."""
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        data = await self._request("POST", "/orders", json=payload)

        order_id = data.get("id")
        if not order_id:
            raise GatewayFailure("order response missing id")

        logger.info(f"Razorpay order {order_id} created for receipt {receipt}")
        return PaymentOrder(
            order_id=order_id,
            amount=int(data.get("amount", payload["amount"])),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
        )

    async def fetch_payment(self, payment_id: str) -> dict:
        """Fetch a payment by id."""
        return await self._request("GET", f"/payments/{payment_id}")

    def _generate_signature(self, order_id: str, payment_id: str) -> str:
        """Generate the checkout signature for an order/payment pair."""
        body = f"{order_id}|{payment_id}"
        return hmac.new(
            self.key_secret.encode(), body.encode(), hashlib.sha256
        ).hexdigest()

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Verify a checkout callback signature."""
        if not self.key_secret or not order_id or not payment_id or not signature:
            return False

        expected_signature = self._generate_signature(order_id, payment_id)
        return hmac.compare_digest(expected_signature.encode(), signature.encode())
