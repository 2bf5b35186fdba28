"""Base payment gateway interface.

Business logic should NOT live in adapters - only gateway communication
and local signature checks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to the gateway's minor units (paise).

    This is the only place the factor of 100 is applied.
    """
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentOrder:
    """A gateway-side order reserving an amount for a booking."""

    order_id: str
    amount: int  # minor units
    currency: str
    receipt: str
    status: str = "created"


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @abstractmethod
    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict | None = None,
    ) -> PaymentOrder:
        """Create an order for ``amount`` (major units).

        Args:
            amount: Booking amount in major units (rupees)
            currency: Currency code (INR)
            receipt: Internal reference (booking_id)
            notes: Additional metadata stored on the order

        Returns:
            PaymentOrder with the gateway order id and minor-unit amount

        Raises:
            GatewayFailure: on transport errors, timeouts or rejections
        """

    @abstractmethod
    async def fetch_payment(self, payment_id: str) -> dict:
        """Fetch a payment object from the gateway.

        Raises:
            GatewayFailure: on transport errors, timeouts or rejections
        """

    @abstractmethod
    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a checkout callback signature locally (no network call)."""

    async def close(self) -> None:
        """Release network resources."""
