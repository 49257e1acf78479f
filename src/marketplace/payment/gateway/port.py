"""Payment gateway port (abstract interface).

The gateway is an external collaborator: checkout only needs it to open a
charge and to say whether a webhook really came from it. A charge comes back
``paid`` (captured immediately), ``failed`` (declined) or ``pending`` (the
verdict arrives later through the webhook). An adapter that cannot reach its
provider, or does not answer within ``timeout`` seconds, raises
``GatewayUnavailable``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ChargeStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


@dataclass(frozen=True)
class ChargeResult:
    """Result of a charge attempt."""

    status: str
    gateway_transaction_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    provider: str = "gateway"

    @abstractmethod
    def create_charge(
        self,
        amount: float,
        currency: str,
        method: str,
        idempotency_key: str,
        timeout: float | None = None,
    ) -> ChargeResult:
        """Open a charge with the provider behind ``method``."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
