from abc import ABC, abstractmethod
from typing import Optional

from app.services.payments.models import BillingEvent, ContactIdentity


class BillingProvider(ABC):
    """Billing provider interface used by the webhook endpoint."""

    @abstractmethod
    def construct_event(self, payload: bytes, sig_header: str) -> BillingEvent:
        """Verify the raw webhook body against its signature and parse it.

        Raises WebhookSignatureError when verification fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def lookup_customer(self, customer_id: str) -> Optional[ContactIdentity]:
        """Fetch a customer's contact identity, or None when unavailable."""
        raise NotImplementedError
