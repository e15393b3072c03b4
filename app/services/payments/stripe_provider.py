import asyncio
import json
import logging
from typing import Any, Optional

import stripe

from app.core.errors import WebhookSignatureError
from app.services.payments.models import BillingEvent, ContactIdentity
from app.services.payments.provider import BillingProvider

logger = logging.getLogger("uvicorn.error")


def _field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


class StripeBillingProvider(BillingProvider):
    """Stripe-backed billing provider."""

    def __init__(self, secret_key: str, webhook_secret: str, tolerance_sec: int = 300):
        self._webhook_secret = webhook_secret
        self._tolerance_sec = tolerance_sec
        if secret_key:
            stripe.api_key = secret_key

    def construct_event(self, payload: bytes, sig_header: str) -> BillingEvent:
        if not self._webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        if not sig_header:
            raise WebhookSignatureError("Missing stripe-signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError(f"Invalid payload encoding: {e}") from e

        # signature covers the exact raw bytes; verify before json parsing
        try:
            stripe.WebhookSignature.verify_header(
                body,
                sig_header,
                self._webhook_secret,
                self._tolerance_sec,
            )
        except Exception as e:
            raise WebhookSignatureError(f"Invalid webhook signature: {e}") from e

        try:
            data = json.loads(body)
            if not isinstance(data, dict):
                raise ValueError("event body is not an object")
            return BillingEvent.from_stripe(data)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e

    async def lookup_customer(self, customer_id: str) -> Optional[ContactIdentity]:
        customer_id = (customer_id or "").strip()
        if not customer_id:
            return None

        try:
            customer = await asyncio.to_thread(stripe.Customer.retrieve, customer_id)
        except Exception as e:
            logger.warning("[stripe] customer lookup failed: customer=%s err=%s", customer_id, e)
            return None

        if _field(customer, "deleted"):
            logger.warning("[stripe] customer %s is deleted, no identity", customer_id)
            return None

        identity = ContactIdentity.from_parts(
            email=_field(customer, "email"),
            name=_field(customer, "name"),
            phone=_field(customer, "phone"),
        )
        if not identity.has_email:
            logger.warning("[stripe] customer %s has no email", customer_id)
            return None
        return identity
