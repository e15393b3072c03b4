from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BillingEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    INVOICE_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class ContactIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    @classmethod
    def from_parts(cls, email: Any = "", name: Any = "", phone: Any = "") -> "ContactIdentity":
        parts = str(name or "").split()
        return cls(
            email=str(email or "").strip(),
            first_name=parts[0] if parts else "",
            last_name=" ".join(parts[1:]),
            phone=str(phone or "").strip(),
        )

    @property
    def has_email(self) -> bool:
        return bool(self.email)


class BillingEvent(BaseModel):
    """A verified provider event. `payload` is the event's `data.object`."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    occurred_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> Optional[BillingEventType]:
        try:
            return BillingEventType(self.event_type)
        except ValueError:
            return None

    @classmethod
    def from_stripe(cls, data: dict[str, Any]) -> "BillingEvent":
        event_id = str(data.get("id") or "").strip()
        event_type = str(data.get("type") or "").strip()
        if not event_id or not event_type:
            raise ValueError("Invalid event: missing id or type")

        created = data.get("created")
        if isinstance(created, (int, float)):
            occurred_at = datetime.fromtimestamp(created, tz=timezone.utc)
        else:
            occurred_at = datetime.now(timezone.utc)

        obj = (data.get("data") or {}).get("object") or {}
        if not isinstance(obj, dict):
            raise ValueError("Invalid event: data.object is not an object")

        return cls(event_id=event_id, event_type=event_type, occurred_at=occurred_at, payload=obj)
