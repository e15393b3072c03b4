from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from app.services.crm_sync.tags import (
    FIELD_LAST_EVENT_AT,
    FIELD_LAST_EVENT_TYPE,
    FIELD_LAST_SESSION_ID,
    FIELD_LAST_SUBSCRIPTION_ID,
    FIELD_LIFECYCLE_STATUS,
    LifecycleStatus,
    StatusTag,
    event_tag,
    object_id,
)
from app.services.payments.models import BillingEvent, BillingEventType, ContactIdentity


@dataclass(frozen=True)
class ContactProjection:
    """What one billing event should write onto the CRM contact."""

    event_type: str
    lifecycle: LifecycleStatus
    status_tags: Tuple[StatusTag, ...]
    event_tags: Tuple[str, ...]
    identity: ContactIdentity
    customer_id: str = ""
    audit_fields: Dict[str, str] = field(default_factory=dict)

    @property
    def tags(self) -> FrozenSet[str]:
        return frozenset([t.tag for t in self.status_tags] + list(self.event_tags))

    @property
    def needs_identity_lookup(self) -> bool:
        return not self.identity.has_email

    def with_identity(self, identity: ContactIdentity) -> "ContactProjection":
        return replace(self, identity=identity)


def _audit_fields(
    event: BillingEvent,
    lifecycle: LifecycleStatus,
    session_id: str = "",
    subscription_id: str = "",
) -> Dict[str, str]:
    fields = {
        FIELD_LAST_EVENT_TYPE: event.event_type,
        FIELD_LAST_EVENT_AT: event.occurred_at.isoformat(),
        FIELD_LIFECYCLE_STATUS: lifecycle.value,
    }
    if session_id:
        fields[FIELD_LAST_SESSION_ID] = session_id
    if subscription_id:
        fields[FIELD_LAST_SUBSCRIPTION_ID] = subscription_id
    return fields


def _event_tags(*tags: Optional[str]) -> Tuple[str, ...]:
    return tuple(t for t in tags if t)


def _invoice_subscription_id(inv: Dict[str, Any]) -> str:
    sub_id = object_id(inv.get("subscription"))
    if sub_id:
        return sub_id
    # newer API versions nest it under parent.subscription_details
    details = (inv.get("parent") or {}).get("subscription_details") or {}
    return object_id(details.get("subscription"))


def _checkout_completed(event: BillingEvent) -> ContactProjection:
    session = event.payload
    details = session.get("customer_details") or {}
    session_id = object_id(session.get("id"))
    subscription_id = object_id(session.get("subscription"))
    lifecycle = LifecycleStatus.TRIAL
    return ContactProjection(
        event_type=event.event_type,
        lifecycle=lifecycle,
        status_tags=(StatusTag.TRIAL_CHECKOUT,),
        event_tags=_event_tags(event_tag("cs", session_id)),
        identity=ContactIdentity.from_parts(
            email=details.get("email") or session.get("customer_email"),
            name=details.get("name"),
            phone=details.get("phone"),
        ),
        customer_id=object_id(session.get("customer")),
        audit_fields=_audit_fields(event, lifecycle, session_id=session_id, subscription_id=subscription_id),
    )


def _invoice_handler(status_tag: StatusTag, lifecycle: LifecycleStatus) -> Callable[[BillingEvent], ContactProjection]:
    def handle(event: BillingEvent) -> ContactProjection:
        inv = event.payload
        subscription_id = _invoice_subscription_id(inv)
        return ContactProjection(
            event_type=event.event_type,
            lifecycle=lifecycle,
            status_tags=(status_tag,),
            event_tags=_event_tags(event_tag("in", inv.get("id")), event_tag("sub", subscription_id)),
            identity=ContactIdentity.from_parts(
                email=inv.get("customer_email"),
                name=inv.get("customer_name"),
                phone=inv.get("customer_phone"),
            ),
            customer_id=object_id(inv.get("customer")),
            audit_fields=_audit_fields(event, lifecycle, subscription_id=subscription_id),
        )

    return handle


def _subscription_projection(
    event: BillingEvent, lifecycle: LifecycleStatus, status_tags: Tuple[StatusTag, ...]
) -> ContactProjection:
    sub = event.payload
    subscription_id = object_id(sub.get("id"))
    return ContactProjection(
        event_type=event.event_type,
        lifecycle=lifecycle,
        status_tags=status_tags,
        event_tags=_event_tags(event_tag("sub", subscription_id)),
        # deletion/update payloads carry no email; resolved via the customer
        identity=ContactIdentity(),
        customer_id=object_id(sub.get("customer")),
        audit_fields=_audit_fields(event, lifecycle, subscription_id=subscription_id),
    )


def _subscription_deleted(event: BillingEvent) -> ContactProjection:
    return _subscription_projection(event, LifecycleStatus.CANCELED, (StatusTag.SUB_CANCELED,))


def _subscription_updated(event: BillingEvent) -> Optional[ContactProjection]:
    status = str(event.payload.get("status") or "").strip().lower()
    if status != "active":
        return None
    return _subscription_projection(
        event, LifecycleStatus.ACTIVE, (StatusTag.PAYMENT_SUCCEEDED, StatusTag.SUB_ACTIVE)
    )


DISPATCH: Dict[BillingEventType, Callable[[BillingEvent], Optional[ContactProjection]]] = {
    BillingEventType.CHECKOUT_COMPLETED: _checkout_completed,
    BillingEventType.INVOICE_SUCCEEDED: _invoice_handler(StatusTag.PAYMENT_SUCCEEDED, LifecycleStatus.ACTIVE),
    BillingEventType.INVOICE_FAILED: _invoice_handler(StatusTag.PAYMENT_FAILED, LifecycleStatus.DUNNING),
    BillingEventType.SUBSCRIPTION_UPDATED: _subscription_updated,
    BillingEventType.SUBSCRIPTION_DELETED: _subscription_deleted,
}


def normalize_event(event: BillingEvent) -> Optional[ContactProjection]:
    """Map a billing event onto a contact projection; None means ignore it."""
    handler = DISPATCH.get(event.kind) if event.kind else None
    if handler is None:
        return None
    return handler(event)
