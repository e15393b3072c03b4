from enum import Enum
from typing import Any, Optional

STATUS_TAG_PREFIX = "fc:"
EVENT_TAG_PREFIX = "evt:"

FIELD_LAST_EVENT_TYPE = "fc_last_event_type"
FIELD_LAST_EVENT_AT = "fc_last_event_at"
FIELD_LAST_SESSION_ID = "fc_last_session_id"
FIELD_LAST_SUBSCRIPTION_ID = "fc_last_subscription_id"
FIELD_LIFECYCLE_STATUS = "fc_lifecycle_status"


class StatusTag(str, Enum):
    TRIAL_CHECKOUT = "trial_checkout"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    SUB_ACTIVE = "sub_active"
    PAYMENT_FAILED = "payment_failed"
    SUB_CANCELED = "sub_canceled"

    @property
    def tag(self) -> str:
        return f"{STATUS_TAG_PREFIX}{self.value}"


class LifecycleStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    DUNNING = "dunning"
    CANCELED = "canceled"


def object_id(value: Any) -> str:
    """Ids arrive either as plain strings or as expanded objects."""
    if isinstance(value, dict):
        value = value.get("id")
    return str(value or "").strip()


def event_tag(kind: str, source_id: Any) -> Optional[str]:
    sid = object_id(source_id)
    if not sid:
        return None
    return f"{EVENT_TAG_PREFIX}{kind}_{sid}"
