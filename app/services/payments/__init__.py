from app.services.payments.factory import get_billing_provider
from app.services.payments.models import BillingEvent, BillingEventType, ContactIdentity
from app.services.payments.provider import BillingProvider
from app.services.payments.stripe_provider import StripeBillingProvider

__all__ = [
    "BillingEvent",
    "BillingEventType",
    "BillingProvider",
    "ContactIdentity",
    "StripeBillingProvider",
    "get_billing_provider",
]
