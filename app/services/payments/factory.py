from app.core.config import Settings
from app.services.payments.provider import BillingProvider
from app.services.payments.stripe_provider import StripeBillingProvider


def get_billing_provider(settings: Settings) -> BillingProvider:
    return StripeBillingProvider(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        tolerance_sec=settings.stripe_webhook_tolerance_sec,
    )
