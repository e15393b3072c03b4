import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from app.core.errors import IdentityUnresolvable
from app.infra.convertkit.client import ConvertKitClient
from app.services.crm_sync.contacts import ContactSync
from app.services.crm_sync.normalizer import ContactProjection, normalize_event
from app.services.crm_sync.opportunities import TrialOpportunityCreator
from app.services.payments.models import BillingEvent, BillingEventType, ContactIdentity
from app.services.payments.provider import BillingProvider

logger = logging.getLogger("uvicorn.error")


class SyncOutcome(str, Enum):
    IGNORED = "ignored"
    DROPPED = "dropped"
    SYNCED = "synced"
    CRM_FAILED = "crm_failed"
    CRM_DISABLED = "crm_disabled"


@dataclass(frozen=True)
class SyncResult:
    outcome: SyncOutcome
    event_type: str
    email: str = ""
    contact_id: Optional[str] = None
    tags: Tuple[str, ...] = ()
    redelivery: bool = False


class WebhookSyncPipeline:
    """
    billing event -> contact projection -> identity -> CRM merge/upsert.

    Only unexpected exceptions escape `process`; CRM and enrichment failures
    are logged and reported through the outcome.
    """

    def __init__(
        self,
        provider: BillingProvider,
        contact_sync: Optional[ContactSync] = None,
        opportunities: Optional[TrialOpportunityCreator] = None,
        convertkit: Optional[ConvertKitClient] = None,
    ):
        self.provider = provider
        self.contact_sync = contact_sync
        self.opportunities = opportunities
        self.convertkit = convertkit

    async def process(self, event: BillingEvent) -> SyncResult:
        projection = normalize_event(event)
        if projection is None:
            logger.info("[webhook] ignored event: id=%s type=%s", event.event_id, event.event_type)
            return SyncResult(SyncOutcome.IGNORED, event.event_type)

        try:
            projection = await self._resolve_identity(projection)
        except IdentityUnresolvable as e:
            logger.warning("[webhook] dropped event: id=%s type=%s reason=%s", event.event_id, event.event_type, e)
            return SyncResult(SyncOutcome.DROPPED, event.event_type)

        identity = projection.identity
        result = await self._sync_contact(projection)

        if event.kind == BillingEventType.CHECKOUT_COMPLETED:
            await self._after_checkout(event, identity, result)

        return result

    async def _after_checkout(self, event: BillingEvent, identity: ContactIdentity, result: SyncResult) -> None:
        # the evt:cs_ tag was already on the contact, so these ran on an earlier delivery
        if result.redelivery:
            logger.info(
                "[webhook] checkout already processed, skipping follow-ups: id=%s email=%s",
                event.event_id,
                identity.email,
            )
            return

        if result.outcome == SyncOutcome.SYNCED and self.opportunities is not None:
            await self.opportunities.create_for(result.contact_id)
        if self.convertkit is not None:
            await self.convertkit.subscribe(identity.email, identity.first_name)

    async def _resolve_identity(self, projection: ContactProjection) -> ContactProjection:
        if not projection.needs_identity_lookup:
            return projection
        if not projection.customer_id:
            raise IdentityUnresolvable("no email on event and no customer reference")

        try:
            found = await self.provider.lookup_customer(projection.customer_id)
        except Exception as e:
            logger.warning("[webhook] customer lookup failed: customer=%s err=%s", projection.customer_id, e)
            found = None
        if found is None or not found.has_email:
            raise IdentityUnresolvable(f"no email for customer {projection.customer_id}")

        partial = projection.identity
        return projection.with_identity(
            ContactIdentity(
                email=found.email,
                first_name=found.first_name or partial.first_name,
                last_name=found.last_name or partial.last_name,
                phone=found.phone or partial.phone,
            )
        )

    async def _sync_contact(self, projection: ContactProjection) -> SyncResult:
        email = projection.identity.email
        if self.contact_sync is None:
            logger.warning("[webhook] CRM not configured, skipping contact sync for %s", email)
            return SyncResult(SyncOutcome.CRM_DISABLED, projection.event_type, email=email)

        upsert = await self.contact_sync.merge_and_upsert(
            projection.identity, projection.tags, projection.audit_fields, event_tags=projection.event_tags
        )
        outcome = SyncOutcome.SYNCED if upsert.ok else SyncOutcome.CRM_FAILED
        return SyncResult(
            outcome,
            projection.event_type,
            email=email,
            contact_id=upsert.contact_id,
            tags=upsert.tags,
            redelivery=upsert.redelivery,
        )
