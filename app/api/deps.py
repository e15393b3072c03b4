import logging
from typing import Callable, List, Optional, Tuple

from fastapi import Request

from app.core.config import Settings
from app.infra.convertkit.client import ConvertKitClient
from app.infra.crm.client import CrmClient
from app.infra.crm.contacts import CrmContactsRepo
from app.infra.crm.opportunities import CrmOpportunitiesRepo
from app.infra.crm.stages import StageIdResolver
from app.services.crm_sync import ContactSync, KeyedLocks, TrialOpportunityCreator, WebhookSyncPipeline
from app.services.payments import BillingProvider, get_billing_provider
from cache_ttl import TTLCache

logger = logging.getLogger("uvicorn.error")


def build_pipeline(
    settings: Settings,
    provider: Optional[BillingProvider] = None,
    crm_client: Optional[CrmClient] = None,
    convertkit: Optional[ConvertKitClient] = None,
) -> Tuple[WebhookSyncPipeline, List[Callable[[], None]]]:
    """
    Construct the webhook pipeline and everything it depends on, once per process.

    Returns the pipeline and the close callbacks for the HTTP sessions it owns.
    """
    closers: List[Callable[[], None]] = []
    provider = provider or get_billing_provider(settings)

    contact_sync = None
    opportunities = None
    if crm_client is None and settings.crm_enabled:
        crm_client = CrmClient.from_settings(settings)
        closers.append(crm_client.close)
    if crm_client is not None:
        contact_sync = ContactSync(CrmContactsRepo(crm_client), KeyedLocks())
        stage_cache = TTLCache(
            max_items=settings.stage_cache_max_items,
            default_ttl_sec=settings.stage_cache_ttl_sec,
        )
        opportunities = TrialOpportunityCreator.from_settings(
            settings,
            CrmOpportunitiesRepo(crm_client),
            StageIdResolver(crm_client, stage_cache),
        )

    if convertkit is None and settings.convertkit_enabled:
        convertkit = ConvertKitClient.from_settings(settings)
        closers.append(convertkit.close)

    pipeline = WebhookSyncPipeline(
        provider,
        contact_sync=contact_sync,
        opportunities=opportunities,
        convertkit=convertkit,
    )
    return pipeline, closers


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> WebhookSyncPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise RuntimeError("webhook pipeline not initialised")
    return pipeline
