from app.services.crm_sync.contacts import ContactSync, UpsertResult
from app.services.crm_sync.locks import KeyedLocks
from app.services.crm_sync.normalizer import ContactProjection, normalize_event
from app.services.crm_sync.opportunities import TrialOpportunityCreator
from app.services.crm_sync.pipeline import SyncOutcome, SyncResult, WebhookSyncPipeline
from app.services.crm_sync.tags import LifecycleStatus, StatusTag

__all__ = [
    "ContactProjection",
    "ContactSync",
    "KeyedLocks",
    "LifecycleStatus",
    "StatusTag",
    "SyncOutcome",
    "SyncResult",
    "TrialOpportunityCreator",
    "UpsertResult",
    "WebhookSyncPipeline",
    "normalize_event",
]
