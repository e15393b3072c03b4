import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple

from app.infra.crm.contacts import CrmContactsRepo
from app.services.crm_sync.locks import KeyedLocks
from app.services.payments.models import ContactIdentity

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class UpsertResult:
    ok: bool
    contact_id: Optional[str]
    tags: Tuple[str, ...]
    # every event tag was already on the contact before this write
    redelivery: bool = False


class ContactSync:
    """
    Read-merge-write of one CRM contact.

    Tags are only ever added (existing ∪ new); custom fields are last-write-wins.
    """

    def __init__(self, contacts: CrmContactsRepo, locks: Optional[KeyedLocks] = None):
        self.contacts = contacts
        self.locks = locks or KeyedLocks()

    async def existing_tags(self, email: str) -> FrozenSet[str]:
        try:
            contact = await self.contacts.lookup_by_email(email)
        except Exception as e:
            logger.warning("[crm] contact lookup failed, assuming no tags: email=%s err=%s", email, e)
            return frozenset()
        if contact is None:
            return frozenset()
        return frozenset(contact.tags)

    async def merge_and_upsert(
        self,
        identity: ContactIdentity,
        new_tags: Iterable[str],
        fields: Mapping[str, str],
        event_tags: Iterable[str] = (),
    ) -> UpsertResult:
        email = identity.email
        event_tags = set(event_tags)
        async with self.locks.hold(email.lower()):
            existing = await self.existing_tags(email)
            redelivery = bool(event_tags) and event_tags <= existing
            final_tags = tuple(sorted(existing | set(new_tags)))
            try:
                contact_id = await self.contacts.upsert(
                    email=email,
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    phone=identity.phone,
                    tags=final_tags,
                    custom_fields=fields,
                )
            except Exception as e:
                logger.error(
                    "[crm] contact upsert failed: email=%s tags=%s status=%s body=%s err=%s",
                    email,
                    list(final_tags),
                    getattr(e, "status_code", None),
                    getattr(e, "body", ""),
                    e,
                )
                return UpsertResult(ok=False, contact_id=None, tags=final_tags, redelivery=redelivery)

        logger.info("[crm] contact upserted: email=%s id=%s tags=%s", email, contact_id, list(final_tags))
        return UpsertResult(ok=True, contact_id=contact_id, tags=final_tags, redelivery=redelivery)
