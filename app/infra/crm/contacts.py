from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from app.core.errors import CrmRequestError
from app.infra.crm.client import CrmClient


@dataclass(frozen=True)
class CrmContact:
    id: str
    email: str
    tags: FrozenSet[str] = frozenset()
    custom_fields: Dict[str, Any] = field(default_factory=dict)


def _contact_dicts(data: Any) -> List[dict]:
    # lookup answers come back as {"contacts": [...]}, {"contact": {...}}, a list, or the bare contact
    if isinstance(data, list):
        return [c for c in data if isinstance(c, dict)]
    if not isinstance(data, dict):
        return []
    for key in ("contacts", "data"):
        inner = data.get(key)
        if isinstance(inner, list):
            return [c for c in inner if isinstance(c, dict)]
        if isinstance(inner, dict):
            return [inner]
    inner = data.get("contact")
    if isinstance(inner, dict):
        return [inner]
    if data.get("id") or data.get("email"):
        return [data]
    return []


def _to_contact(raw: Mapping[str, Any]) -> CrmContact:
    tags = raw.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",")]
    fields = raw.get("customFields") or raw.get("customField") or {}
    if isinstance(fields, list):
        fields = {f.get("id") or f.get("key"): f.get("value") for f in fields if isinstance(f, dict)}
    return CrmContact(
        id=str(raw.get("id") or ""),
        email=str(raw.get("email") or ""),
        tags=frozenset(str(t) for t in tags if t),
        custom_fields=dict(fields),
    )


def pick_contact(data: Any, email: str) -> Optional[CrmContact]:
    wanted = email.strip().lower()
    for raw in _contact_dicts(data):
        contact = _to_contact(raw)
        if contact.email.strip().lower() == wanted:
            return contact

    # a bare contact object without an email is the lookup's own answer
    if (
        isinstance(data, dict)
        and data.get("id")
        and not data.get("email")
        and not any(k in data for k in ("contacts", "contact", "data"))
    ):
        return _to_contact(data)
    return None


def extract_record_id(data: Any, wrapper: str = "contact") -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for candidate in (data.get(wrapper), data, data.get("data")):
        if isinstance(candidate, dict) and candidate.get("id"):
            return str(candidate["id"])
    return None


class CrmContactsRepo:
    def __init__(self, client: CrmClient):
        self.client = client

    async def lookup_by_email(self, email: str) -> Optional[CrmContact]:
        try:
            data = await self.client.get_json("contacts/lookup", params={"email": email})
        except CrmRequestError as e:
            if e.status_code == 404:
                return None
            raise
        return pick_contact(data, email)

    async def upsert(
        self,
        *,
        email: str,
        first_name: str = "",
        last_name: str = "",
        phone: str = "",
        tags: Iterable[str] = (),
        custom_fields: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        body: Dict[str, Any] = {"email": email}
        if first_name:
            body["firstName"] = first_name
        if last_name:
            body["lastName"] = last_name
        if phone:
            body["phone"] = phone
        body["tags"] = list(tags)
        body["customFields"] = dict(custom_fields or {})

        data = await self.client.post_json("contacts/", body)
        return extract_record_id(data)
