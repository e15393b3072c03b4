import hashlib
import hmac
import json
import pathlib
import sys
import time
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure repository root is importable when pytest is invoked from other directories
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import Settings
from app.infra.crm.contacts import CrmContact
from app.services.crm_sync import ContactSync, WebhookSyncPipeline
from app.services.payments import ContactIdentity, StripeBillingProvider

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1", created: int = 1700000000) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


def encode_event(event: dict) -> bytes:
    return json.dumps(event).encode("utf-8")


class FakeResponse:
    def __init__(self, status_code: int = 200, data: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        if text is None:
            text = "" if data is None else json.dumps(data)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Stands in for requests.Session; answers by (method, path suffix)."""

    def __init__(self, routes: Optional[Dict[tuple, FakeResponse]] = None, error: Optional[Exception] = None):
        self.routes = routes or {}
        self.error = error
        self.calls: List[dict] = []
        self.closed = False

    def _answer(self, method: str, url: str) -> FakeResponse:
        if self.error is not None:
            raise self.error
        for (m, suffix), resp in self.routes.items():
            if m == method and url.endswith(suffix):
                return resp
        return FakeResponse(404, text="not found")

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "params": params, "json": json, "timeout": timeout})
        return self._answer(method, url)

    def post(self, url, json=None, timeout=None):
        self.calls.append({"method": "POST", "url": url, "json": json, "timeout": timeout})
        return self._answer("POST", url)

    def close(self):
        self.closed = True


class FakeContactsRepo:
    """In-memory CRM contact store that records every call."""

    def __init__(self, existing: Optional[Dict[str, set]] = None, lookup_error=None, upsert_error=None):
        self.tags: Dict[str, set] = {k: set(v) for k, v in (existing or {}).items()}
        self.fields: Dict[str, dict] = {}
        self.lookup_error = lookup_error
        self.upsert_error = upsert_error
        self.lookup_calls: List[str] = []
        self.upsert_calls: List[dict] = []

    async def lookup_by_email(self, email: str) -> Optional[CrmContact]:
        self.lookup_calls.append(email)
        if self.lookup_error is not None:
            raise self.lookup_error
        if email not in self.tags:
            return None
        return CrmContact(id=f"c_{email}", email=email, tags=frozenset(self.tags[email]))

    async def upsert(self, **kwargs) -> Optional[str]:
        self.upsert_calls.append(kwargs)
        if self.upsert_error is not None:
            raise self.upsert_error
        email = kwargs["email"]
        self.tags[email] = set(kwargs.get("tags") or ())
        self.fields[email] = dict(kwargs.get("custom_fields") or {})
        return f"c_{email}"

    @property
    def write_count(self) -> int:
        return len(self.upsert_calls)


class FakeStripeProvider(StripeBillingProvider):
    """Real signature verification, canned customer lookups."""

    def __init__(self, customers: Optional[Dict[str, ContactIdentity]] = None, lookup_error=None):
        super().__init__(secret_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)
        self.customers = customers or {}
        self.lookup_error = lookup_error
        self.lookup_calls: List[str] = []

    async def lookup_customer(self, customer_id: str) -> Optional[ContactIdentity]:
        self.lookup_calls.append(customer_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.customers.get(customer_id)


class FakeOpportunities:
    def __init__(self):
        self.calls: List[Optional[str]] = []

    async def create_for(self, contact_id):
        self.calls.append(contact_id)
        return "opp_1"


class FakeConvertKit:
    def __init__(self):
        self.calls: List[tuple] = []

    async def subscribe(self, email, first_name=""):
        self.calls.append((email, first_name))
        return 1


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        crm_api_key="ghl_key",
        crm_location_id="loc_1",
    )


@pytest.fixture
def contacts_repo():
    return FakeContactsRepo()


@pytest.fixture
def provider():
    return FakeStripeProvider(
        customers={"cus_1": ContactIdentity.from_parts(email="sub@x.com", name="Sam Sub", phone="+15550001")}
    )


@pytest.fixture
def pipeline(provider, contacts_repo):
    return WebhookSyncPipeline(provider, contact_sync=ContactSync(contacts_repo))


@pytest.fixture
def app_instance(settings, pipeline):
    from main import create_app

    return create_app(settings=settings, pipeline=pipeline)


@pytest.fixture
def client(app_instance):
    with TestClient(app_instance) as c:
        yield c


@pytest.fixture
def post_event(client):
    def _post(event: dict, secret: str = WEBHOOK_SECRET, signature: Optional[str] = None):
        body = encode_event(event)
        sig = signature if signature is not None else sign_payload(body, secret)
        return client.post(
            "/api/stripe/webhook",
            content=body,
            headers={"stripe-signature": sig, "content-type": "application/json"},
        )

    return _post
