import asyncio
from typing import Any, Optional

import requests

from app.core.config import Settings
from app.core.errors import CrmRequestError


class CrmClient:
    """
    Thin REST client for the CRM v1 API.

    `requests` is blocking, so every call is pushed to a worker thread.
    """

    def __init__(
        self,
        api_key: str,
        location_id: str,
        base_url: str,
        timeout_sec: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.location_id = location_id
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "CrmClient":
        return cls(
            api_key=settings.crm_api_key,
            location_id=settings.crm_location_id,
            base_url=settings.crm_base_url,
            timeout_sec=settings.http_timeout_sec,
            session=session,
        )

    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "LocationId": self.location_id,
        }

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, params: Optional[dict] = None, payload: Any = None) -> requests.Response:
        return self._session.request(
            method,
            self.url(path),
            headers=self.headers(),
            params=params,
            json=payload,
            timeout=self.timeout_sec,
        )

    async def request(
        self, method: str, path: str, params: Optional[dict] = None, payload: Any = None
    ) -> requests.Response:
        return await asyncio.to_thread(self._send, method, path, params, payload)

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        r = await self.request("GET", path, params=params)
        return self._decode(r, "GET", path)

    async def post_json(self, path: str, payload: Any) -> Any:
        r = await self.request("POST", path, payload=payload)
        return self._decode(r, "POST", path)

    def _decode(self, r: requests.Response, method: str, path: str) -> Any:
        if r.status_code < 200 or r.status_code >= 300:
            raise CrmRequestError(method, self.url(path), r.status_code, r.text)

        if r.status_code == 204 or not (r.content and r.content.strip()):
            return {}

        try:
            return r.json()
        except ValueError as e:
            raise CrmRequestError(method, self.url(path), r.status_code, f"JSON decode failed: {e}; {r.text}")

    def close(self) -> None:
        self._session.close()
