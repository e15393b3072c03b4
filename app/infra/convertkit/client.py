import asyncio
import logging
from typing import Optional, Sequence

import requests

from app.core.config import Settings
from app.core.errors import truncate_body

logger = logging.getLogger("uvicorn.error")


class ConvertKitClient:
    """Form and tag subscribe calls. Every call is best-effort."""

    def __init__(
        self,
        api_key: str,
        form_id: str = "",
        tag_ids: Sequence[str] = (),
        base_url: str = "https://api.convertkit.com/v3",
        timeout_sec: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.form_id = form_id
        self.tag_ids = tuple(tag_ids)
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "ConvertKitClient":
        return cls(
            api_key=settings.convertkit_api_key,
            form_id=settings.convertkit_form_id,
            tag_ids=settings.convertkit_tag_ids,
            base_url=settings.convertkit_base_url,
            timeout_sec=settings.http_timeout_sec,
            session=session,
        )

    def _post(self, path: str, payload: dict) -> requests.Response:
        return self._session.post(
            f"{self.base_url}/{path}",
            json={"api_key": self.api_key, **payload},
            timeout=self.timeout_sec,
        )

    async def _post_soft(self, label: str, path: str, payload: dict) -> bool:
        try:
            r = await asyncio.to_thread(self._post, path, payload)
        except Exception as e:
            logger.warning("[convertkit] %s skipped: %s", label, e)
            return False
        if r.status_code >= 300:
            logger.warning("[convertkit] %s failed: %s %s", label, r.status_code, truncate_body(r.text, 200))
            return False
        return True

    async def subscribe(self, email: str, first_name: str = "") -> int:
        """Subscribe to the configured form and tags. Returns the number of successful calls."""
        if not self.api_key or not email:
            return 0

        ok = 0
        if self.form_id:
            if await self._post_soft(
                f"form {self.form_id}",
                f"forms/{self.form_id}/subscribe",
                {"email": email, "first_name": first_name or ""},
            ):
                ok += 1

        for tag_id in self.tag_ids:
            if await self._post_soft(f"tag {tag_id}", f"tags/{tag_id}/subscribe", {"email": email}):
                ok += 1
        return ok

    def close(self) -> None:
        self._session.close()
