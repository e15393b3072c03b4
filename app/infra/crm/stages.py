"""
Stage-name -> stage-id resolution for the CRM v1 API.

The v1 API has no stable "list stages" endpoint across tenants, so the id is
discovered by probing three response shapes in order:

1. opportunities filtered by pipeline (404s on some tenants)
2. all opportunities, filtered client-side
3. the pipeline object, which sometimes embeds its stage list

The first hit is cached for the life of the injected cache entry.
"""

import json
import logging
from typing import Any, Callable, List, Optional
from urllib.parse import quote

from app.core.errors import StageNotFoundError, truncate_body
from app.infra.crm.client import CrmClient
from cache_ttl import TTLCache

logger = logging.getLogger("uvicorn.error")


def _safe_json(text: str, default: Any) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return default


def _as_list(data: Any, *keys: str) -> List[dict]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    if isinstance(data, dict):
        for key in keys:
            inner = data.get(key)
            if isinstance(inner, list):
                return [x for x in inner if isinstance(x, dict)]
    return []


class StageIdResolver:
    def __init__(self, client: CrmClient, cache: TTLCache):
        self.client = client
        self.cache = cache

    async def resolve(self, pipeline_id: str, stage_name: str) -> str:
        key = f"{pipeline_id}::{stage_name}"
        cached = self.cache.get(key)
        if cached:
            return cached

        wanted = (stage_name or "").strip().lower()

        def matches(name: Any) -> bool:
            return str(name or "").strip().lower() == wanted

        probes = (
            ("opps (filtered)", self._probe_filtered_opportunities),
            ("opps (unfiltered)", self._probe_all_opportunities),
            ("pipeline object", self._probe_pipeline_object),
        )
        for label, probe in probes:
            try:
                stage_id = await probe(pipeline_id, matches)
            except Exception as e:
                logger.warning("[crm-stage] %s probe error: %s", label, e)
                continue
            if stage_id:
                self.cache.set(key, stage_id)
                logger.info("[crm-stage] resolved stageId from %s: %s -> %s", label, stage_name, stage_id)
                return stage_id

        raise StageNotFoundError(pipeline_id, stage_name)

    async def _fetch(self, label: str, path: str, params: Optional[dict] = None) -> Optional[str]:
        r = await self.client.request("GET", path, params=params)
        if r.status_code < 200 or r.status_code >= 300:
            logger.warning("[crm-stage] %s err: %s %s", label, r.status_code, truncate_body(r.text, 200))
            return None
        return r.text

    async def _probe_filtered_opportunities(self, pipeline_id: str, matches: Callable[[Any], bool]) -> Optional[str]:
        text = await self._fetch("filtered opps", "opportunities/", {"pipelineId": pipeline_id, "limit": 100})
        if text is None:
            return None
        opps = _as_list(_safe_json(text, []), "opportunities", "data")
        hit = next((o for o in opps if matches(o.get("stageName"))), None)
        return (hit or {}).get("stageId") or None

    async def _probe_all_opportunities(self, pipeline_id: str, matches: Callable[[Any], bool]) -> Optional[str]:
        text = await self._fetch("unfiltered opps", "opportunities/", {"limit": 100})
        if text is None:
            return None
        opps = _as_list(_safe_json(text, []), "opportunities", "data")
        hit = next((o for o in opps if o.get("pipelineId") == pipeline_id and matches(o.get("stageName"))), None)
        if hit is None:
            hit = next((o for o in opps if matches(o.get("stageName"))), None)
        return (hit or {}).get("stageId") or None

    async def _probe_pipeline_object(self, pipeline_id: str, matches: Callable[[Any], bool]) -> Optional[str]:
        text = await self._fetch("pipeline object", f"pipelines/{quote(pipeline_id, safe='')}")
        if text is None:
            return None
        data = _safe_json(text, {})
        if not isinstance(data, dict):
            return None
        stages = (
            data.get("stages")
            or (data.get("pipeline") or {}).get("stages")
            or (data.get("data") or {}).get("stages")
            or []
        )
        hit = next((s for s in stages if isinstance(s, dict) and matches(s.get("name"))), None)
        if hit is None:
            logger.warning("[crm-stage] pipeline object had no matching stage; keys=%s", sorted(data.keys()))
            return None
        return hit.get("id") or None


async def log_pipelines_and_stages(client: CrmClient) -> None:
    """Debug aid: log every pipeline and its stages. Never raises."""
    try:
        r = await client.request("GET", "pipelines/")
        if r.status_code >= 300:
            logger.warning("[crm-debug] pipelines failed: %s %s", r.status_code, truncate_body(r.text, 300))
            return
        pipelines = _as_list(_safe_json(r.text, []), "pipelines", "data")
        logger.info("[crm-debug] pipelines: %s", [{"id": p.get("id"), "name": p.get("name")} for p in pipelines])

        for p in pipelines:
            pid = str(p.get("id") or "")
            if not pid:
                continue
            sr = await client.request("GET", f"pipelines/{quote(pid, safe='')}/stages")
            if sr.status_code >= 300:
                logger.warning("[crm-debug] stages failed for %s: %s %s", pid, sr.status_code, truncate_body(sr.text, 300))
                continue
            stages = _as_list(_safe_json(sr.text, []), "stages", "data")
            logger.info(
                "[crm-debug] stages for %s (%s): %s",
                pid,
                p.get("name"),
                [{"id": s.get("id"), "name": s.get("name")} for s in stages],
            )
    except Exception as e:
        logger.warning("[crm-debug] error: %s", e)
