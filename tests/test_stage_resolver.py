import asyncio

import pytest
import requests

from conftest import FakeResponse, FakeSession

from app.core.errors import StageNotFoundError
from app.infra.crm.client import CrmClient
from app.infra.crm.stages import StageIdResolver, log_pipelines_and_stages
from cache_ttl import TTLCache

BASE = "https://crm.test/v1"


class StageSession(FakeSession):
    """Tells the filtered and unfiltered opportunity listings apart by their params."""

    def __init__(self, filtered=None, unfiltered=None, pipeline=None, error_on=None):
        super().__init__()
        self.filtered = filtered or FakeResponse(404, text="not found")
        self.unfiltered = unfiltered or FakeResponse(404, text="not found")
        self.pipeline = pipeline or FakeResponse(404, text="not found")
        self.error_on = error_on

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params})
        if url.endswith("/opportunities/"):
            kind = "filtered" if params and "pipelineId" in params else "unfiltered"
        else:
            kind = "pipeline"
        if kind == self.error_on:
            raise requests.ConnectionError("boom")
        return getattr(self, kind)


def _resolver(session, clock=None):
    client = CrmClient("key", "loc_1", BASE, session=session)
    return StageIdResolver(client, TTLCache(max_items=8, default_ttl_sec=60, clock=clock))


def test_filtered_opportunities_hit():
    session = StageSession(
        filtered=FakeResponse(200, {"opportunities": [{"stageName": " trial ", "stageId": "st_1"}]})
    )
    assert asyncio.run(_resolver(session).resolve("p_1", "Trial")) == "st_1"
    assert len(session.calls) == 1
    assert session.calls[0]["params"] == {"pipelineId": "p_1", "limit": 100}


def test_unfiltered_prefers_matching_pipeline():
    session = StageSession(
        unfiltered=FakeResponse(
            200,
            [
                {"pipelineId": "p_other", "stageName": "Trial", "stageId": "st_other"},
                {"pipelineId": "p_1", "stageName": "Trial", "stageId": "st_1"},
            ],
        )
    )
    assert asyncio.run(_resolver(session).resolve("p_1", "Trial")) == "st_1"


def test_unfiltered_falls_back_to_any_pipeline():
    session = StageSession(
        unfiltered=FakeResponse(200, {"data": [{"pipelineId": "p_other", "stageName": "Trial", "stageId": "st_x"}]})
    )
    assert asyncio.run(_resolver(session).resolve("p_1", "Trial")) == "st_x"


@pytest.mark.parametrize(
    "body",
    [
        {"stages": [{"id": "st_9", "name": "Trial"}]},
        {"pipeline": {"stages": [{"id": "st_9", "name": "TRIAL"}]}},
        {"data": {"stages": [{"id": "st_9", "name": "trial"}]}},
    ],
)
def test_pipeline_object_shapes(body):
    session = StageSession(pipeline=FakeResponse(200, body))
    assert asyncio.run(_resolver(session).resolve("p 1", "Trial")) == "st_9"
    assert session.calls[-1]["url"] == f"{BASE}/pipelines/p%201"


def test_probe_error_moves_to_next_probe():
    session = StageSession(
        error_on="filtered",
        pipeline=FakeResponse(200, {"stages": [{"id": "st_9", "name": "Trial"}]}),
    )
    assert asyncio.run(_resolver(session).resolve("p_1", "Trial")) == "st_9"


def test_not_found_raises():
    session = StageSession(
        filtered=FakeResponse(200, {"opportunities": [{"stageName": "Won", "stageId": "st_w"}]}),
        pipeline=FakeResponse(200, text="not json"),
    )
    with pytest.raises(StageNotFoundError) as info:
        asyncio.run(_resolver(session).resolve("p_1", "Trial"))
    assert info.value.stage_name == "Trial"
    assert len(session.calls) == 3


def test_cached_hit_skips_network_until_expiry():
    now = [1000.0]
    session = StageSession(
        filtered=FakeResponse(200, {"opportunities": [{"stageName": "Trial", "stageId": "st_1"}]})
    )
    resolver = _resolver(session, clock=lambda: now[0])

    asyncio.run(resolver.resolve("p_1", "Trial"))
    asyncio.run(resolver.resolve("p_1", "Trial"))
    assert len(session.calls) == 1

    now[0] += 61
    asyncio.run(resolver.resolve("p_1", "Trial"))
    assert len(session.calls) == 2


def test_debug_dump_logs_pipelines_and_stages(caplog):
    session = FakeSession(
        routes={
            ("GET", "/pipelines/"): FakeResponse(200, {"pipelines": [{"id": "p_1", "name": "Sales"}, {"name": "no id"}]}),
            ("GET", "/pipelines/p_1/stages"): FakeResponse(200, {"stages": [{"id": "st_1", "name": "Trial"}]}),
        }
    )
    client = CrmClient("key", "loc_1", BASE, session=session)

    with caplog.at_level("INFO", logger="uvicorn.error"):
        asyncio.run(log_pipelines_and_stages(client))

    assert "Sales" in caplog.text
    assert "st_1" in caplog.text
    assert len(session.calls) == 2


def test_debug_dump_never_raises(caplog):
    client = CrmClient("key", "loc_1", BASE, session=FakeSession(error=requests.ConnectionError("down")))
    with caplog.at_level("WARNING", logger="uvicorn.error"):
        asyncio.run(log_pipelines_and_stages(client))
    assert "[crm-debug] error" in caplog.text
