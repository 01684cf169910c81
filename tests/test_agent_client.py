from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from storyline_engine.core import metrics
from storyline_engine.core.errors import (
    AgentHTTPError,
    AgentResponseError,
    AgentTimeoutError,
    AgentTransportError,
)
from storyline_engine.orchestration.inputs import build_input
from storyline_engine.orchestration.tasks import MARKET_SIZING, default_task_graph
from storyline_engine.schemas.context import ProjectContext
from storyline_engine.services.agent_client import (
    AgentClient,
    AgentClientConfig,
    normalize_agent_payload,
    serialize_request,
)


@pytest.fixture
def observed(monkeypatch):
    calls: list[tuple[str, str]] = []
    warnings: list[str] = []

    def fake_observe(*, task: str, outcome: str, latency: float) -> None:
        calls.append((task, outcome))

    monkeypatch.setattr(metrics, "observe_agent_call", fake_observe)
    monkeypatch.setattr(metrics, "increment_validation_warning", lambda *, task: warnings.append(task))
    return {"calls": calls, "warnings": warnings}


def _config(**overrides) -> AgentClientConfig:
    config = AgentClientConfig(base_url="http://agents.local", api_key="secret-key", timeout_seconds=0.5)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def _request():
    graph = default_task_graph()
    return build_input(graph.get(MARKET_SIZING), ProjectContext(), {})


@pytest.mark.asyncio
async def test_call_posts_to_execute_endpoint_and_normalises(observed):
    seen: dict[str, object] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["api_key"] = request.headers.get("X-API-Key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "slide_content": {"title": "Market", "market_segments": [{"pillar": "3rd Pillar"}]},
                "insights": ["Growth is strong", {"text": "3a leads"}],
                "citations": ["Monitor"],
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        response = await client.call("agent-123", _request(), task_name=MARKET_SIZING)

    assert seen["path"] == "/api/custom-agents/agent-123/execute"
    assert seen["api_key"] == "secret-key"
    body = seen["body"]
    assert isinstance(body, dict)
    assert isinstance(body["message"], str)
    assert json.loads(body["message"])["task_id"] == "task_slide1_market_sizing"
    assert "data_sources" not in body["context"]
    assert "validation_rules" not in body["context"]
    assert body["data"]["data_sources"]["max_search_attempts"] == 13

    assert response.content["title"] == "Market"
    assert response.insights == ["Growth is strong", "3a leads"]
    assert response.citations == ["Monitor"]
    assert response.validation_warning is None
    assert observed["calls"] == [(MARKET_SIZING, "success")]


@pytest.mark.asyncio
async def test_missing_insights_are_patched_with_warning(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"slide_content": {"title": "Only content"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        response = await client.call("agent-123", _request(), task_name="Market Sizing")

    assert response.insights == ["Market Sizing completed with limited output"]
    assert response.validation_warning == "Missing insights"
    assert observed["warnings"] == ["Market Sizing"]


@pytest.mark.asyncio
async def test_http_error_carries_status_and_body(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream overloaded")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        with pytest.raises(AgentHTTPError) as excinfo:
            await client.call("agent-123", _request(), task_name=MARKET_SIZING)

    assert excinfo.value.status == 503
    assert excinfo.value.body == "upstream overloaded"
    assert excinfo.value.outcome == "http"
    assert observed["calls"] == [(MARKET_SIZING, "http")]


@pytest.mark.asyncio
async def test_non_json_body_raises_response_error(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        with pytest.raises(AgentResponseError):
            await client.call("agent-123", _request(), task_name=MARKET_SIZING)


@pytest.mark.asyncio
async def test_transport_failure_raises_transport_error(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        with pytest.raises(AgentTransportError):
            await client.call("agent-123", _request(), task_name=MARKET_SIZING)

    assert observed["calls"] == [(MARKET_SIZING, "transport")]


@pytest.mark.asyncio
async def test_httpx_timeout_raises_timeout_error(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        with pytest.raises(AgentTimeoutError):
            await client.call("agent-123", _request(), task_name=MARKET_SIZING)


@pytest.mark.asyncio
async def test_hard_timeout_applies_to_slow_endpoint(observed):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        with pytest.raises(AgentTimeoutError):
            await client.call("agent-123", _request(), task_name=MARKET_SIZING, timeout=0.05)

    assert observed["calls"] == [(MARKET_SIZING, "timeout")]


def test_normalize_reads_nested_shapes_and_copies_title():
    normalized = normalize_agent_payload(
        {
            "title": "Top level title",
            "data": {"slide_content": {"player_categories": [{"category_id": "x"}]}},
            "key_findings": ["finding"],
            "sources": [{"url": "https://example.org"}],
        },
        task_name="Competitive Landscape",
    )

    assert normalized.content["player_categories"] == [{"category_id": "x"}]
    assert normalized.content["title"] == "Top level title"
    assert normalized.insights == ["finding"]
    assert normalized.citations == [{"url": "https://example.org"}]
    assert normalized.validation_warning is None


def test_normalize_non_mapping_payload():
    normalized = normalize_agent_payload(["unexpected"], task_name="Partnerships")

    assert normalized.content == {}
    assert normalized.insights == ["Partnerships completed with limited output"]
    assert normalized.validation_warning == "Invalid output format"


def test_normalize_empty_payload_reports_both_gaps():
    normalized = normalize_agent_payload({}, task_name="X")

    assert normalized.validation_warning == "Missing content and insights"


def test_serialize_request_keeps_full_data_block():
    body = serialize_request(_request())

    assert set(body) == {"message", "context", "data"}
    assert body["context"]["task_id"] == body["data"]["task_id"]
    assert "validation_rules" in body["data"]


@pytest.mark.asyncio
async def test_check_all_reports_each_agent(observed):
    graph = default_task_graph()
    failing = graph.get(MARKET_SIZING).endpoint_binding

    async def handler(request: httpx.Request) -> httpx.Response:
        if failing in request.url.path:
            return httpx.Response(500, json={"error": "down"})
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://agents.local") as http:
        client = AgentClient(_config(), client=http)
        report = await client.check_all(graph)

    assert report["total_agents"] == 5
    assert report["connected_agents"] == 4
    assert report["all_connected"] is False
    market = next(agent for agent in report["agents"] if agent["task_id"] == MARKET_SIZING)
    assert market["connected"] is False
    assert market["status"] == 500


def test_normalize_keeps_present_but_empty_insights():
    normalized = normalize_agent_payload(
        {"slide_content": {"title": "T"}, "insights": []},
        task_name="Market Sizing",
    )

    assert normalized.insights == []
    assert normalized.content == {"title": "T"}
    assert normalized.validation_warning is None


def test_normalize_keeps_present_but_empty_content():
    normalized = normalize_agent_payload({"slide_content": {}, "insights": ["one"]}, task_name="Partnerships")

    assert normalized.content == {}
    assert normalized.insights == ["one"]
    assert normalized.validation_warning is None


def test_normalize_prefers_later_non_empty_insights_over_empty_list():
    normalized = normalize_agent_payload(
        {"slide_content": {"title": "T"}, "insights": [], "key_findings": ["finding"]},
        task_name="Market Sizing",
    )

    assert normalized.insights == ["finding"]
    assert normalized.validation_warning is None


def test_normalize_treats_wrong_type_as_missing():
    normalized = normalize_agent_payload({"slide_content": "text", "insights": "text"}, task_name="X")

    assert normalized.insights == ["X completed with limited output"]
    assert normalized.validation_warning == "Missing content and insights"
