from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping

import httpx

from ..core import metrics
from ..core.config import Settings
from ..core.errors import (
    AgentHTTPError,
    AgentResponseError,
    AgentTimeoutError,
    AgentTransportError,
)
from ..core.logging import get_logger
from ..schemas.agents import AgentRequest
from ..schemas.results import AgentResponse
from .extractors import (
    CITATION_EXTRACTORS,
    CONTENT_EXTRACTORS,
    INSIGHT_EXTRACTORS,
    TITLE_EXTRACTORS,
    first_match,
    has_shape,
)

if TYPE_CHECKING:
    from ..orchestration.tasks import TaskDefinition, TaskGraph

logger = get_logger(name=__name__)

# Blocks that are only forwarded under ``data``; the ``context`` copy stays small.
CONTEXT_EXCLUDED_FIELDS = frozenset({"data_sources", "validation_rules", "pre_filled_data"})
MAX_ERROR_BODY_CHARS = 2_000


@dataclass(slots=True)
class AgentClientConfig:
    base_url: str
    api_key: str | None = None
    api_key_header: str = "X-API-Key"
    execute_path_template: str = "/api/custom-agents/{binding}/execute"
    timeout_seconds: float = 120.0
    connectivity_timeout_seconds: float = 10.0
    verify_ssl: bool = True
    extra_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentClientConfig":
        options = settings.agent_api
        return cls(
            base_url=options.base_url,
            api_key=options.api_key,
            api_key_header=options.api_key_header,
            execute_path_template=options.execute_path_template,
            timeout_seconds=options.timeout_seconds,
            connectivity_timeout_seconds=options.connectivity_timeout_seconds,
            verify_ssl=options.verify_ssl,
            extra_headers=dict(options.extra_headers),
        )


def serialize_request(request: AgentRequest) -> dict[str, Any]:
    """Encode a request into the body shape the agent service expects."""
    data = request.model_dump(mode="json", exclude_none=True)
    context = {key: value for key, value in data.items() if key not in CONTEXT_EXCLUDED_FIELDS}
    return {
        "message": request.model_dump_json(exclude_none=True),
        "context": context,
        "data": data,
    }


def normalize_agent_payload(payload: Any, *, task_name: str) -> AgentResponse:
    """Map a raw agent response onto ``AgentResponse``.

    Missing content or insights never fail the call: the gap is patched with a
    placeholder and reported through ``validation_warning``.
    """
    placeholder = [f"{task_name} completed with limited output"]
    if not isinstance(payload, Mapping):
        return AgentResponse(
            content={},
            insights=placeholder,
            citations=[],
            validation_warning="Invalid output format",
        )

    # A present but empty object or list is valid output; only absence is patched.
    missing: list[str] = []
    content_match = first_match(payload, CONTENT_EXTRACTORS)
    content = dict(content_match.value) if content_match is not None else {}
    if content_match is None and not has_shape(payload, CONTENT_EXTRACTORS, Mapping):
        missing.append("content")

    insights_match = first_match(payload, INSIGHT_EXTRACTORS)
    if insights_match is not None:
        insights = list(insights_match.value)
    elif has_shape(payload, INSIGHT_EXTRACTORS, list):
        insights = []
    else:
        insights = placeholder
        missing.append("insights")

    citations_match = first_match(payload, CITATION_EXTRACTORS)
    citations = list(citations_match.value) if citations_match is not None else []

    if content and "title" not in content:
        title_match = first_match(payload, TITLE_EXTRACTORS)
        if title_match is not None:
            content["title"] = title_match.value

    warning = f"Missing {' and '.join(missing)}" if missing else None
    return AgentResponse(
        content=content,
        insights=insights,
        citations=citations,
        validation_warning=warning,
    )


class AgentClient:
    """Performs one outbound call per invocation; keeps no state between calls."""

    def __init__(self, config: AgentClientConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
            verify=config.verify_ssl,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> "AgentClient":
        return cls(AgentClientConfig.from_settings(settings), client=client)

    @property
    def config(self) -> AgentClientConfig:
        return self._config

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator["AgentClient"]:
        try:
            yield self
        finally:
            await self.aclose()

    def _execute_path(self, binding: str) -> str:
        return self._config.execute_path_template.format(binding=binding)

    def _headers(self) -> dict[str, str]:
        headers = dict(self._config.extra_headers)
        if self._config.api_key:
            headers[self._config.api_key_header] = self._config.api_key
        return headers

    async def call(
        self,
        binding: str,
        request: AgentRequest,
        *,
        task_name: str,
        timeout: float | None = None,
    ) -> AgentResponse:
        limit = timeout if timeout is not None else self._config.timeout_seconds
        path = self._execute_path(binding)
        logger.info("agent_call_started", task=task_name, binding=binding, timeout=limit)
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    path,
                    json=serialize_request(request),
                    headers=self._headers(),
                    timeout=httpx.Timeout(limit),
                ),
                timeout=limit,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            metrics.observe_agent_call(task=task_name, outcome="timeout", latency=time.perf_counter() - start)
            raise AgentTimeoutError(f"Agent {task_name} timed out after {limit:g}s", task=task_name) from exc
        except httpx.RequestError as exc:
            metrics.observe_agent_call(task=task_name, outcome="transport", latency=time.perf_counter() - start)
            raise AgentTransportError(f"Agent {task_name} unreachable: {exc}", task=task_name) from exc

        latency = time.perf_counter() - start
        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            metrics.observe_agent_call(task=task_name, outcome="http", latency=latency)
            logger.warning("agent_call_rejected", task=task_name, status=response.status_code, body=body)
            raise AgentHTTPError(
                f"Agent {task_name} failed ({response.status_code})",
                status=response.status_code,
                body=body,
                task=task_name,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            metrics.observe_agent_call(task=task_name, outcome="response", latency=latency)
            raise AgentResponseError(f"Agent {task_name} returned a non-JSON body", task=task_name) from exc

        metrics.observe_agent_call(task=task_name, outcome="success", latency=latency)
        normalized = normalize_agent_payload(payload, task_name=task_name)
        if normalized.validation_warning:
            metrics.increment_validation_warning(task=task_name)
            logger.warning("agent_output_patched", task=task_name, warning=normalized.validation_warning)
        logger.info("agent_call_completed", task=task_name, latency=round(latency, 3))
        return normalized

    async def check_connectivity(self, task: "TaskDefinition") -> dict[str, Any]:
        limit = self._config.connectivity_timeout_seconds
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self._execute_path(task.endpoint_binding),
                    json={"message": "connectivity_test", "context": {"test": True}},
                    headers=self._headers(),
                    timeout=httpx.Timeout(limit),
                ),
                timeout=limit,
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as exc:
            return {
                "task_id": task.task_id,
                "name": task.display_name,
                "connected": False,
                "error": str(exc) or exc.__class__.__name__,
            }
        return {
            "task_id": task.task_id,
            "name": task.display_name,
            "connected": response.is_success,
            "status": response.status_code,
            "latency": round(time.perf_counter() - start, 3),
        }

    async def check_all(self, graph: "TaskGraph") -> dict[str, Any]:
        agents = list(await asyncio.gather(*(self.check_connectivity(task) for task in graph)))
        connected = sum(1 for agent in agents if agent["connected"])
        logger.info("agent_connectivity_checked", connected=connected, total=len(agents))
        return {
            "total_agents": len(agents),
            "connected_agents": connected,
            "all_connected": connected == len(agents),
            "agents": agents,
        }
