from __future__ import annotations


class AgentCallError(RuntimeError):
    """Base class for failures of a single agent endpoint call."""

    outcome = "error"

    def __init__(self, message: str, *, task: str | None = None) -> None:
        super().__init__(message)
        self.task = task


class AgentTimeoutError(AgentCallError):
    """Raised when an agent call exceeds its timeout."""

    outcome = "timeout"


class AgentTransportError(AgentCallError):
    """Raised when the agent endpoint cannot be reached."""

    outcome = "transport"


class AgentHTTPError(AgentCallError):
    """Raised when the agent endpoint answers with a non-success status."""

    outcome = "http"

    def __init__(self, message: str, *, status: int, body: str = "", task: str | None = None) -> None:
        super().__init__(message, task=task)
        self.status = status
        self.body = body


class AgentResponseError(AgentCallError):
    """Raised when the agent endpoint answers with a body that is not a JSON document."""

    outcome = "response"


class OrchestrationFatalError(RuntimeError):
    """Raised for failures outside the per-task retry and fallback machinery."""


class DuplicateResultError(OrchestrationFatalError):
    """Raised when a task result is written twice within one run."""


class RunDeadlineExceededError(OrchestrationFatalError):
    """Raised when a whole run outlives the configured run deadline."""


class TaskGraphError(ValueError):
    """Raised when a task graph is inconsistent (cycles, unknown dependencies, bad weights)."""
