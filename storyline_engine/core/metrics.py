from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

AGENT_CALL_LATENCY_SECONDS = Histogram(
    "storyline_agent_call_latency_seconds",
    "Latency of individual agent endpoint calls",
    labelnames=("task", "outcome"),
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
)

AGENT_CALL_TOTAL = Counter(
    "storyline_agent_call_total",
    "Agent endpoint calls grouped by outcome (success/timeout/transport/http/response)",
    labelnames=("task", "outcome"),
)

AGENT_RETRY_TOTAL = Counter(
    "storyline_agent_retry_total",
    "Retries scheduled after a failed agent call",
    labelnames=("task",),
)

AGENT_VALIDATION_WARNING_TOTAL = Counter(
    "storyline_agent_validation_warning_total",
    "Agent responses that were patched because required fields were missing",
    labelnames=("task",),
)

TASK_FALLBACK_TOTAL = Counter(
    "storyline_task_fallback_total",
    "Tasks completed with static fallback content after exhausting retries",
    labelnames=("task",),
)

RUNS_TOTAL = Counter(
    "storyline_runs_total",
    "Orchestrator runs by status",
    labelnames=("entry_point", "status"),
)

RUN_LATENCY_SECONDS = Histogram(
    "storyline_run_latency_seconds",
    "End-to-end orchestrator runtime",
    labelnames=("entry_point",),
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 900, float("inf")),
)

RUNS_ACTIVE_GAUGE = Gauge(
    "storyline_runs_active",
    "Orchestrator runs in flight",
    labelnames=("entry_point",),
)

RUN_PROGRESS_GAUGE = Gauge(
    "storyline_run_progress_percent",
    "Last reported weighted progress of a run",
    labelnames=("run_id",),
)

PHASES_SKIPPED_TOTAL = Counter(
    "storyline_phases_skipped_total",
    "Phases skipped because no task was ready",
)


def observe_agent_call(*, task: str, outcome: str, latency: float) -> None:
    AGENT_CALL_TOTAL.labels(task=task, outcome=outcome).inc()
    AGENT_CALL_LATENCY_SECONDS.labels(task=task, outcome=outcome).observe(max(0.0, latency))


def increment_agent_retry(*, task: str) -> None:
    AGENT_RETRY_TOTAL.labels(task=task).inc()


def increment_validation_warning(*, task: str) -> None:
    AGENT_VALIDATION_WARNING_TOTAL.labels(task=task).inc()


def increment_task_fallback(*, task: str) -> None:
    TASK_FALLBACK_TOTAL.labels(task=task).inc()


def increment_phase_skipped() -> None:
    PHASES_SKIPPED_TOTAL.inc()


def mark_run_started(*, entry_point: str) -> None:
    RUNS_ACTIVE_GAUGE.labels(entry_point=entry_point).inc()
    RUNS_TOTAL.labels(entry_point, "started").inc()


def mark_run_completed(*, entry_point: str, status: str, latency: float) -> None:
    RUNS_ACTIVE_GAUGE.labels(entry_point=entry_point).dec()
    RUNS_TOTAL.labels(entry_point, status).inc()
    RUN_LATENCY_SECONDS.labels(entry_point=entry_point).observe(max(0.0, latency))


def observe_progress(*, run_id: str, progress: float) -> None:
    RUN_PROGRESS_GAUGE.labels(run_id=run_id).set(max(0.0, min(100.0, progress)))


def clear_progress(*, run_id: str) -> None:
    try:
        RUN_PROGRESS_GAUGE.remove(run_id)
    except KeyError:
        pass
