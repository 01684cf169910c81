from __future__ import annotations

import pytest

from storyline_engine.orchestration.progress import ProgressTracker
from storyline_engine.orchestration.tasks import (
    CAPABILITY_BENCHMARK,
    COMPETITIVE_LANDSCAPE,
    MARKET_SIZING,
    PARTNERSHIPS,
    STRATEGIC_OPTIONS,
    TaskDefinition,
    TaskGraph,
    default_task_graph,
)
from storyline_engine.schemas.progress import TaskEventStatus
from storyline_engine.schemas.results import ResultSource


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def graph():
    return default_task_graph()


def test_progress_accumulates_weights_and_reaches_exactly_one_hundred(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    events = []
    tracker.subscribe(events.append)
    tracker.start()

    seen = []
    for task_id in (MARKET_SIZING, COMPETITIVE_LANDSCAPE, CAPABILITY_BENCHMARK, STRATEGIC_OPTIONS, PARTNERSHIPS):
        task = graph.get(task_id)
        tracker.on_task_event(task, TaskEventStatus.STARTING)
        clock.advance(2.0)
        tracker.on_task_event(task, TaskEventStatus.COMPLETED)
        seen.append(tracker.current_progress())

    assert seen == [20.0, 40.0, 60.0, 85.0, 100.0]
    assert events[0].phase == "Initializing"
    assert events[-1].progress == 100.0
    assert events[-1].phase == "Partnership Strategy"
    assert events[-1].phase_number == 4
    assert events[-1].total_phases == 4
    assert events[-1].estimated_remaining == 0.0


def test_fallback_completion_counts_and_failure_does_not(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    tracker.start()

    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.COMPLETED, produced_by=ResultSource.FALLBACK)
    tracker.on_task_event(graph.get(COMPETITIVE_LANDSCAPE), TaskEventStatus.FAILED)

    assert tracker.current_progress() == 20.0
    summary = tracker.execution_summary()
    assert summary["completed_tasks"] == 1
    assert summary["failed_tasks"] == 1
    assert summary["fallback_tasks"] == 1
    assert summary["success_rate"] == pytest.approx(0.2)


def test_duplicate_completion_does_not_double_count(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    task = graph.get(STRATEGIC_OPTIONS)

    tracker.on_task_event(task, TaskEventStatus.COMPLETED)
    assert tracker.on_task_event(task, TaskEventStatus.COMPLETED) is None

    assert tracker.current_progress() == 25.0


def test_estimated_remaining_is_none_until_progress_is_made(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    tracker.start()
    assert tracker.estimated_remaining() is None

    clock.advance(10.0)
    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.COMPLETED)

    # 10s for 20% -> 50s total, 40s left.
    assert tracker.estimated_remaining() == pytest.approx(40.0)


def test_zero_weight_task_keeps_progress_below_one_hundred(clock):
    graph = TaskGraph(
        [
            TaskDefinition(task_id="main", display_name="Main", endpoint_binding="m", weight=100),
            TaskDefinition(task_id="extra", display_name="Extra", endpoint_binding="e", dependencies={"main"}),
        ]
    )
    tracker = ProgressTracker(graph, clock=clock)

    tracker.on_task_event(graph.get("main"), TaskEventStatus.COMPLETED)
    assert tracker.current_progress() < 100.0

    tracker.on_task_event(graph.get("extra"), TaskEventStatus.COMPLETED)
    assert tracker.current_progress() == 100.0


def test_failing_subscriber_does_not_stop_other_subscribers(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    received = []

    def broken(event):
        raise RuntimeError("subscriber exploded")

    tracker.subscribe(broken)
    tracker.subscribe(received.append)

    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.COMPLETED)

    assert len(received) == 1
    assert received[0].task_id == MARKET_SIZING


def test_unsubscribe_stops_delivery(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    received = []
    tracker.subscribe(received.append)
    tracker.unsubscribe(received.append)

    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.COMPLETED)

    assert received == []


def test_current_status_walks_through_run(graph, clock):
    tracker = ProgressTracker(graph, clock=clock)
    assert tracker.current_status()["status"] == "not_started"

    tracker.start()
    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.STARTING)
    tracker.on_task_event(graph.get(MARKET_SIZING), TaskEventStatus.COMPLETED)
    status = tracker.current_status()
    assert status["status"] == "in_progress"
    assert status["message"] == "Executing: Analyzing the pension market by product"

    for task in graph:
        tracker.on_task_event(task, TaskEventStatus.COMPLETED)
    clock.advance(75.0)
    final = tracker.current_status()
    assert final["status"] == "completed"
    assert final["message"] == "Analysis completed in 1m 15s"


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0.25, "250ms"), (12.4, "12s"), (75.0, "1m 15s"), (600.0, "10m 0s")],
)
def test_format_duration(seconds, expected):
    assert ProgressTracker.format_duration(seconds) == expected
