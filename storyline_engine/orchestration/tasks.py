from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Sequence

from ..core.config import AgentBindingSettings
from ..core.errors import TaskGraphError


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    task_id: str
    display_name: str
    endpoint_binding: str
    dependencies: frozenset[str] = field(default_factory=frozenset)
    weight: float = 0.0
    description: str = ""
    framework: str = "generic"

    def __post_init__(self) -> None:
        if not self.task_id:
            raise TaskGraphError("Task id must not be empty")
        if self.weight < 0:
            raise TaskGraphError(f"Task '{self.task_id}' has a negative weight")
        # Accept any iterable of ids from callers while keeping the field hashable.
        if not isinstance(self.dependencies, frozenset):
            object.__setattr__(self, "dependencies", frozenset(self.dependencies))


class TaskGraph:
    """Immutable task table with computed phases.

    Tasks keep the order in which they were declared; that order is the
    canonical order of the final report. ``phase(t)`` is 1 for tasks without
    dependencies and ``1 + max(phase(d))`` otherwise.
    """

    def __init__(self, tasks: Sequence[TaskDefinition], *, require_full_weight: bool = True) -> None:
        self._tasks: Mapping[str, TaskDefinition] = MappingProxyType(self._index(tasks))
        self._order: tuple[str, ...] = tuple(task.task_id for task in tasks)
        self._validate_dependencies()
        self._phases: Mapping[str, int] = MappingProxyType(compute_phases(self._tasks))
        if require_full_weight:
            self._validate_weights()

    @staticmethod
    def _index(tasks: Sequence[TaskDefinition]) -> dict[str, TaskDefinition]:
        indexed: dict[str, TaskDefinition] = {}
        for task in tasks:
            if task.task_id in indexed:
                raise TaskGraphError(f"Duplicate task id '{task.task_id}'")
            indexed[task.task_id] = task
        return indexed

    def _validate_dependencies(self) -> None:
        for task in self._tasks.values():
            if task.task_id in task.dependencies:
                raise TaskGraphError(f"Task '{task.task_id}' depends on itself")
            missing = sorted(task.dependencies - self._tasks.keys())
            if missing:
                raise TaskGraphError(f"Task '{task.task_id}' depends on unknown tasks: {', '.join(missing)}")

    def _validate_weights(self) -> None:
        total = sum(task.weight for task in self._tasks.values())
        if self._tasks and not math.isclose(total, 100.0, abs_tol=1e-6):
            raise TaskGraphError(f"Task weights must sum to 100, got {total:g}")

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[TaskDefinition]:
        return (self._tasks[task_id] for task_id in self._order)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def get(self, task_id: str) -> TaskDefinition:
        try:
            return self._tasks[task_id]
        except KeyError as exc:
            raise KeyError(f"Unknown task '{task_id}'") from exc

    @property
    def canonical_order(self) -> tuple[str, ...]:
        return self._order

    def phase(self, task_id: str) -> int:
        return self._phases[task_id]

    @property
    def phase_count(self) -> int:
        return max(self._phases.values(), default=0)

    def tasks_in_phase(self, phase: int) -> list[TaskDefinition]:
        return [task for task in self if self._phases[task.task_id] == phase]

    def phases(self) -> list[list[TaskDefinition]]:
        return [self.tasks_in_phase(number) for number in range(1, self.phase_count + 1)]


def compute_phases(tasks: Mapping[str, TaskDefinition]) -> dict[str, int]:
    """Assign each task its topological depth, raising on cycles."""
    phases: dict[str, int] = {}
    visiting: set[str] = set()

    def _resolve(task_id: str, trail: tuple[str, ...]) -> int:
        if task_id in phases:
            return phases[task_id]
        if task_id in visiting:
            cycle = " -> ".join(trail[trail.index(task_id):] + (task_id,))
            raise TaskGraphError(f"Dependency cycle detected: {cycle}")
        task = tasks.get(task_id)
        if task is None:
            raise TaskGraphError(f"Unknown task '{task_id}'")
        visiting.add(task_id)
        depth = 1
        if task.dependencies:
            depth = 1 + max(_resolve(dep, trail + (task_id,)) for dep in sorted(task.dependencies))
        visiting.discard(task_id)
        phases[task_id] = depth
        return depth

    for task_id in tasks:
        _resolve(task_id, ())
    return phases


def build_task_graph(specs: Iterable[Mapping[str, object]], *, require_full_weight: bool = True) -> TaskGraph:
    """Build a graph from plain mappings (``id``, ``name``, ``binding``, ``dependencies``, ``weight``)."""
    tasks = [
        TaskDefinition(
            task_id=str(spec["id"]),
            display_name=str(spec.get("name") or spec["id"]),
            endpoint_binding=str(spec.get("binding") or spec["id"]),
            dependencies=frozenset(spec.get("dependencies") or ()),  # type: ignore[arg-type]
            weight=float(spec.get("weight") or 0.0),  # type: ignore[arg-type]
            description=str(spec.get("description") or ""),
            framework=str(spec.get("framework") or spec["id"]),
        )
        for spec in specs
    ]
    return TaskGraph(tasks, require_full_weight=require_full_weight)


MARKET_SIZING = "market_sizing"
COMPETITIVE_LANDSCAPE = "competitive_landscape"
CAPABILITY_BENCHMARK = "capability_benchmark"
STRATEGIC_OPTIONS = "strategic_options"
PARTNERSHIPS = "partnerships"


def default_task_graph(bindings: AgentBindingSettings | None = None) -> TaskGraph:
    """The five-framework strategy storyline."""
    bindings = bindings or AgentBindingSettings()
    return TaskGraph(
        [
            TaskDefinition(
                task_id=MARKET_SIZING,
                display_name="Market Sizing",
                endpoint_binding=bindings.market_sizing,
                weight=20,
                description="Analyzing the pension market by product",
                framework=MARKET_SIZING,
            ),
            TaskDefinition(
                task_id=COMPETITIVE_LANDSCAPE,
                display_name="Competitive Landscape",
                endpoint_binding=bindings.competitive_landscape,
                weight=20,
                description="Mapping competitive landscape and business models",
                framework=COMPETITIVE_LANDSCAPE,
            ),
            TaskDefinition(
                task_id=CAPABILITY_BENCHMARK,
                display_name="Capability Benchmark",
                endpoint_binding=bindings.capability_benchmark,
                dependencies=frozenset({COMPETITIVE_LANDSCAPE}),
                weight=20,
                description="Benchmarking client capabilities against competitors",
                framework=CAPABILITY_BENCHMARK,
            ),
            TaskDefinition(
                task_id=STRATEGIC_OPTIONS,
                display_name="Strategic Options",
                endpoint_binding=bindings.strategic_options,
                dependencies=frozenset({MARKET_SIZING, COMPETITIVE_LANDSCAPE, CAPABILITY_BENCHMARK}),
                weight=25,
                description="Developing ecosystem strategy options",
                framework=STRATEGIC_OPTIONS,
            ),
            TaskDefinition(
                task_id=PARTNERSHIPS,
                display_name="Partnership Strategy",
                endpoint_binding=bindings.partnerships,
                dependencies=frozenset({STRATEGIC_OPTIONS}),
                weight=15,
                description="Identifying implementation partnerships",
                framework=PARTNERSHIPS,
            ),
        ]
    )
