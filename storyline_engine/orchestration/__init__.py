"""
Orchestration Package

Task graph and phase leveling, request building, retry-with-fallback
execution and weighted progress tracking. The orchestrator itself lives in
``storyline_engine.orchestration.orchestrator``.
"""

from .executor import AgentCaller, RetryingAgentRunner
from .inputs import build_input
from .progress import ProgressTracker
from .tasks import TaskDefinition, TaskGraph, build_task_graph, compute_phases, default_task_graph

__all__ = [
    "AgentCaller",
    "ProgressTracker",
    "RetryingAgentRunner",
    "TaskDefinition",
    "TaskGraph",
    "build_input",
    "build_task_graph",
    "compute_phases",
    "default_task_graph",
]
