from __future__ import annotations

from storyline_engine.orchestration.inputs import (
    DEFAULT_COMPETITORS,
    DEFAULT_ECOSYSTEM_COMPONENTS,
    DEFAULT_STRATEGIC_INSIGHTS,
    build_input,
    extract_best_in_class_competitors,
    extract_ecosystem_components,
    synthesize_strategic_inputs,
)
from storyline_engine.orchestration.tasks import (
    CAPABILITY_BENCHMARK,
    COMPETITIVE_LANDSCAPE,
    MARKET_SIZING,
    PARTNERSHIPS,
    STRATEGIC_OPTIONS,
    build_task_graph,
    default_task_graph,
)
from storyline_engine.schemas.context import ProjectContext
from storyline_engine.schemas.results import ResultSource, TaskResult

from tests.helpers.stubs import diamond_graph


def _result(task_id: str, *, content=None, insights=None, produced_by=ResultSource.REAL) -> TaskResult:
    return TaskResult(
        task_id=task_id,
        content=content or {},
        insights=insights or [],
        produced_by=produced_by,
    )


def test_market_sizing_request_carries_project_context():
    graph = default_task_graph()
    context = ProjectContext(client_name="Acme Bank", geography="Austria", brief="Grow retirement assets")

    request = build_input(graph.get(MARKET_SIZING), context, {})

    assert request.agent_id == graph.get(MARKET_SIZING).endpoint_binding
    assert request.project.client_name == "Acme Bank"
    assert request.slide.title == "Austria pension market size by product line"
    assert request.brief_context.brief_summary == "Grow retirement assets"
    assert request.dependencies == {}


def test_capability_benchmark_uses_competitive_landscape_players():
    graph = default_task_graph()
    competitive = _result(
        COMPETITIVE_LANDSCAPE,
        content={
            "player_categories": [
                {"category_id": "retirement_advisors", "key_players": ["Advisor Co"]},
                {"category_id": "niche_disruptors", "key_players": ["Brand X", "Techie"]},
            ]
        },
    )

    request = build_input(graph.get(CAPABILITY_BENCHMARK), ProjectContext(), {COMPETITIVE_LANDSCAPE: competitive})

    assert request.dependencies["competitors"] == {
        "best_for_advisors": "Advisor Co",
        "best_for_technology": "Techie",
        "best_for_marketing": "Brand X",
    }
    assert "Advisor capacity (UBS vs Advisor Co)" in request.instructions["assess_only_3_dimensions"]


def test_fallback_dependency_is_consumed_like_a_live_one():
    graph = default_task_graph()
    content = {"player_categories": [{"category_id": "retirement_advisors", "key_players": ["Advisor Co"]}]}
    live = _result(COMPETITIVE_LANDSCAPE, content=content)
    fallback = _result(COMPETITIVE_LANDSCAPE, content=content, produced_by=ResultSource.FALLBACK)
    task = graph.get(CAPABILITY_BENCHMARK)

    from_live = build_input(task, ProjectContext(), {COMPETITIVE_LANDSCAPE: live})
    from_fallback = build_input(task, ProjectContext(), {COMPETITIVE_LANDSCAPE: fallback})

    assert from_live == from_fallback


def test_strategic_options_synthesises_all_three_upstream_results():
    graph = default_task_graph()
    results = {
        MARKET_SIZING: _result(MARKET_SIZING, insights=["market grows"]),
        COMPETITIVE_LANDSCAPE: _result(COMPETITIVE_LANDSCAPE, insights=["disruptors rise"]),
    }

    request = build_input(graph.get(STRATEGIC_OPTIONS), ProjectContext(), results)

    key_insights = request.dependencies["key_insights"]
    assert key_insights["market_sizing"] == ["market grows"]
    assert key_insights["competitive_landscape"] == ["disruptors rise"]
    assert key_insights["capability_gaps"] == DEFAULT_STRATEGIC_INSIGHTS[CAPABILITY_BENCHMARK]


def test_partnerships_receive_ecosystem_components():
    graph = default_task_graph()
    strategic = _result(
        STRATEGIC_OPTIONS,
        content={"ecosystem_components": [{"component_name": "Data aggregation"}, "Tax advisory"]},
    )

    request = build_input(graph.get(PARTNERSHIPS), ProjectContext(), {STRATEGIC_OPTIONS: strategic})

    assert request.dependencies["ecosystem_components"] == ["Data aggregation", "Tax advisory"]


def test_framework_builders_resolve_dependencies_by_framework_not_task_id():
    graph = build_task_graph(
        [
            {"id": "landscape", "framework": COMPETITIVE_LANDSCAPE, "weight": 50},
            {"id": "benchmark", "framework": CAPABILITY_BENCHMARK, "dependencies": ["landscape"], "weight": 50},
        ]
    )
    landscape = _result(
        "landscape",
        content={"player_categories": [{"category_id": "retirement_advisors", "key_players": ["Advisor Co"]}]},
    )

    request = build_input(graph.get("benchmark"), ProjectContext(), {"landscape": landscape}, graph=graph)
    unresolved = build_input(graph.get("benchmark"), ProjectContext(), {"landscape": landscape})

    assert request.dependencies["competitors"]["best_for_advisors"] == "Advisor Co"
    assert unresolved.dependencies["competitors"] == DEFAULT_COMPETITORS


def test_undeclared_results_are_ignored():
    graph = diamond_graph()
    results = {
        "A": _result("A", content={"title": "a"}, insights=["from a"]),
        "B": _result("B", insights=["from b"]),
        "unrelated": _result("unrelated", insights=["noise"]),
    }

    request = build_input(graph.get("C"), ProjectContext(), results)

    assert set(request.dependencies) == {"A", "B"}
    assert request.dependencies["A"] == {"content": {"title": "a"}, "insights": ["from a"]}
    assert request.slide.framework_id == "generic"


def test_digests_fall_back_to_defaults():
    assert extract_best_in_class_competitors(None) == DEFAULT_COMPETITORS
    assert extract_ecosystem_components(_result(STRATEGIC_OPTIONS)) == DEFAULT_ECOSYSTEM_COMPONENTS
    assert synthesize_strategic_inputs(None, None, None)["market_sizing"] == DEFAULT_STRATEGIC_INSIGHTS[MARKET_SIZING]
