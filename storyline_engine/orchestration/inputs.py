"""Build the outbound request for a task from the project context and its dependencies.

Everything here is a pure function of its arguments. Dependency results are
read through ``TaskResult.content`` and ``TaskResult.insights`` only, so a
fallback result is consumed exactly like a live one.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol

from ..schemas.agents import (
    AgentRequest,
    BriefContext,
    DataSources,
    KnowledgeBaseRef,
    ProjectBlock,
    SlideSlot,
    SlideSpec,
    ValidationRule,
)
from ..schemas.context import ProjectContext
from ..schemas.results import TaskResult
from .tasks import (
    CAPABILITY_BENCHMARK,
    COMPETITIVE_LANDSCAPE,
    MARKET_SIZING,
    PARTNERSHIPS,
    STRATEGIC_OPTIONS,
    TaskDefinition,
    TaskGraph,
)

FrameworkBuilder = Callable[[TaskDefinition, ProjectContext, Mapping[str, TaskResult]], AgentRequest]


class InputBuilder(Protocol):
    def __call__(
        self,
        task: TaskDefinition,
        context: ProjectContext,
        dependency_results: Mapping[str, TaskResult],
        *,
        graph: TaskGraph | None = None,
    ) -> AgentRequest: ...

URL_INDEX_KB = "68dbb18b69a8c6e904fb940d"
DOCUMENT_INDEX_KB = "68ee09bb3336fc38f961c113"

DEFAULT_COMPETITORS = {
    "best_for_advisors": "VermögensZentrum",
    "best_for_technology": "VIAC",
    "best_for_marketing": "frankly",
}

DEFAULT_STRATEGIC_INSIGHTS = {
    MARKET_SIZING: [
        "Pillar 3a growing fastest at 5.0% CAGR",
        "Total market CHF 1,700bn by 2030",
        "Digital products capturing younger segments",
    ],
    COMPETITIVE_LANDSCAPE: [
        "Digital disruptors gaining traction",
        "Ecosystem platforms emerging as a threat",
        "Incumbents under pressure in digital UX, data aggregation, and advisory",
    ],
    CAPABILITY_BENCHMARK: [
        "RED: Advisor capacity",
        "RED: Technology",
        "RED: Marketing",
    ],
}

DEFAULT_ECOSYSTEM_COMPONENTS = [
    "Data aggregation",
    "Retirement planning (AI-enabled)",
    "Insurance (via 3rd parties)",
    "Reporting (360° view)",
    "Tax advisory",
    "Investment strategy adjustments",
    "Post-retirement activities",
]


def _project_block(context: ProjectContext, *, full: bool = True) -> ProjectBlock:
    return ProjectBlock(
        project_name=context.project_name if full else None,
        client_name=context.client_name,
        client_industry=list(context.industry) if full else [],
        geography=context.geography,
        sector=context.sector,
        project_type="Strategy" if full else None,
    )


def _knowledge_bases(*, described: bool) -> list[KnowledgeBaseRef]:
    if not described:
        return [KnowledgeBaseRef(kb_id=URL_INDEX_KB), KnowledgeBaseRef(kb_id=DOCUMENT_INDEX_KB)]
    return [
        KnowledgeBaseRef(kb_id=URL_INDEX_KB, kb_type="url_index", description="Reputable source URLs"),
        KnowledgeBaseRef(kb_id=DOCUMENT_INDEX_KB, kb_type="document_index", description="Hosted documents"),
    ]


def _research_sources() -> DataSources:
    return DataSources(
        knowledge_bases=_knowledge_bases(described=True),
        search_priority=["knowledge_base", "web_search"],
        min_search_attempts=3,
        max_search_attempts=13,
    )


def _focused_sources() -> DataSources:
    return DataSources(knowledge_bases=_knowledge_bases(described=False), max_search_attempts=5)


def _citation_rule() -> ValidationRule:
    return ValidationRule(
        rule_id="citations_required",
        rule_type="citation",
        parameters={"min_citations": 3, "citation_quality_min": 0.6},
    )


def _insights_slot(description: str) -> SlideSlot:
    return SlideSlot(slot_id="insights", slot_name="Key Insights", slot_type="list", description=description)


def _slide_content(result: TaskResult | None) -> Mapping[str, Any]:
    if result is None:
        return {}
    return result.content


def extract_best_in_class_competitors(result: TaskResult | None) -> dict[str, str]:
    categories = _slide_content(result).get("player_categories")
    if not isinstance(categories, list) or not categories:
        return dict(DEFAULT_COMPETITORS)

    best = dict(DEFAULT_COMPETITORS)
    for category in categories:
        if not isinstance(category, Mapping):
            continue
        players = [player for player in category.get("key_players") or [] if isinstance(player, str)]
        if category.get("category_id") == "retirement_advisors" and players:
            best["best_for_advisors"] = players[0]
        elif category.get("category_id") == "niche_disruptors" and players:
            best["best_for_marketing"] = players[0]
            if len(players) > 1:
                best["best_for_technology"] = players[1]
    return best


def synthesize_strategic_inputs(
    market: TaskResult | None,
    competitive: TaskResult | None,
    capability: TaskResult | None,
) -> dict[str, list[str]]:
    def _insights(result: TaskResult | None, key: str) -> list[str]:
        if result is not None and result.insights:
            return list(result.insights)
        return list(DEFAULT_STRATEGIC_INSIGHTS[key])

    return {
        "market_sizing": _insights(market, MARKET_SIZING),
        "competitive_landscape": _insights(competitive, COMPETITIVE_LANDSCAPE),
        "capability_gaps": _insights(capability, CAPABILITY_BENCHMARK),
    }


def extract_ecosystem_components(result: TaskResult | None) -> list[str]:
    components = _slide_content(result).get("ecosystem_components")
    if not isinstance(components, list) or not components:
        return list(DEFAULT_ECOSYSTEM_COMPONENTS)
    names: list[str] = []
    for component in components:
        if isinstance(component, Mapping):
            name = component.get("component_name") or component.get("name")
            if isinstance(name, str) and name:
                names.append(name)
        elif isinstance(component, str) and component:
            names.append(component)
    return names or list(DEFAULT_ECOSYSTEM_COMPONENTS)


def _build_market_sizing(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    return AgentRequest(
        task_id="task_slide1_market_sizing",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=1,
            framework_id="market_sizing_by_product",
            framework_name="Market Sizing by Product",
            title=f"{context.geography} pension market size by product line",
            slots=[
                SlideSlot(
                    slot_id="market_segments",
                    slot_name="Market Segments by Product",
                    slot_type="table",
                    description="Market size breakdown by product with historical and forecast data",
                ),
                SlideSlot(
                    slot_id="total_market",
                    slot_name="Total Market Size",
                    slot_type="number",
                    description="Aggregate market size across all products",
                ),
                _insights_slot("3-5 key insights about market trends, growth drivers, and implications"),
            ],
        ),
        project=_project_block(context),
        brief_context=BriefContext(
            brief_summary=context.brief
            or (
                f"Define a new product strategy for {context.client_name}'s retirement offering including market"
                " sizing, competitive analysis, capability gaps, and strategic recommendations."
            ),
            key_topics=["market sizing", "pension products", context.geography],
            time_horizon="2019-2030",
            expected_outputs=["market size by product", "growth trends", "strategic implications"],
        ),
        data_sources=_research_sources(),
        validation_rules=[
            ValidationRule(
                rule_id="time_series",
                rule_type="format",
                parameters={"required_years": [2019, 2022, 2025, 2030], "mark_forecasts": True},
            ),
            _citation_rule(),
        ],
        token_budget=12000,
    )


def _build_competitive_landscape(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    return AgentRequest(
        task_id="task_slide2_competitive_landscape",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=2,
            framework_id="competitive_landscape_qualitative",
            framework_name="Qualitative Assessment of Competitive Landscape",
            title=f"{context.geography} pension competitive landscape: evolving business models",
            slots=[
                SlideSlot(
                    slot_id="player_categories",
                    slot_name="Competitive Player Categories",
                    slot_type="matrix",
                    description="Players by business model type with current model, outlook, and named examples",
                ),
                _insights_slot("4-6 key insights about competitive dynamics, threats, and opportunities"),
            ],
        ),
        project=_project_block(context),
        brief_context=BriefContext(
            brief_summary=(
                f"Analyze the {context.geography} pension competitive environment to understand key players,"
                f" business models, and future market dynamics for {context.client_name}."
            ),
            key_topics=["competitive landscape", "business models", "traditional vs digital players"],
            expected_outputs=["player categorization", "business model analysis", "competitive threats"],
        ),
        data_sources=_research_sources(),
        validation_rules=[
            ValidationRule(
                rule_id="player_examples",
                rule_type="presence",
                parameters={"min_players_per_category": 2, "must_include_client": True},
            ),
            _citation_rule(),
        ],
        token_budget=12000,
    )


def _build_capability_benchmark(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    competitors = extract_best_in_class_competitors(dependencies.get(COMPETITIVE_LANDSCAPE))
    return AgentRequest(
        task_id="task_slide3_capability_benchmark",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=3,
            framework_id="capability_benchmark",
            title=f"Capability gaps: {context.client_name} vs best-in-class competitors",
            slots=[
                SlideSlot(
                    slot_id="capability_dimensions",
                    slot_name="Capability Dimensions",
                    description="Assess advisor capacity, technology, and marketing; rate each RED/AMBER/GREEN.",
                ),
                _insights_slot("3-4 insights about critical gaps"),
            ],
        ),
        project=_project_block(context, full=False),
        brief_context=BriefContext(
            brief_summary=f"Compare {context.client_name} pension capabilities against the top competitors.",
            key_topics=["capability gaps", "benchmarking"],
        ),
        dependencies={"competitors": competitors},
        instructions={
            "assess_only_3_dimensions": [
                f"Advisor capacity ({context.client_name} vs {competitors['best_for_advisors']})",
                f"Technology ({context.client_name} vs {competitors['best_for_technology']})",
                f"Marketing ({context.client_name} vs {competitors['best_for_marketing']})",
            ],
            "gap_ratings": {
                "RED": "Major gap, >2x disadvantage",
                "AMBER": "Observable gap",
                "GREEN": "Competitive",
            },
            "max_searches": 5,
        },
        data_sources=_focused_sources(),
    )


def _build_strategic_options(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    synthesized = synthesize_strategic_inputs(
        dependencies.get(MARKET_SIZING),
        dependencies.get(COMPETITIVE_LANDSCAPE),
        dependencies.get(CAPABILITY_BENCHMARK),
    )
    return AgentRequest(
        task_id="task_slide4_strategic_options",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=4,
            framework_id="strategic_option_deep_dive",
            title="Suggested solution: External retirement ecosystem strategy",
            slots=[
                SlideSlot(
                    slot_id="strategic_option",
                    slot_name="Strategic Option",
                    description="Define the ecosystem strategy with rationale and key objectives",
                ),
                SlideSlot(
                    slot_id="ecosystem_components",
                    slot_name="Ecosystem Components",
                    description="Components of the retirement ecosystem",
                ),
                _insights_slot("4-6 insights about why this strategy addresses gaps"),
            ],
        ),
        project=_project_block(context, full=False),
        brief_context=BriefContext(
            brief_summary=(
                f"Recommend an ecosystem strategy for {context.client_name} that addresses capability gaps"
                " through partnerships rather than a full build."
            ),
            strategic_direction="Client-centric retirement ecosystem with state-of-the-art data aggregation",
        ),
        dependencies={"from_slides": [1, 2, 3], "key_insights": synthesized},
        pre_filled_data={
            "option_name": "Client-centric retirement ecosystem",
            "option_type": "Ecosystem/Platform strategy",
            "required_components": list(DEFAULT_ECOSYSTEM_COMPONENTS),
        },
        instructions={
            "your_task": (
                "Expand on the pre-filled strategy. For each ecosystem component describe what it does,"
                " which gap it addresses, and whether to build or partner."
            ),
            "max_searches": 5,
        },
        data_sources=_focused_sources(),
    )


def _build_partnerships(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    components = extract_ecosystem_components(dependencies.get(STRATEGIC_OPTIONS))
    return AgentRequest(
        task_id="task_slide5_partnership_strategy",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=5,
            framework_id="partnership_strategy",
            title="Partnership options to accelerate ecosystem implementation",
            slots=[
                SlideSlot(
                    slot_id="partnership_categories",
                    slot_name="Partnership Categories",
                    description="Digital advisory, advisory referral, and processing partnerships",
                ),
                SlideSlot(
                    slot_id="recommended_approach",
                    slot_name="Recommended Phased Approach",
                    description="3-phase implementation plan with timeline and investment",
                ),
                _insights_slot("4-6 insights about partnership strategy"),
            ],
        ),
        project=_project_block(context, full=False),
        brief_context=BriefContext(
            brief_summary=(
                "Identify specific partnership opportunities to implement the ecosystem strategy quickly"
                " and cost-effectively."
            ),
        ),
        dependencies={"from_slide": 4, "ecosystem_components": components},
        instructions={
            "partnership_categories_to_cover": [
                "Digital advisory (addresses technology + product gaps)",
                "Advisory referral (addresses advisor capacity gap)",
                "Processing (addresses data aggregation foundation)",
            ],
            "max_searches": 5,
        },
        data_sources=_focused_sources(),
    )


def _build_generic(
    task: TaskDefinition, context: ProjectContext, dependencies: Mapping[str, TaskResult]
) -> AgentRequest:
    return AgentRequest(
        task_id=f"task_{task.task_id}",
        agent_id=task.endpoint_binding,
        slide=SlideSpec(
            slide_number=1,
            framework_id=task.framework,
            framework_name=task.display_name,
            title=f"{task.display_name} Analysis",
            slots=[_insights_slot("Key insights for this analysis")],
        ),
        project=_project_block(context),
        brief_context=BriefContext(
            brief_summary=context.brief or context.description or task.description or task.display_name,
        ),
        dependencies={
            dep_id: {"content": result.content, "insights": list(result.insights)}
            for dep_id, result in dependencies.items()
        },
        data_sources=_focused_sources(),
    )


BUILDERS: Mapping[str, FrameworkBuilder] = {
    MARKET_SIZING: _build_market_sizing,
    COMPETITIVE_LANDSCAPE: _build_competitive_landscape,
    CAPABILITY_BENCHMARK: _build_capability_benchmark,
    STRATEGIC_OPTIONS: _build_strategic_options,
    PARTNERSHIPS: _build_partnerships,
}


def _keyed_by_framework(dependencies: Mapping[str, TaskResult], graph: TaskGraph | None) -> dict[str, TaskResult]:
    # Without a graph, task ids are taken to be framework names.
    keyed: dict[str, TaskResult] = {}
    for dep_id, result in dependencies.items():
        framework = graph.get(dep_id).framework if graph is not None and dep_id in graph else dep_id
        keyed.setdefault(framework, result)
    return keyed


def build_input(
    task: TaskDefinition,
    context: ProjectContext,
    dependency_results: Mapping[str, TaskResult],
    *,
    graph: TaskGraph | None = None,
) -> AgentRequest:
    """Return the request for ``task`` using only its declared dependencies.

    Framework builders look dependencies up by framework name, resolved through
    ``graph``; the generic builder forwards them under their task ids.
    """
    declared = {
        dep_id: dependency_results[dep_id] for dep_id in sorted(task.dependencies) if dep_id in dependency_results
    }
    builder = BUILDERS.get(task.framework)
    if builder is None:
        return _build_generic(task, context, declared)
    return builder(task, context, _keyed_by_framework(declared, graph))
