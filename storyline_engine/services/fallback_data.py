"""Static fallback payloads, keyed by framework.

Each entry has the same shape as a live agent response (``slide_content``,
``insights``, ``citations``) so that it flows through the same normalisation
and the same downstream input builders.
"""

from __future__ import annotations

from typing import Any

MARKET_SIZING_FALLBACK: dict[str, Any] = {
    "slide_content": {
        "title": "Swiss pension market sizing by product line",
        "market_segments": [
            {
                "pillar": "2nd Pillar",
                "products": [
                    {
                        "product_name": "PK (Pension Funds)",
                        "market_size_chf_bn": {"2019": 777, "2022": 876, "2025": 920, "2030": 1050},
                        "cagr_2019_2030": "2.5%",
                    },
                    {
                        "product_name": "FZ (Freizügigkeit)",
                        "market_size_chf_bn": {"2019": 150, "2022": 180, "2025": 210, "2030": 270},
                        "cagr_2019_2030": "4.0%",
                    },
                    {
                        "product_name": "1e (Individual Choice Plans)",
                        "market_size_chf_bn": {"2019": 30, "2022": 40, "2025": 50, "2030": 70},
                        "cagr_2019_2030": "4.8%",
                    },
                ],
            },
            {
                "pillar": "3rd Pillar",
                "products": [
                    {
                        "product_name": "3a (Tax-advantaged)",
                        "market_size_chf_bn": {"2019": 130, "2022": 150, "2025": 175, "2030": 225},
                        "cagr_2019_2030": "5.0%",
                    },
                    {
                        "product_name": "3b (Flexible)",
                        "market_size_chf_bn": {"2019": 60, "2022": 65, "2025": 72, "2030": 85},
                        "cagr_2019_2030": "3.2%",
                    },
                ],
            },
        ],
        "total_market": {"2019": 1147, "2022": 1311, "2025": 1427, "2030": 1700, "unit": "CHF bn"},
    },
    "insights": [
        "Total Swiss pension market expected to reach CHF 1,700bn by 2030",
        "Pillar 3a shows the strongest growth at 5.0% CAGR",
        "Vested benefits (FZ) grow with job mobility and portability awareness",
        "Digital products are gaining traction in younger segments",
    ],
    "citations": ["Swisscanto Pension Fund Monitor", "BSV pension statistics", "ASIP annual survey"],
}

COMPETITIVE_LANDSCAPE_FALLBACK: dict[str, Any] = {
    "slide_content": {
        "title": "Swiss pension competitive landscape: evolving business models",
        "player_categories": [
            {
                "category_id": "retirement_advisors",
                "category_name": "Retirement advisors",
                "key_players": ["VermögensZentrum", "Independent advisors", "Insurance brokers"],
            },
            {
                "category_id": "large_universal_banks",
                "category_name": "Large universal banks",
                "key_players": ["UBS", "SwissLife", "Raiffeisen"],
            },
            {
                "category_id": "back_office_processors",
                "category_name": "Back-office processors",
                "key_players": ["Swiss Life", "AXA", "Vita"],
            },
            {
                "category_id": "niche_disruptors",
                "category_name": "Niche digital disruptors",
                "key_players": ["frankly", "VIAC", "Selma"],
            },
            {
                "category_id": "ecosystem_providers",
                "category_name": "Ecosystem providers",
                "key_players": ["FINWELL", "Hypothekey"],
            },
        ],
    },
    "insights": [
        "Clear bifurcation between traditional and digital players",
        "Digital disruptors (VIAC, frankly) are gaining traction with low-cost 3a offerings",
        "Ecosystem platforms are emerging as a new competitive category",
        "Incumbents face pressure in digital UX, data aggregation, and advisory",
    ],
    "citations": ["Industry analysis", "Company reports", "Fintech news coverage"],
}

CAPABILITY_BENCHMARK_FALLBACK: dict[str, Any] = {
    "slide_content": {
        "title": "Capability gaps versus best-in-class competitors",
        "capability_dimensions": [
            {
                "dimension_id": "advisor_capacity",
                "dimension_name": "Advisor Capacity",
                "client_state": "~25 pension specialists",
                "benchmark": "VermögensZentrum: 160 pension specialists",
                "gap_rating": "RED",
            },
            {
                "dimension_id": "technology",
                "dimension_name": "Technology",
                "client_state": "Legacy systems, limited mobile",
                "benchmark": "VIAC: mobile-first platform",
                "gap_rating": "RED",
            },
            {
                "dimension_id": "marketing",
                "dimension_name": "Marketing",
                "client_state": "Unfocused pension marketing",
                "benchmark": "frankly: targeted pension campaigns",
                "gap_rating": "RED",
            },
        ],
    },
    "insights": [
        "RED: advisor capacity far below the leading retirement advisor",
        "RED: technology lags mobile-first challengers",
        "RED: marketing spend is not targeted at pension decisions",
        "A partnership approach may close gaps faster than building",
    ],
    "citations": ["Internal analysis", "Competitive intelligence"],
}

STRATEGIC_OPTIONS_FALLBACK: dict[str, Any] = {
    "slide_content": {
        "title": "Suggested solution: external retirement ecosystem strategy",
        "strategic_option": {
            "option_name": "Client-centric retirement ecosystem",
            "option_type": "Ecosystem/Platform strategy",
        },
        "ecosystem_components": [
            {"component_name": "Data aggregation", "implementation": "partner"},
            {"component_name": "Retirement planning (AI-enabled)", "implementation": "build"},
            {"component_name": "Insurance (via 3rd parties)", "implementation": "partner"},
            {"component_name": "Reporting (360° view)", "implementation": "build"},
            {"component_name": "Tax advisory", "implementation": "partner"},
            {"component_name": "Investment strategy adjustments", "implementation": "build"},
            {"component_name": "Post-retirement activities", "implementation": "partner"},
        ],
    },
    "insights": [
        "An ecosystem strategy addresses all critical capability gaps",
        "Partnerships enable faster time-to-market than a full build",
        "Seven components provide end-to-end retirement coverage",
        "The client brand anchors the ecosystem while partners cover weaknesses",
    ],
    "citations": ["Strategic planning", "Market analysis"],
}

PARTNERSHIP_FALLBACK: dict[str, Any] = {
    "slide_content": {
        "title": "Partnership options to accelerate ecosystem implementation",
        "partnership_categories": [
            {
                "category_id": "digital_advisory",
                "potential_partners": ["VIAC", "Selma"],
                "structure": "Equity investment + white-label",
            },
            {
                "category_id": "advisory_referral",
                "potential_partners": ["VermögensZentrum"],
                "structure": "Referral agreement + revenue share",
            },
            {
                "category_id": "processing",
                "potential_partners": ["AXA (PK processing unit)"],
                "structure": "Joint venture or acquisition",
            },
        ],
        "recommended_approach": [
            {"phase": 1, "focus": "Digital advisory partnerships", "timeline_months": 12},
            {"phase": 2, "focus": "Advisory referral partnerships", "timeline_months": 6},
            {"phase": 3, "focus": "Evaluate processing M&A", "timeline_months": 24},
        ],
    },
    "insights": [
        "Three partnership categories address different capability gaps",
        "A phased approach mitigates implementation risk",
        "Digital advisory partnerships deliver the fastest impact",
        "Total investment of CHF 10-170M over two years",
    ],
    "citations": ["Partnership analysis", "Financial planning"],
}

FALLBACKS_BY_FRAMEWORK: dict[str, dict[str, Any]] = {
    "market_sizing": MARKET_SIZING_FALLBACK,
    "competitive_landscape": COMPETITIVE_LANDSCAPE_FALLBACK,
    "capability_benchmark": CAPABILITY_BENCHMARK_FALLBACK,
    "strategic_options": STRATEGIC_OPTIONS_FALLBACK,
    "partnerships": PARTNERSHIP_FALLBACK,
}

COMPLETE_STORYLINE_FALLBACK: dict[str, Any] = {
    "title": "UBS Switzerland Pension Strategy Analysis (Fallback)",
    "summary": (
        "Emergency fallback storyline providing a strategic analysis of the client's position in the pension"
        " market when the analysis agents are unavailable."
    ),
    "presentation_flow": (
        "Five-slide strategic narrative with fallback data covering market opportunity, competitive threats,"
        " capability gaps, strategic options, and partnership recommendations."
    ),
    "sections": [
        {
            "framework": "market_sizing",
            "title": "Swiss Pension Market Analysis",
            "description": "Market sizing analysis across pension products",
            "insights": MARKET_SIZING_FALLBACK["insights"][:3],
            "citations": ["Swisscanto Monitor", "McKinsey Report"],
        },
        {
            "framework": "competitive_landscape",
            "title": "Competitive Landscape",
            "description": "Analysis of competitive dynamics and business models",
            "insights": COMPETITIVE_LANDSCAPE_FALLBACK["insights"][:3],
            "citations": ["Industry Analysis", "Company Reports"],
        },
        {
            "framework": "capability_benchmark",
            "title": "Capability Assessment",
            "description": "Capability gaps versus best-in-class competitors",
            "insights": CAPABILITY_BENCHMARK_FALLBACK["insights"][:3],
            "citations": ["Internal Analysis", "Competitive Intelligence"],
        },
        {
            "framework": "strategic_options",
            "title": "Strategic Options",
            "description": "Recommended ecosystem strategy",
            "insights": STRATEGIC_OPTIONS_FALLBACK["insights"][:3],
            "citations": ["Strategic Planning", "Market Analysis"],
        },
        {
            "framework": "partnerships",
            "title": "Partnership Strategy",
            "description": "Implementation through strategic partnerships",
            "insights": PARTNERSHIP_FALLBACK["insights"][:3],
            "citations": ["Partnership Analysis", "Financial Planning"],
        },
    ],
    "generation_source": "cfa-demo-fallback",
}
