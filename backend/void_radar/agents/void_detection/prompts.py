"""Prompt templates for the Gap Synthesizer and the Skeptic Verifier.

System + User prompt separation. The synthesis response is a bare JSON
array (so ``response_format: json_object`` is NOT used for it); the
skeptic response is a JSON object.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from ...constants import (
    COMPETITION_LEVELS,
    DIFFICULTIES,
    TARGET_CANDIDATES_MAX,
    TARGET_CANDIDATES_MIN,
)
from ...schemas.gap_schema import CandidateGap
from ...schemas.snapshot_schema import CategorySnapshot, EcosystemContext, ExternalSignals

_DESCRIPTION_CHARS = 160

SYNTHESIS_SYSTEM_PROMPT = f"""You are an ecosystem analyst who finds VOIDS: concrete products that builders could ship because nothing in the ecosystem serves the need well yet.

INPUT:
A JSON object with:
- "categorySnapshots": every category with its projects and aggregate metrics
- "chainStats": ecosystem averages, plus chain-level statistics when available
- "fundedProjectNames": projects that already received funding (optional)
- "crossChainEvidence": category slug -> USD liquidity of analogue products on other chains (optional)

OUTPUT FORMAT:
Respond with a single JSON array. No markdown, no explanation, no prose.
Each element MUST have these exact keys:
{{
  "categorySlug": "<one of the input category slugs>",
  "title": "<short product title>",
  "description": "<2-3 sentences: what to build>",
  "reasoning": "<why this is a gap, citing the metrics>",
  "difficulty": "{' | '.join(DIFFICULTIES)}",
  "competitionLevel": "{' | '.join(COMPETITION_LEVELS)}",
  "suggestedFeatures": ["<feature>", "..."],
  "evidenceProjects": ["<existing project name>", "..."],
  "voidConfidence": <integer 1-10>
}}

RULES:
1. Every candidate MUST cite specific existing project names from the input in "evidenceProjects".
2. "difficulty" and "competitionLevel" MUST use exactly the allowed lowercase values.
3. "voidConfidence" is conservative: 9-10 only for obvious, well-evidenced gaps; use 5-8 for most; below 5 if unsure.
4. Produce {TARGET_CANDIDATES_MIN}-{TARGET_CANDIDATES_MAX} candidates in total, roughly 40% beginner, 40% intermediate, 20% advanced.
5. Do NOT propose products for needs that existing, active projects already serve well.
6. Titles must be unique across the whole array.
7. Return ONLY the JSON array."""


SKEPTIC_SYSTEM_PROMPT = """You are a skeptical reviewer. Another analyst proposed gaps in an ecosystem. Your job is to challenge them.

INPUT:
A JSON object with:
- "candidates": proposed gaps (title, categorySlug, description, evidenceProjects)
- "categoryProjectIndex": category slug -> names of existing projects

For EACH candidate ask: does an existing, active project already substantially fill this gap?
Score how real the gap is:
- 1-3: an existing project clearly fills it
- 4-5: partially filled
- 6-8: mostly unfilled
- 9-10: clearly unfilled

OUTPUT FORMAT:
Respond with a single JSON object. No markdown, no prose.
{
  "results": [
    {"title": "<candidate title, copied EXACTLY>", "skepticScore": <integer 1-10>, "note": "<one sentence>"}
  ]
}

RULES:
1. Copy every title character-for-character; results are matched by exact title.
2. Return one result per candidate.
3. Return ONLY the JSON object."""


def _category_payload(category: CategorySnapshot) -> Dict[str, Any]:
    return {
        "name": category.name,
        "slug": category.slug,
        "isStrategic": category.is_strategic,
        "totalProjects": category.total_projects,
        "activeProjects": category.active_projects,
        "totalTVL": round(category.total_tvl, 2),
        "avgActivityScore": category.avg_activity_score,
        "recentlyActiveProjects": category.recently_active_projects,
        "tradingProjects": category.trading_projects,
        "projects": [
            {
                "name": p.name,
                "description": (p.description or "")[:_DESCRIPTION_CHARS],
                "tvl": round(p.tvl_usd, 2),
                "githubStars": p.github_stars,
                "isActive": p.is_active,
                "volume24h": round(p.volume_24h, 2),
            }
            for p in category.projects
        ],
    }


def build_synthesis_payload(context: EcosystemContext, signals: ExternalSignals) -> Dict[str, Any]:
    """Synthesis input; optional evidence keys are omitted when empty."""
    chain_stats: Dict[str, Any] = {
        "categoryCount": len(context.categories),
        "ecosystemAvgTVL": round(context.ecosystem_avg_tvl, 2),
        "avgActiveProjectsPerCategory": round(context.avg_active_projects, 2),
    }
    if context.chain_stats is not None:
        chain_stats.update(
            {
                "totalTransactions": context.chain_stats.total_transactions,
                "totalAccounts": context.chain_stats.total_accounts,
                "blockHeight": context.chain_stats.block_height,
                "nodesOnline": context.chain_stats.nodes_online,
                "avgBlockTime": context.chain_stats.avg_block_time,
            }
        )

    payload: Dict[str, Any] = {
        "categorySnapshots": [_category_payload(c) for c in context.categories],
        "chainStats": chain_stats,
    }
    if signals.funded_project_names:
        payload["fundedProjectNames"] = list(signals.funded_project_names)
    if signals.cross_chain_evidence:
        payload["crossChainEvidence"] = dict(signals.cross_chain_evidence)
    return payload


def build_synthesis_messages(context: EcosystemContext, signals: ExternalSignals) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYNTHESIS_SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(build_synthesis_payload(context, signals))},
    ]


def build_skeptic_payload(candidates: Sequence[CandidateGap], context: EcosystemContext) -> Dict[str, Any]:
    return {
        "candidates": [
            {
                "title": c.title,
                "categorySlug": c.category_slug,
                "description": c.description,
                "evidenceProjects": list(c.evidence_projects),
            }
            for c in candidates
        ],
        "categoryProjectIndex": {
            category.slug: [p.name for p in category.projects if p.is_active]
            for category in context.categories
        },
    }


def build_skeptic_messages(candidates: Sequence[CandidateGap], context: EcosystemContext) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SKEPTIC_SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(build_skeptic_payload(candidates, context))},
    ]
