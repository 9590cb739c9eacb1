"""Gap score — pluggable deterministic category score.

The pipeline treats the gap score as an external pure function of a
category snapshot and the ecosystem context (``GapScoreFn``). The Scoring
Engine clamps whatever it returns to [0, 100].

``baseline_gap_score`` is the default so a run works end to end; deployments
with their own formula pass it to ``run_void_detection(gap_score_fn=...)``.
"""

from __future__ import annotations

from typing import Callable

from ..schemas.snapshot_schema import CategorySnapshot, EcosystemContext

GapScoreFn = Callable[[CategorySnapshot, EcosystemContext], float]

_SATURATION_WEIGHT = 40.0
_CAPITAL_WEIGHT = 30.0
_DEV_WEIGHT = 30.0


def baseline_gap_score(category: CategorySnapshot, context: EcosystemContext) -> float:
    """Under-served categories score higher.

    - Saturation (0-40): active projects relative to the ecosystem average.
    - Capital (0-30): category TVL relative to the ecosystem average TVL.
    - Developer activity (0-30): inverse of the average activity score.

    Strategic categories are multiplied by their strategic multiplier, so
    the result can exceed 100 before clamping.
    """
    if context.avg_active_projects > 0:
        saturation = _SATURATION_WEIGHT * (1 - min(1.0, category.active_projects / context.avg_active_projects))
    else:
        saturation = _SATURATION_WEIGHT

    if context.ecosystem_avg_tvl > 0:
        capital = _CAPITAL_WEIGHT * (1 - min(1.0, category.total_tvl / context.ecosystem_avg_tvl))
    else:
        capital = _CAPITAL_WEIGHT

    dev = _DEV_WEIGHT * (1 - min(100.0, category.avg_activity_score) / 100.0)

    score = saturation + capital + dev
    if category.is_strategic:
        score *= category.strategic_multiplier
    return score
