"""Deterministic Scoring Engine.

Turns verified gaps into clamped gap and demand scores and blends model
confidence into the gap score using fixed formulas.

Rules
-----
- NO API calls
- NO DB writes
- NO LLMs
- Pure deterministic math (the gap score function is injected)
- Rounding is half-up, not banker's rounding
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..constants import (
    CROSS_CHAIN_STEPS,
    FILL_RATE_MAX,
    LIQUIDITY_FLOOR,
    LIQUIDITY_STEPS,
    MIN_CONFIDENCE_MULTIPLIER,
)
from ..schemas.gap_schema import ScoredGap, VerifiedGap
from ..schemas.snapshot_schema import CategorySnapshot, EcosystemContext
from .gap_score import GapScoreFn, baseline_gap_score

logger = logging.getLogger(__name__)


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp *value* to [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _step_points(amount: float, steps: Sequence[tuple[float, int]], floor: int = 0) -> int:
    for threshold, points in steps:
        if amount >= threshold:
            return points
    return floor


# ===================================================================== #
#  Demand score components                                                #
# ===================================================================== #

def fill_rate_points(active_projects: int, avg_active_projects: float) -> int:
    """0-30: ``30 - round(min(1, active/avg) * 30)``; under-filled scores higher."""
    if avg_active_projects <= 0:
        return FILL_RATE_MAX
    ratio = min(1.0, active_projects / avg_active_projects)
    return FILL_RATE_MAX - round_half_up(ratio * FILL_RATE_MAX)


def liquidity_points(total_tvl: float) -> int:
    """0-40: steps at $10K/$100K/$1M/$10M, floor of 5."""
    return _step_points(total_tvl, LIQUIDITY_STEPS, floor=LIQUIDITY_FLOOR)


def cross_chain_points(analogue_liquidity: float) -> int:
    """0-30: steps at $1M/$10M/$50M."""
    return _step_points(analogue_liquidity, CROSS_CHAIN_STEPS)


def compute_demand_score(
    category: CategorySnapshot,
    context: EcosystemContext,
    analogue_liquidity: float = 0.0,
) -> float:
    total = (
        fill_rate_points(category.active_projects, context.avg_active_projects)
        + liquidity_points(category.total_tvl)
        + cross_chain_points(analogue_liquidity)
    )
    return _clamp(float(total))


# ===================================================================== #
#  Confidence blending                                                    #
# ===================================================================== #

def confidence_multiplier(void_confidence: int) -> float:
    """``max(0.5, confidence / 10)``."""
    return max(MIN_CONFIDENCE_MULTIPLIER, void_confidence / 10.0)


def adjust_gap_score(raw_gap_score: float, void_confidence: int) -> float:
    """Clamp the raw score, apply the confidence multiplier, round."""
    return float(round_half_up(_clamp(raw_gap_score) * confidence_multiplier(void_confidence)))


def blend_confidence(void_confidence: int, skeptic_score: Optional[int]) -> int:
    """Average with the skeptic score when one exists, else unchanged."""
    if skeptic_score is None:
        return void_confidence
    return round_half_up((void_confidence + skeptic_score) / 2)


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def score_gaps(
    gaps: Iterable[VerifiedGap],
    context: EcosystemContext,
    cross_chain_evidence: Optional[Mapping[str, float]] = None,
    gap_score_fn: GapScoreFn = baseline_gap_score,
) -> List[ScoredGap]:
    """Score every verified gap.

    The raw gap score is computed once per category. Gaps whose category is
    missing from *context* are skipped.
    """
    evidence = cross_chain_evidence or {}
    raw_by_slug: Dict[str, float] = {}
    scored: List[ScoredGap] = []

    for gap in gaps:
        category = context.category_by_slug(gap.category_slug)
        if category is None:
            logger.warning("[SCORING] Unknown category %r for %r — skipped", gap.category_slug, gap.title)
            continue

        if category.slug not in raw_by_slug:
            raw_by_slug[category.slug] = float(gap_score_fn(category, context))

        scored.append(
            ScoredGap(
                gap=gap,
                category_id=category.id,
                gap_score=adjust_gap_score(raw_by_slug[category.slug], gap.void_confidence),
                demand_score=compute_demand_score(category, context, evidence.get(category.slug, 0.0)),
                void_confidence=blend_confidence(gap.void_confidence, gap.skeptic_score),
            )
        )

    logger.info("[SCORING] Scored %d gaps across %d categories", len(scored), len(raw_by_slug))
    return scored
