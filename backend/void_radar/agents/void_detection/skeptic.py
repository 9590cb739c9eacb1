"""Skeptic Verifier — second, independent generative pass.

One batched call asks, per candidate, whether an existing active project
already fills the gap. The whole pass races a 30 s timeout; timeout, call
failure or an unparseable response all degrade to an empty score map and
the run continues.

Scores are matched back by exact title. A candidate without a score keeps
the default passing score; one with a score below the threshold is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from ...constants import SKEPTIC_DEFAULT_SCORE, SKEPTIC_PASS_THRESHOLD
from ...http_client import Timeouts
from ...schemas.gap_schema import CandidateGap, SkepticVerdict, VerifiedGap
from ...schemas.snapshot_schema import EcosystemContext
from ...services.openai_client import StructuredGenerationError, generate_structured
from .prompts import build_skeptic_messages

logger = logging.getLogger(__name__)

_SKEPTIC_MAX_TOKENS = 8000


@dataclass
class VerificationResult:
    verified: List[VerifiedGap] = field(default_factory=list)
    rejected: int = 0
    unscored: int = 0
    degraded: bool = False


def parse_skeptic_response(payload: Dict[str, Any]) -> Dict[str, int]:
    """Map title -> skeptic score from ``{"results": [...]}``.

    Malformed entries are skipped; the first verdict for a title wins.
    """
    results = payload.get("results")
    if not isinstance(results, list):
        raise StructuredGenerationError("unexpected_shape", "Skeptic response has no 'results' array")

    scores: Dict[str, int] = {}
    for entry in results:
        try:
            verdict = SkepticVerdict.model_validate(entry)
        except ValidationError:
            continue
        scores.setdefault(verdict.title, verdict.skeptic_score)
    return scores


async def fetch_skeptic_scores(
    candidates: Sequence[CandidateGap],
    context: EcosystemContext,
    *,
    timeout: float = Timeouts.SKEPTIC_PASS,
) -> Dict[str, int]:
    """Run the skeptic call; returns an empty map on any failure."""
    if not candidates:
        return {}

    messages = build_skeptic_messages(candidates, context)
    try:
        return await asyncio.wait_for(
            generate_structured(
                messages=messages,
                validator=parse_skeptic_response,
                expect=dict,
                max_completion_tokens=_SKEPTIC_MAX_TOKENS,
                context="SKEPTIC",
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("[SKEPTIC] Timed out after %.0fs — skipping verification", timeout)
    except StructuredGenerationError as exc:
        logger.warning("[SKEPTIC] Verification failed (%s): %s — skipping", exc.reason, exc)
    return {}


def apply_skeptic_scores(candidates: Sequence[CandidateGap], scores: Dict[str, int]) -> VerificationResult:
    result = VerificationResult()
    for candidate in candidates:
        score = scores.get(candidate.title)
        if score is None:
            result.unscored += 1
        effective = score if score is not None else SKEPTIC_DEFAULT_SCORE
        if effective < SKEPTIC_PASS_THRESHOLD:
            result.rejected += 1
            continue
        result.verified.append(VerifiedGap(**candidate.model_dump(), skeptic_score=score))
    return result


async def verify_candidates(
    candidates: Sequence[CandidateGap],
    context: EcosystemContext,
    *,
    timeout: float = Timeouts.SKEPTIC_PASS,
) -> VerificationResult:
    scores = await fetch_skeptic_scores(candidates, context, timeout=timeout)
    result = apply_skeptic_scores(candidates, scores)
    result.degraded = bool(candidates) and not scores

    logger.info(
        "[SKEPTIC] %d scored, %d unscored (default %d), %d rejected -> %d verified%s",
        len(candidates) - result.unscored,
        result.unscored,
        SKEPTIC_DEFAULT_SCORE,
        result.rejected,
        len(result.verified),
        " (degraded)" if result.degraded else "",
    )
    return result
