"""Gap Synthesizer — one generative call producing candidate gaps.

Uses the centralized structured-generation client. Any transport, status,
decoding or shape failure is FATAL for the run and surfaces as
``SynthesisError``. Individual elements that fail schema validation are
dropped, non-fatally, and reported as ``CandidateRejection`` entries.

Post-validation filters (in order):
  1. drop voidConfidence < 5
  2. drop unknown category slugs
  3. cap at 100 candidates, order preserved
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Tuple

from pydantic import ValidationError

from ...constants import MAX_CANDIDATES, MIN_VOID_CONFIDENCE
from ...schemas.gap_schema import CandidateGap, CandidateRejection
from ...schemas.snapshot_schema import EcosystemContext, ExternalSignals
from ...services.openai_client import StructuredGenerationError, generate_structured
from .prompts import build_synthesis_messages

logger = logging.getLogger(__name__)

_SYNTHESIS_MAX_TOKENS = 16000


class SynthesisError(RuntimeError):
    """The synthesis call produced nothing usable; the run must abort."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass
class SynthesisResult:
    candidates: List[CandidateGap] = field(default_factory=list)
    rejections: List[CandidateRejection] = field(default_factory=list)
    dropped_low_confidence: int = 0
    dropped_unknown_category: int = 0
    truncated: int = 0


# ===================================================================== #
#  Validation + filtering                                                 #
# ===================================================================== #

def _format_errors(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    ]


def validate_candidates(payload: List[Any]) -> Tuple[List[CandidateGap], List[CandidateRejection]]:
    """Deserialize each element into a ``CandidateGap`` or a rejection."""
    candidates: List[CandidateGap] = []
    rejections: List[CandidateRejection] = []

    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            rejections.append(
                CandidateRejection(index=index, errors=[f"element is {type(item).__name__}, not an object"])
            )
            continue
        try:
            candidates.append(CandidateGap.model_validate(item))
        except ValidationError as exc:
            title = item.get("title") if isinstance(item.get("title"), str) else None
            rejections.append(CandidateRejection(index=index, title=title, errors=_format_errors(exc)))

    return candidates, rejections


def filter_candidates(candidates: Iterable[CandidateGap], known_slugs: set[str]) -> SynthesisResult:
    result = SynthesisResult()
    kept: List[CandidateGap] = []

    for candidate in candidates:
        if candidate.void_confidence < MIN_VOID_CONFIDENCE:
            result.dropped_low_confidence += 1
            continue
        if candidate.category_slug not in known_slugs:
            result.dropped_unknown_category += 1
            continue
        kept.append(candidate)

    if len(kept) > MAX_CANDIDATES:
        result.truncated = len(kept) - MAX_CANDIDATES
        kept = kept[:MAX_CANDIDATES]

    result.candidates = kept
    return result


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

async def synthesize_gaps(context: EcosystemContext, signals: ExternalSignals) -> SynthesisResult:
    """Generate, validate and filter candidate gaps.

    Raises
    ------
    SynthesisError
        If the generative call fails or its response is not a JSON array.
    """
    messages = build_synthesis_messages(context, signals)
    logger.info(
        "[SYNTH] Requesting candidates for %d categories (%d funded names, %d cross-chain signals)",
        len(context.categories),
        len(signals.funded_project_names),
        len(signals.cross_chain_evidence),
    )

    try:
        candidates, rejections = await generate_structured(
            messages=messages,
            validator=validate_candidates,
            expect=list,
            max_completion_tokens=_SYNTHESIS_MAX_TOKENS,
            context="SYNTH",
        )
    except StructuredGenerationError as exc:
        logger.error("[SYNTH] Synthesis failed (%s): %s", exc.reason, exc)
        raise SynthesisError(exc.reason, f"Gap synthesis failed: {exc}") from exc

    for rejection in rejections:
        logger.info("[SYNTH] Rejected element %d (%s): %s", rejection.index, rejection.title, "; ".join(rejection.errors))

    result = filter_candidates(candidates, context.category_slugs)
    result.rejections = rejections

    logger.info(
        "[SYNTH] %d valid, %d rejected, %d low-confidence, %d unknown-category, %d truncated -> %d candidates",
        len(candidates),
        len(rejections),
        result.dropped_low_confidence,
        result.dropped_unknown_category,
        result.truncated,
        len(result.candidates),
    )
    return result
