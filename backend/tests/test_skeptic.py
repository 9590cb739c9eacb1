"""Skeptic verifier tests — threshold, default score, degradation."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest

from void_radar.agents.void_detection.skeptic import (
    apply_skeptic_scores,
    parse_skeptic_response,
    verify_candidates,
)
from void_radar.schemas.gap_schema import CandidateGap
from void_radar.schemas.snapshot_schema import CategorySnapshot, EcosystemContext, ProjectSnapshot
from void_radar.services.openai_client import StructuredGenerationError

LLM_CALL = "void_radar.services.openai_client.call_openai_chat_async"


def _gap(title, confidence=7):
    return CandidateGap(
        category_slug="defi",
        title=title,
        description="desc",
        reasoning="why",
        difficulty="beginner",
        competition_level="medium",
        suggested_features=[],
        evidence_projects=["Ref Finance"],
        void_confidence=confidence,
    )


CONTEXT = EcosystemContext(
    categories=(
        CategorySnapshot(
            id=uuid.uuid4(),
            name="DeFi",
            slug="defi",
            projects=(
                ProjectSnapshot(name="Ref Finance", is_active=True),
                ProjectSnapshot(name="Dead Protocol", is_active=False),
            ),
        ),
    )
)


def _response(*pairs):
    return json.dumps({"results": [{"title": t, "skepticScore": s, "note": "n"} for t, s in pairs]})


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def test_parse_maps_titles_to_scores():
    scores = parse_skeptic_response(json.loads(_response(("A", 8), ("B", 3))))
    assert scores == {"A": 8, "B": 3}


def test_parse_skips_malformed_entries():
    payload = {"results": [{"title": "A", "skepticScore": "high"}, {"title": "B", "skepticScore": 9}, {"title": "C", "skepticScore": 8.5}, "junk"]}
    assert parse_skeptic_response(payload) == {"B": 9}


def test_parse_accepts_integral_float_score():
    payload = {"results": [{"title": "Dup Lender", "skepticScore": 2.0}]}
    assert parse_skeptic_response(payload) == {"Dup Lender": 2}


def test_integral_float_rejection_is_applied():
    scores = parse_skeptic_response({"results": [{"title": "Dup Lender", "skepticScore": 2.0}]})
    result = apply_skeptic_scores([_gap("Dup Lender")], scores)
    assert result.verified == []
    assert result.rejected == 1
    assert result.unscored == 0


def test_parse_first_verdict_wins():
    payload = json.loads(_response(("A", 8), ("A", 2)))
    assert parse_skeptic_response(payload) == {"A": 8}


def test_parse_without_results_array_raises():
    with pytest.raises(StructuredGenerationError):
        parse_skeptic_response({"verdicts": []})


# ---------------------------------------------------------------------------
# Threshold + default
# ---------------------------------------------------------------------------

def test_below_threshold_dropped():
    result = apply_skeptic_scores([_gap("A"), _gap("B")], {"A": 5, "B": 6})
    assert [g.title for g in result.verified] == ["B"]
    assert result.rejected == 1


def test_missing_score_defaults_to_pass():
    result = apply_skeptic_scores([_gap("A")], {"a": 2})
    assert [g.title for g in result.verified] == ["A"]
    assert result.verified[0].skeptic_score is None
    assert result.unscored == 1


def test_verified_gap_carries_score():
    result = apply_skeptic_scores([_gap("A", confidence=9)], {"A": 7})
    gap = result.verified[0]
    assert gap.skeptic_score == 7
    assert gap.void_confidence == 9


# ---------------------------------------------------------------------------
# Full verification pass
# ---------------------------------------------------------------------------

def test_verify_uses_json_object_and_filters():
    body = _response(("A", 9), ("B", 2))
    with patch(LLM_CALL, new=AsyncMock(return_value=body)) as call:
        result = asyncio.run(verify_candidates([_gap("A"), _gap("B"), _gap("C")], CONTEXT))

    assert [g.title for g in result.verified] == ["A", "C"]
    assert result.degraded is False
    assert call.await_args.kwargs["json_object"] is True

    payload = json.loads(call.await_args.kwargs["messages"][1]["content"])
    assert payload["categoryProjectIndex"] == {"defi": ["Ref Finance"]}


def test_timeout_degrades_to_all_pass():
    async def slow(**kwargs):
        await asyncio.sleep(5)
        return _response(("A", 1))

    with patch(LLM_CALL, new=AsyncMock(side_effect=slow)):
        result = asyncio.run(verify_candidates([_gap("A"), _gap("B")], CONTEXT, timeout=0.05))

    assert [g.title for g in result.verified] == ["A", "B"]
    assert all(g.skeptic_score is None for g in result.verified)
    assert result.degraded is True


def test_call_failure_degrades_to_all_pass():
    failure = StructuredGenerationError("http_status", "OpenAI returned HTTP 503")
    with patch(LLM_CALL, new=AsyncMock(side_effect=failure)):
        result = asyncio.run(verify_candidates([_gap("A")], CONTEXT))

    assert [g.title for g in result.verified] == ["A"]
    assert result.degraded is True


def test_unparseable_response_degrades():
    with patch(LLM_CALL, new=AsyncMock(return_value="I think they are all fine.")):
        result = asyncio.run(verify_candidates([_gap("A")], CONTEXT))
    assert len(result.verified) == 1
    assert result.degraded is True


def test_no_candidates_skips_call():
    with patch(LLM_CALL, new=AsyncMock()) as call:
        result = asyncio.run(verify_candidates([], CONTEXT))
    call.assert_not_awaited()
    assert result.verified == []
    assert result.degraded is False
