"""Gap candidates as they move through synthesis, verification and scoring.

``CandidateGap`` is the strict deserialization target for each element of
the synthesis response. Wire names are camelCase; Python attributes are
snake_case. Strict mode means a ``"7"`` confidence is a rejection, not a 7.
"""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Difficulty = Literal["beginner", "intermediate", "advanced"]
CompetitionLevel = Literal["low", "medium", "high"]


class CandidateGap(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    category_slug: str = Field(..., alias="categorySlug", min_length=1)
    title: str = Field(..., min_length=1)
    description: str
    reasoning: str
    difficulty: Difficulty
    competition_level: CompetitionLevel = Field(..., alias="competitionLevel")
    suggested_features: list[str] = Field(..., alias="suggestedFeatures")
    evidence_projects: list[str] = Field(..., alias="evidenceProjects")
    void_confidence: int = Field(..., alias="voidConfidence", ge=1, le=10)


class CandidateRejection(BaseModel):
    """Structured record of a synthesis element that failed validation."""

    index: int
    title: Optional[str] = None
    errors: list[str] = Field(default_factory=list)


class SkepticVerdict(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    title: str
    # Lax: integral floats such as 2.0 are real verdicts; 2.5 is still rejected
    skeptic_score: int = Field(..., alias="skepticScore", ge=1, le=10, strict=False)
    note: Optional[str] = None


class VerifiedGap(CandidateGap):
    """A candidate that survived the skeptic pass.

    ``skeptic_score`` is ``None`` when the skeptic returned nothing for this
    title (lookup miss or degraded verification).
    """

    skeptic_score: Optional[int] = Field(None, alias="skepticScore", ge=1, le=10)


class ScoredGap(BaseModel):
    """A verified gap with its final, clamped scores."""

    model_config = ConfigDict(frozen=True)

    gap: VerifiedGap
    category_id: UUID
    gap_score: float = Field(..., ge=0.0, le=100.0)
    demand_score: float = Field(..., ge=0.0, le=100.0)
    void_confidence: int = Field(..., ge=1, le=10)
