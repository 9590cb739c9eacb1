"""Read-only ecosystem views assembled by the Snapshot Builder.

Every model here is frozen: snapshots are rebuilt on each pipeline run and
then only read by the later stages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MarketToken(BaseModel):
    """A tradable token as reported by the market-data service."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    volume_24h: float = Field(0.0, ge=0.0)
    liquidity_usd: float = Field(0.0, ge=0.0)


class ProjectSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    tvl_usd: float = Field(0.0, ge=0.0)
    github_stars: int = Field(0, ge=0)
    github_forks: int = Field(0, ge=0)
    github_open_issues: int = Field(0, ge=0)
    last_github_commit: Optional[datetime] = None
    is_active: bool = True

    # Joined from live market data; zero when no token matched
    volume_24h: float = Field(0.0, ge=0.0)
    liquidity_usd: float = Field(0.0, ge=0.0)


class CategorySnapshot(BaseModel):
    """Per-category view with aggregate metrics."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    slug: str
    is_strategic: bool = False
    strategic_multiplier: float = 1.0
    projects: tuple[ProjectSnapshot, ...] = ()

    total_projects: int = Field(0, ge=0)
    active_projects: int = Field(0, ge=0)
    total_tvl: float = Field(0.0, ge=0.0)
    avg_activity_score: float = Field(0.0, ge=0.0, le=100.0)
    recently_active_projects: int = Field(
        0,
        ge=0,
        description="Projects with a GitHub commit in the trailing 30 days",
    )
    trading_projects: int = Field(
        0,
        ge=0,
        description="Projects whose matched token has nonzero 24h volume",
    )


class ChainStatsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_transactions: int = 0
    total_accounts: int = 0
    block_height: int = 0
    nodes_online: int = 0
    avg_block_time: float = 0.0


class EcosystemContext(BaseModel):
    """Everything the downstream stages need, captured once per run."""

    model_config = ConfigDict(frozen=True)

    categories: tuple[CategorySnapshot, ...] = ()
    market_tokens: tuple[MarketToken, ...] = ()
    chain_stats: Optional[ChainStatsSnapshot] = None
    ecosystem_avg_tvl: float = Field(
        0.0,
        ge=0.0,
        description="Mean total TVL per category across the ecosystem",
    )
    avg_active_projects: float = Field(
        0.0,
        ge=0.0,
        description="Mean active-project count per category",
    )

    def category_by_slug(self, slug: str) -> Optional[CategorySnapshot]:
        for category in self.categories:
            if category.slug == slug:
                return category
        return None

    @property
    def category_slugs(self) -> set[str]:
        return {c.slug for c in self.categories}


class ExternalSignals(BaseModel):
    """Advisory evidence gathered by the External Signal Aggregator."""

    model_config = ConfigDict(frozen=True)

    funded_project_names: tuple[str, ...] = ()
    cross_chain_evidence: dict[str, float] = Field(
        default_factory=dict,
        description="category slug -> summed liquidity (USD) of analogue tokens on other chains",
    )
