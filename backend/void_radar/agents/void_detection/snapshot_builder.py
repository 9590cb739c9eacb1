"""Snapshot Builder — read-only per-category ecosystem views.

Joins every stored project with live market tokens and aggregates the
category-level metrics the later stages read. Output is an immutable
``EcosystemContext``; nothing here writes to the database.

Rules
-----
- NO LLM calls
- NO network I/O (market tokens are fetched by the caller and passed in)
- Token matching is delegated to a ``TokenMatcher`` strategy
"""

from __future__ import annotations

import abc
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ...constants import RECENT_COMMIT_DAYS
from ...models.category import Category
from ...models.chain_stats import ChainStats
from ...models.project import Project
from ...schemas.snapshot_schema import (
    CategorySnapshot,
    ChainStatsSnapshot,
    EcosystemContext,
    MarketToken,
    ProjectSnapshot,
)

logger = logging.getLogger(__name__)

_POPULARITY_MAX = 60.0
_RECENCY_FRESH = 40.0
_RECENCY_STALE = 20.0
_STALE_COMMIT_DAYS = 90


# ===================================================================== #
#  Token matching strategies                                              #
# ===================================================================== #

class TokenMatcher(abc.ABC):
    """Pairs a project name with at most one market token."""

    @abc.abstractmethod
    def match(self, project_name: str, tokens: Sequence[MarketToken]) -> Optional[MarketToken]:
        ...


class FirstMatchTokenMatcher(TokenMatcher):
    """Linear scan, first hit wins, no ranking.

    Pass 1: exact case-insensitive match on token name or symbol.
    Pass 2: substring containment between the project name and the token
    name or symbol, in either direction. Known to produce false positives
    on short names and symbols; pass ``match_symbols=False`` to restrict
    pass 2 to token names.
    """

    def __init__(self, match_symbols: bool = True) -> None:
        self.match_symbols = match_symbols

    def match(self, project_name: str, tokens: Sequence[MarketToken]) -> Optional[MarketToken]:
        needle = (project_name or "").strip().lower()
        if not needle:
            return None

        for token in tokens:
            if token.name.lower() == needle or token.symbol.lower() == needle:
                return token

        for token in tokens:
            keys = [token.name.strip().lower()]
            if self.match_symbols:
                keys.append(token.symbol.strip().lower())
            if any(key and (key in needle or needle in key) for key in keys):
                return token

        return None


# ===================================================================== #
#  Per-project helpers                                                    #
# ===================================================================== #

def compute_activity_score(
    *,
    stars: int,
    forks: int,
    last_commit: Optional[datetime],
    now: datetime,
) -> float:
    """GitHub activity on a 0-100 scale.

    Popularity (stars + 2*forks, 25 per point) is capped at 60; commit
    recency adds 40 within 30 days or 20 within 90 days.
    """
    popularity = min(_POPULARITY_MAX, (max(stars, 0) + 2 * max(forks, 0)) / 25.0)

    recency = 0.0
    if last_commit is not None:
        age = now - last_commit
        if age <= timedelta(days=RECENT_COMMIT_DAYS):
            recency = _RECENCY_FRESH
        elif age <= timedelta(days=_STALE_COMMIT_DAYS):
            recency = _RECENCY_STALE

    return round(popularity + recency, 2)


def build_project_snapshot(
    project: Project,
    tokens: Sequence[MarketToken],
    matcher: TokenMatcher,
) -> ProjectSnapshot:
    token = matcher.match(project.name, tokens)
    return ProjectSnapshot(
        name=project.name,
        description=project.description,
        tvl_usd=float(project.tvl_usd or 0),
        github_stars=project.github_stars or 0,
        github_forks=project.github_forks or 0,
        github_open_issues=project.github_open_issues or 0,
        last_github_commit=project.last_github_commit,
        is_active=bool(project.is_active),
        volume_24h=token.volume_24h if token else 0.0,
        liquidity_usd=token.liquidity_usd if token else 0.0,
    )


# ===================================================================== #
#  Per-category aggregation                                               #
# ===================================================================== #

def build_category_snapshot(
    category: Category,
    projects: Iterable[Project],
    tokens: Sequence[MarketToken],
    matcher: TokenMatcher,
    now: datetime,
) -> CategorySnapshot:
    snapshots: List[ProjectSnapshot] = [
        build_project_snapshot(p, tokens, matcher) for p in projects
    ]

    recent_cutoff = now - timedelta(days=RECENT_COMMIT_DAYS)
    activity_scores = [
        compute_activity_score(
            stars=p.github_stars,
            forks=p.github_forks,
            last_commit=p.last_github_commit,
            now=now,
        )
        for p in snapshots
    ]
    avg_activity = sum(activity_scores) / len(activity_scores) if activity_scores else 0.0

    return CategorySnapshot(
        id=category.id,
        name=category.name,
        slug=category.slug,
        is_strategic=bool(category.is_strategic),
        strategic_multiplier=float(category.strategic_multiplier or 1.0),
        projects=tuple(snapshots),
        total_projects=len(snapshots),
        active_projects=sum(1 for p in snapshots if p.is_active),
        total_tvl=sum(p.tvl_usd for p in snapshots),
        avg_activity_score=round(avg_activity, 2),
        recently_active_projects=sum(
            1
            for p in snapshots
            if p.last_github_commit is not None and p.last_github_commit >= recent_cutoff
        ),
        trading_projects=sum(1 for p in snapshots if p.volume_24h > 0),
    )


def _latest_chain_stats(db: Session) -> Optional[ChainStatsSnapshot]:
    row = db.query(ChainStats).order_by(ChainStats.recorded_at.desc()).first()
    if row is None:
        return None
    return ChainStatsSnapshot(
        total_transactions=row.total_transactions or 0,
        total_accounts=row.total_accounts or 0,
        block_height=row.block_height or 0,
        nodes_online=row.nodes_online or 0,
        avg_block_time=float(row.avg_block_time or 0),
    )


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def build_ecosystem_context(
    db: Session,
    tokens: Sequence[MarketToken],
    *,
    matcher: Optional[TokenMatcher] = None,
    now: Optional[datetime] = None,
) -> EcosystemContext:
    """Assemble per-category snapshots plus ecosystem-wide averages.

    Parameters
    ----------
    db : Session
        Read-only use: categories, projects and the latest chain stats.
    tokens : sequence of MarketToken
        Live market tokens, fetched once by the caller.
    matcher : TokenMatcher, optional
        Defaults to ``FirstMatchTokenMatcher``.
    now : datetime, optional
        Reference time for recency metrics (naive UTC).
    """
    matcher = matcher or FirstMatchTokenMatcher()
    now = now or datetime.utcnow()

    categories = db.query(Category).order_by(Category.name).all()

    snapshots: List[CategorySnapshot] = []
    for category in categories:
        projects = (
            db.query(Project)
            .filter(Project.category_id == category.id)
            .order_by(Project.tvl_usd.desc(), Project.name)
            .all()
        )
        snapshots.append(build_category_snapshot(category, projects, tokens, matcher, now))

    count = len(snapshots)
    ecosystem_avg_tvl = sum(c.total_tvl for c in snapshots) / count if count else 0.0
    avg_active = sum(c.active_projects for c in snapshots) / count if count else 0.0

    logger.info(
        "[SNAPSHOT] %d categories, %d projects, %d matched to market tokens",
        count,
        sum(c.total_projects for c in snapshots),
        sum(1 for c in snapshots for p in c.projects if p.liquidity_usd > 0 or p.volume_24h > 0),
    )

    return EcosystemContext(
        categories=tuple(snapshots),
        market_tokens=tuple(tokens),
        chain_stats=_latest_chain_stats(db),
        ecosystem_avg_tvl=ecosystem_avg_tvl,
        avg_active_projects=avg_active,
    )
