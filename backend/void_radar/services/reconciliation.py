"""Reconciliation Engine — idempotent upsert of scored gaps.

Every gap is keyed by ``stable_id(category_slug, title)``. A gap seen
before is updated in place and forced back to ``active``; a new one is
inserted. Each write commits on its own, so a failure loses only that
gap. After the loop, active rows this run did not reproduce are moved to
``filling`` in one UPDATE. Rows are never deleted.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import STABLE_ID_HEX_LEN, STABLE_TITLE_MAX_LEN, STATUS_ACTIVE, STATUS_FILLING
from ..models.opportunity import Opportunity
from ..schemas.gap_schema import ScoredGap

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0
    failed: int = 0
    marked_filling: int = 0


# ===================================================================== #
#  Stable identity                                                        #
# ===================================================================== #

def normalize_title(title: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to '-', cap at 50."""
    slug = _NON_ALNUM_RE.sub("-", title.lower())
    return slug[:STABLE_TITLE_MAX_LEN]


def stable_id(category_slug: str, title: str) -> str:
    """16-hex-char SHA-256 digest of ``"<category_slug>:<normalized title>"``."""
    key = f"{category_slug}:{normalize_title(title)}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:STABLE_ID_HEX_LEN]


# ===================================================================== #
#  Upsert                                                                 #
# ===================================================================== #

def _apply(record: Opportunity, scored: ScoredGap, now: datetime) -> None:
    gap = scored.gap
    record.category_id = scored.category_id
    record.title = gap.title
    record.description = gap.description
    record.reasoning = gap.reasoning
    record.gap_score = scored.gap_score
    record.demand_score = scored.demand_score
    record.competition_level = gap.competition_level
    record.difficulty = gap.difficulty
    record.void_confidence = scored.void_confidence
    record.suggested_features_json = json.dumps(list(gap.suggested_features))
    record.evidence_projects_json = json.dumps(list(gap.evidence_projects))
    record.status = STATUS_ACTIVE
    record.updated_at = now


def upsert_opportunity(db: Session, scored: ScoredGap, sid: str, now: datetime) -> bool:
    """Insert or update one opportunity and commit. Returns True if created."""
    existing = db.query(Opportunity).filter(Opportunity.stable_id == sid).first()
    if existing is not None:
        _apply(existing, scored, now)
        db.commit()
        return False

    record = Opportunity(stable_id=sid, created_at=now)
    _apply(record, scored, now)
    db.add(record)
    db.commit()
    return True


def mark_stale(db: Session, seen_ids: Set[str], now: datetime) -> int:
    """Move active opportunities not in *seen_ids* to ``filling``; one UPDATE."""
    query = db.query(Opportunity).filter(Opportunity.status == STATUS_ACTIVE)
    if seen_ids:
        query = query.filter(~Opportunity.stable_id.in_(seen_ids))
    count = query.update(
        {Opportunity.status: STATUS_FILLING, Opportunity.updated_at: now},
        synchronize_session=False,
    )
    db.commit()
    return count


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

def reconcile_opportunities(
    db: Session,
    scored_gaps: Iterable[ScoredGap],
    *,
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """Upsert every scored gap, then sweep stale rows.

    A gap whose write fails still counts as seen, so its existing row is
    not demoted by the sweep.
    """
    now = now or datetime.utcnow()
    result = ReconcileResult()
    seen: Set[str] = set()

    for scored in scored_gaps:
        sid = stable_id(scored.gap.category_slug, scored.gap.title)
        seen.add(sid)
        try:
            if upsert_opportunity(db, scored, sid, now):
                result.created += 1
            else:
                result.updated += 1
        except SQLAlchemyError as exc:
            db.rollback()
            result.failed += 1
            logger.error("[RECONCILE] Write failed for %r (%s): %s", scored.gap.title, sid, exc)

    try:
        result.marked_filling = mark_stale(db, seen, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("[RECONCILE] Staleness sweep failed: %s", exc)

    logger.info(
        "[RECONCILE] created=%d updated=%d failed=%d marked_filling=%d",
        result.created,
        result.updated,
        result.failed,
        result.marked_filling,
    )
    return result
