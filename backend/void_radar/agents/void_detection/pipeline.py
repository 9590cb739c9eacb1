"""Void detection pipeline — snapshot → signals → synthesis → skeptic → scoring → reconciliation.

Stages run strictly in order. Only synthesis failures (and an empty
category table) abort the run; every other external dependency degrades
to empty evidence. Each run is recorded in ``sync_logs``.

Run once from the command line:

    python -m void_radar.agents.void_detection.pipeline
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...constants import SYNC_SOURCE
from ...http_client import get_client
from ...models.sync_log import SyncLog
from ...schemas.sync_schema import SyncSummary
from ...services.gap_score import GapScoreFn, baseline_gap_score
from ...services.market_data import DexScreenerProvider, MarketDataProvider
from ...services.reconciliation import reconcile_opportunities
from ...services.scoring_engine import score_gaps
from ...timing import StepTimer
from .signals import FirstSuccessRegistryLookup, RegistryLookup, gather_external_signals
from .skeptic import verify_candidates
from .snapshot_builder import TokenMatcher, build_ecosystem_context
from .synthesizer import SynthesisError, synthesize_gaps

logger = logging.getLogger(__name__)


class PipelineAbort(RuntimeError):
    """Raised inside the run when it must stop before reconciliation."""


# ── Sync log bookkeeping ────────────────────────────────────────────────

def _start_sync_log(db: Session) -> SyncLog:
    log = SyncLog(source=SYNC_SOURCE, status="running", started_at=datetime.utcnow())
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def _finish_sync_log(
    db: Session,
    log: SyncLog,
    *,
    status: str,
    records_processed: int = 0,
    error_message: Optional[str] = None,
) -> None:
    log.status = status
    log.records_processed = records_processed
    log.error_message = error_message
    log.completed_at = datetime.utcnow()
    db.commit()


# ── Pipeline ────────────────────────────────────────────────────────────

async def run_void_detection(
    db: Session,
    *,
    provider: Optional[MarketDataProvider] = None,
    registry: Optional[RegistryLookup] = None,
    matcher: Optional[TokenMatcher] = None,
    gap_score_fn: GapScoreFn = baseline_gap_score,
    now: Optional[datetime] = None,
) -> SyncSummary:
    """Run one full gap-detection pass against *db*.

    Parameters
    ----------
    db : Session
        Session used for reading snapshots and for reconciliation writes.
    provider, registry, matcher
        Strategy overrides; defaults use DexScreener, the configured
        registry endpoints and first-match token matching.
    gap_score_fn : callable
        Category gap score function (clamped downstream).
    now : datetime, optional
        Reference time for recency metrics and ``updated_at``.

    Returns
    -------
    SyncSummary
        ``{created, updated}`` on success; ``{0, 0, error}`` when aborted.

    Any other exception is re-raised after the sync log is marked failed.
    """
    log = _start_sync_log(db)
    timer = StepTimer("void_detection")

    try:
        return await _run_stages(
            db,
            log,
            timer,
            provider=provider,
            registry=registry,
            matcher=matcher,
            gap_score_fn=gap_score_fn,
            now=now,
        )
    except (PipelineAbort, SynthesisError) as exc:
        logger.error("[PIPELINE] Run aborted: %s", exc)
        _finish_sync_log(db, log, status="failed", error_message=str(exc))
        timer.summary()
        return SyncSummary(created=0, updated=0, error=str(exc))
    except Exception as exc:
        logger.exception("[PIPELINE] Run crashed")
        db.rollback()
        _finish_sync_log(db, log, status="failed", error_message=f"{type(exc).__name__}: {exc}")
        timer.summary()
        raise


async def _run_stages(
    db: Session,
    log: SyncLog,
    timer: StepTimer,
    *,
    provider: Optional[MarketDataProvider],
    registry: Optional[RegistryLookup],
    matcher: Optional[TokenMatcher],
    gap_score_fn: GapScoreFn,
    now: Optional[datetime],
) -> SyncSummary:
    if provider is None or registry is None:
        client = await get_client()
        provider = provider or DexScreenerProvider(client)
        registry = registry or FirstSuccessRegistryLookup(client)

    # 1. Snapshot
    async with timer.async_step("snapshot"):
        tokens = await provider.fetch_tokens()
        context = build_ecosystem_context(db, tokens, matcher=matcher, now=now)
    if not context.categories:
        raise PipelineAbort("No categories found")

    # 2. External signals
    async with timer.async_step("signals"):
        signals = await gather_external_signals(
            provider=provider,
            registry=registry,
            category_slugs=[c.slug for c in context.categories],
        )

    # 3. Synthesis (fatal on failure)
    async with timer.async_step("synthesis"):
        synthesis = await synthesize_gaps(context, signals)

    # 4. Skeptic pass (degrades, never aborts)
    async with timer.async_step("skeptic"):
        verification = await verify_candidates(synthesis.candidates, context)

    # 5. Scoring
    with timer.step("scoring"):
        scored = score_gaps(
            verification.verified,
            context,
            cross_chain_evidence=signals.cross_chain_evidence,
            gap_score_fn=gap_score_fn,
        )

    # 6. Reconciliation
    with timer.step("reconciliation"):
        result = reconcile_opportunities(db, scored, now=now)

    _finish_sync_log(
        db,
        log,
        status="completed",
        records_processed=result.created + result.updated,
        error_message=f"{result.failed} writes failed" if result.failed else None,
    )
    timer.summary()

    logger.info(
        "[PIPELINE] Done: created=%d updated=%d filling=%d",
        result.created,
        result.updated,
        result.marked_filling,
    )
    return SyncSummary(created=result.created, updated=result.updated)


# ── CLI ─────────────────────────────────────────────────────────────────

async def _run_once() -> SyncSummary:
    from ...database import SessionLocal, init_db
    from ...http_client import close_client

    init_db()
    db = SessionLocal()
    try:
        return await run_void_detection(db)
    finally:
        db.close()
        await close_client()


def main() -> None:
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    summary = asyncio.run(_run_once())
    logger.info("[PIPELINE] Summary: %s", summary.model_dump(exclude_none=True))
    if summary.error:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
