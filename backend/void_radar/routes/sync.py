"""Sync routes — trigger the gap-detection pipeline.

Endpoints:
  POST /sync/opportunities — Run one detection + reconciliation pass
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from sqlalchemy.orm import Session

from ..agents.void_detection.pipeline import run_void_detection
from ..database import get_db
from ..schemas.sync_schema import SyncSummary

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sync",
    tags=["Sync"],
)


# ── Helpers ──────────────────────────────────────────────────────────────

def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when the secret is set."""
    secret = os.getenv("CRON_SECRET", "").strip()
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing cron secret",
        )


# ── Routes ───────────────────────────────────────────────────────────────

@router.post(
    "/opportunities",
    response_model=SyncSummary,
    response_model_exclude_none=True,
    summary="Detect and reconcile ecosystem gaps",
    response_description="Counts of created and updated opportunities, or the fatal error",
    responses={502: {"description": "Gap synthesis failed; nothing was written"}},
)
async def sync_opportunities(
    response: Response,
    db: Session = Depends(get_db),
    _: None = Depends(verify_cron_secret),
) -> SyncSummary:
    logger.info("[SYNC] Opportunities sync START")
    summary = await run_void_detection(db)

    if summary.error:
        logger.error("[SYNC] Opportunities sync FAILED: %s", summary.error)
        response.status_code = status.HTTP_502_BAD_GATEWAY
    else:
        logger.info("[SYNC] Opportunities sync done: created=%d updated=%d", summary.created, summary.updated)
    return summary
