from typing import Optional

from pydantic import BaseModel, Field


class SyncSummary(BaseModel):
    """Outcome of one gap-detection run.

    When ``error`` is set the run aborted before reconciliation and both
    counters are zero.
    """

    created: int = Field(0, ge=0, description="Opportunities inserted this run")
    updated: int = Field(0, ge=0, description="Existing opportunities refreshed this run")
    error: Optional[str] = Field(None, description="Fatal error that aborted the run")
