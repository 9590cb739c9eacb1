# Schemas package
from .snapshot_schema import (
    CategorySnapshot,
    ChainStatsSnapshot,
    EcosystemContext,
    ExternalSignals,
    MarketToken,
    ProjectSnapshot,
)
from .gap_schema import CandidateGap, CandidateRejection, ScoredGap, SkepticVerdict, VerifiedGap
from .sync_schema import SyncSummary

__all__ = [
    "MarketToken",
    "ProjectSnapshot",
    "CategorySnapshot",
    "ChainStatsSnapshot",
    "EcosystemContext",
    "ExternalSignals",
    "CandidateGap",
    "CandidateRejection",
    "SkepticVerdict",
    "VerifiedGap",
    "ScoredGap",
    "SyncSummary",
]
