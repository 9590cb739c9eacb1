from .gap_score import baseline_gap_score
from .market_data import DexScreenerProvider, MarketDataProvider
from .openai_client import StructuredGenerationError, generate_structured
from .reconciliation import reconcile_opportunities, stable_id
from .scoring_engine import score_gaps

__all__ = [
    "baseline_gap_score",
    "DexScreenerProvider",
    "MarketDataProvider",
    "StructuredGenerationError",
    "generate_structured",
    "reconcile_opportunities",
    "stable_id",
    "score_gaps",
]
