"""Centralized constants shared across the gap-detection stages.

This module is the SINGLE SOURCE OF TRUTH for thresholds, closed enums,
and the hand-curated cross-chain keyword dictionary. Reused by:
  - Snapshot Builder
  - External Signal Aggregator
  - Gap Synthesizer / Skeptic Verifier
  - Scoring and Reconciliation engines
"""

from __future__ import annotations

# ── Closed enums ────────────────────────────────────────────────────────
# Mirrored in the synthesis prompt; candidates outside these sets are rejected.

DIFFICULTIES: tuple[str, ...] = ("beginner", "intermediate", "advanced")
COMPETITION_LEVELS: tuple[str, ...] = ("low", "medium", "high")

STATUS_ACTIVE = "active"
STATUS_FILLING = "filling"

SYNC_SOURCE = "opportunities"

# ── Snapshot Builder ────────────────────────────────────────────────────

RECENT_COMMIT_DAYS = 30

# ── Gap Synthesizer ─────────────────────────────────────────────────────

MIN_VOID_CONFIDENCE = 5
MAX_CANDIDATES = 100

TARGET_CANDIDATES_MIN = 70
TARGET_CANDIDATES_MAX = 90

# ── Skeptic Verifier ────────────────────────────────────────────────────

SKEPTIC_PASS_THRESHOLD = 6
# Applied when the skeptic returned no verdict for a title.
SKEPTIC_DEFAULT_SCORE = 7

# ── Scoring Engine ──────────────────────────────────────────────────────

MIN_CONFIDENCE_MULTIPLIER = 0.5

FILL_RATE_MAX = 30

# (threshold USD, points), checked from the top down
LIQUIDITY_STEPS: tuple[tuple[float, int], ...] = (
    (10_000_000, 40),
    (1_000_000, 30),
    (100_000, 20),
    (10_000, 10),
)
LIQUIDITY_FLOOR = 5

CROSS_CHAIN_STEPS: tuple[tuple[float, int], ...] = (
    (50_000_000, 30),
    (10_000_000, 20),
    (1_000_000, 10),
)

# ── Reconciliation Engine ───────────────────────────────────────────────

STABLE_TITLE_MAX_LEN = 50
STABLE_ID_HEX_LEN = 16

# ── External signals ────────────────────────────────────────────────────

DEFAULT_FUNDED_REGISTRY_URLS: tuple[str, ...] = (
    "https://api.nearcatalog.xyz/projects?tag=funded",
    "https://nearcatalog.xyz/wp-json/nearcatalog/v1/projects?tag=funded",
    "https://raw.githubusercontent.com/near/ecosystem/main/funded.json",
)

# Chains whose liquidity counts as cross-chain analogue evidence.
CROSS_CHAIN_ALLOWED_CHAINS: frozenset[str] = frozenset({
    "ethereum",
    "solana",
    "arbitrum",
    "base",
    "polygon",
    "avalanche",
    "bsc",
})

MAX_TERMS_PER_CATEGORY = 2

# Category-slug substring -> analogue search terms.
# Checked in insertion order; slugs matching none contribute no evidence.
CROSS_CHAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "dex": ("uniswap", "raydium"),
    "defi": ("aave", "pendle"),
    "lending": ("aave", "compound"),
    "nft": ("blur", "magic eden"),
    "gaming": ("immutable", "gala"),
    "ai-": ("virtuals", "fetch"),
    "dao": ("aragon",),
    "privacy": ("railgun", "secret"),
    "rwa": ("ondo", "centrifuge"),
    "social": ("friend.tech", "farcaster"),
    "infrastructure": ("chainlink", "the graph"),
}
