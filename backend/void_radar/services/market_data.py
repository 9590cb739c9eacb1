"""Market Data Providers.

Defines the ``MarketDataProvider`` abstract interface and the DexScreener
implementation. The Snapshot Builder and the cross-chain analogue finder
interact only with the interface, so tests can hand in a stub.

Providers
---------
- ``DexScreenerProvider`` — public DexScreener HTTP API.
"""

from __future__ import annotations

import abc
import logging
import math
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..http_client import get_timeout
from ..schemas.snapshot_schema import MarketToken

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.dexscreener.com"
_HOME_CHAIN = "near"
_HOME_QUOTE_TOKEN = "wrap.near"

# Drop dust pairs: a token needs this much liquidity OR this much volume.
_MIN_LIQUIDITY_USD = 10_000
_MIN_VOLUME_24H = 1_000


# ===================================================================== #
#  Abstract interface                                                     #
# ===================================================================== #

class MarketDataProvider(abc.ABC):
    """Interface every market-data source must implement."""

    @abc.abstractmethod
    async def fetch_tokens(self) -> List[MarketToken]:
        """Return the tradable home-chain tokens. Empty list on failure."""

    @abc.abstractmethod
    async def search_pairs(self, term: str) -> List[Dict[str, Any]]:
        """Free-text pair search across all chains.

        Returns raw pair dicts with at least ``chainId``, ``baseToken.name``
        and ``liquidity.usd``. Raises ``httpx.HTTPError`` on failure.
        """


# ===================================================================== #
#  Helpers                                                                #
# ===================================================================== #

def _usd_field(pair: Dict[str, Any], section: str, key: str) -> float:
    """Read ``pair[section][key]`` as a non-negative finite float, else 0."""
    block = pair.get(section)
    if not isinstance(block, dict):
        return 0.0
    try:
        value = float(block.get(key) or 0)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) and value > 0 else 0.0


def _pair_liquidity(pair: Dict[str, Any]) -> float:
    return _usd_field(pair, "liquidity", "usd")


def _pair_volume(pair: Dict[str, Any]) -> float:
    return _usd_field(pair, "volume", "h24")


def _base_token(pair: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """``(symbol, name)`` of the pair's base token; ``None`` where not a non-empty string."""
    base = pair.get("baseToken")
    if not isinstance(base, dict):
        return None, None
    symbol, name = base.get("symbol"), base.get("name")
    return (
        symbol if isinstance(symbol, str) and symbol else None,
        name if isinstance(name, str) and name else None,
    )


def pairs_to_tokens(pairs: List[Dict[str, Any]]) -> List[MarketToken]:
    """Collapse home-chain pairs to one token per symbol (deepest pair wins).

    Malformed pairs (not an object, or without a string symbol) are skipped.
    """
    best: Dict[str, Dict[str, Any]] = {}
    for pair in pairs:
        if not isinstance(pair, dict) or pair.get("chainId") != _HOME_CHAIN:
            continue
        symbol, _ = _base_token(pair)
        if symbol is None:
            continue
        existing = best.get(symbol)
        if existing is None or _pair_liquidity(pair) > _pair_liquidity(existing):
            best[symbol] = pair

    tokens: List[MarketToken] = []
    for symbol, pair in best.items():
        liquidity = _pair_liquidity(pair)
        volume = _pair_volume(pair)
        if liquidity < _MIN_LIQUIDITY_USD and volume < _MIN_VOLUME_24H:
            continue
        _, name = _base_token(pair)
        tokens.append(
            MarketToken(
                symbol=symbol,
                name=name or symbol,
                volume_24h=volume,
                liquidity_usd=liquidity,
            )
        )

    tokens.sort(key=lambda t: t.liquidity_usd, reverse=True)
    return tokens


# ===================================================================== #
#  DexScreener provider                                                   #
# ===================================================================== #

class DexScreenerProvider(MarketDataProvider):
    """Fetches pairs from the public DexScreener API."""

    def __init__(self, client: httpx.AsyncClient, base_url: Optional[str] = None) -> None:
        self._client = client
        self._base_url = (base_url or os.getenv("DEXSCREENER_BASE_URL", _DEFAULT_BASE_URL)).rstrip("/")
        self._timeout = get_timeout("dexscreener")

    async def fetch_tokens(self) -> List[MarketToken]:
        url = f"{self._base_url}/latest/dex/tokens/{_HOME_QUOTE_TOKEN}"
        try:
            resp = await self._client.get(url, timeout=self._timeout)
        except httpx.HTTPError as exc:
            logger.warning("[MARKET] Token listing failed: %s", exc)
            return []

        if resp.status_code != 200:
            logger.warning("[MARKET] Token listing HTTP %d", resp.status_code)
            return []

        try:
            pairs = resp.json().get("pairs") or []
        except (ValueError, AttributeError):
            logger.warning("[MARKET] Token listing returned non-JSON body")
            return []
        if not isinstance(pairs, list):
            logger.warning("[MARKET] Token listing 'pairs' is %s, not a list", type(pairs).__name__)
            return []

        tokens = pairs_to_tokens(pairs)
        logger.info("[MARKET] %d tradable tokens from %d pairs", len(tokens), len(pairs))
        return tokens

    async def search_pairs(self, term: str) -> List[Dict[str, Any]]:
        resp = await self._client.get(
            f"{self._base_url}/latest/dex/search",
            params={"q": term},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        pairs = resp.json().get("pairs") or []
        if not isinstance(pairs, list):
            return []
        return [p for p in pairs if isinstance(p, dict)]
