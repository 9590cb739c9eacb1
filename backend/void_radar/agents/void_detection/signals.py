"""External Signal Aggregator — best-effort advisory evidence.

Two independent feeds, both of which degrade to "no evidence" instead of
raising:

- Funded-project registry: ordered endpoint list, first non-empty wins.
- Cross-chain analogues: per-category keyword search on the market
  service, liquidity summed over an allow-list of external chains.

Nothing here creates or removes candidates; the output is only appended
to the synthesis payload and read by the demand score.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from ...constants import (
    CROSS_CHAIN_ALLOWED_CHAINS,
    CROSS_CHAIN_KEYWORDS,
    DEFAULT_FUNDED_REGISTRY_URLS,
    MAX_TERMS_PER_CATEGORY,
)
from ...http_client import Timeouts, get_timeout
from ...schemas.snapshot_schema import ExternalSignals
from ...services.market_data import MarketDataProvider

logger = logging.getLogger(__name__)


# ===================================================================== #
#  Funded-project registry                                                #
# ===================================================================== #

def get_registry_urls() -> List[str]:
    """Endpoints from ``FUNDED_REGISTRY_URLS`` (comma-separated), else defaults."""
    raw = os.getenv("FUNDED_REGISTRY_URLS", "").strip()
    if raw:
        return [u.strip() for u in raw.split(",") if u.strip()]
    return list(DEFAULT_FUNDED_REGISTRY_URLS)


def parse_registry_payload(payload: Any) -> List[str]:
    """Extract project names from ``[{name|id}]`` or ``{"projects": [...]}``.

    Order is preserved and duplicates are dropped.
    """
    if isinstance(payload, dict):
        payload = payload.get("projects")
    if not isinstance(payload, list):
        return []

    names: List[str] = []
    seen: set[str] = set()
    for item in payload:
        if isinstance(item, str):
            name = item
        elif isinstance(item, dict):
            name = item.get("name") or item.get("id") or ""
        else:
            continue
        if not isinstance(name, str):
            continue
        name = name.strip()
        if name and name not in seen:
            seen.add(name)
            names.append(name)
    return names


class RegistryLookup(abc.ABC):
    """Source of the funded-project name list."""

    @abc.abstractmethod
    async def fetch_names(self) -> List[str]:
        """Return funded project names; empty list when unavailable."""


class FirstSuccessRegistryLookup(RegistryLookup):
    """Tries endpoints in order; the first one yielding >= 1 name wins."""

    def __init__(self, client: httpx.AsyncClient, urls: Optional[Sequence[str]] = None) -> None:
        self._client = client
        self._urls = list(urls) if urls is not None else get_registry_urls()

    async def fetch_names(self) -> List[str]:
        for url in self._urls:
            names = await self._try_endpoint(url)
            if names:
                logger.info("[SIGNALS] Registry %s returned %d funded projects", url, len(names))
                return names
        logger.warning("[SIGNALS] No funded-project registry responded — continuing without")
        return []

    async def _try_endpoint(self, url: str) -> List[str]:
        try:
            resp = await self._client.get(url, timeout=get_timeout("registry"))
        except httpx.HTTPError as exc:
            logger.info("[SIGNALS] Registry %s unreachable: %s", url, exc)
            return []
        if resp.status_code != 200:
            logger.info("[SIGNALS] Registry %s HTTP %d", url, resp.status_code)
            return []
        try:
            return parse_registry_payload(resp.json())
        except ValueError:
            logger.info("[SIGNALS] Registry %s returned non-JSON body", url)
            return []


# ===================================================================== #
#  Cross-chain analogues                                                  #
# ===================================================================== #

def terms_for_category(slug: str) -> List[str]:
    """Up to two search terms for *slug* from the keyword dictionary."""
    slug = slug.lower()
    terms: List[str] = []
    for fragment, candidates in CROSS_CHAIN_KEYWORDS.items():
        if fragment not in slug:
            continue
        for term in candidates:
            if term not in terms:
                terms.append(term)
            if len(terms) >= MAX_TERMS_PER_CATEGORY:
                return terms
    return terms


def sum_external_liquidity(pairs: Iterable[Dict[str, Any]], seen: Optional[set] = None) -> float:
    """Sum ``liquidity.usd`` over pairs on allow-listed chains.

    *seen* collects pair addresses so a pair returned by two search terms
    is counted once.
    """
    seen = seen if seen is not None else set()
    total = 0.0
    for pair in pairs:
        if pair.get("chainId") not in CROSS_CHAIN_ALLOWED_CHAINS:
            continue
        address = pair.get("pairAddress")
        if address:
            if address in seen:
                continue
            seen.add(address)
        liquidity = pair.get("liquidity")
        if not isinstance(liquidity, dict):
            continue
        try:
            total += float(liquidity.get("usd") or 0)
        except (TypeError, ValueError):
            continue
    return total


async def _category_liquidity(provider: MarketDataProvider, terms: Sequence[str]) -> float:
    seen: set[str] = set()
    total = 0.0
    for term in terms:
        pairs = await provider.search_pairs(term)
        total += sum_external_liquidity(pairs, seen)
    return total


async def find_cross_chain_evidence(
    provider: MarketDataProvider,
    category_slugs: Iterable[str],
    *,
    timeout: float = Timeouts.CROSS_CHAIN_CATEGORY,
) -> Dict[str, float]:
    """Analogue liquidity per category slug.

    One task per category, each raced against *timeout*, joined with
    settle-all semantics. Categories that time out, fail, have no keyword
    terms, or sum to zero are absent from the result.
    """
    targets = [(slug, terms_for_category(slug)) for slug in category_slugs]
    targets = [(slug, terms) for slug, terms in targets if terms]
    if not targets:
        return {}

    tasks = [
        asyncio.wait_for(_category_liquidity(provider, terms), timeout=timeout)
        for _, terms in targets
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    evidence: Dict[str, float] = {}
    for (slug, terms), result in zip(targets, results):
        if isinstance(result, asyncio.TimeoutError):
            logger.warning("[SIGNALS] Cross-chain lookup for %s timed out after %.0fs", slug, timeout)
            continue
        if isinstance(result, BaseException):
            logger.warning("[SIGNALS] Cross-chain lookup for %s failed: %s", slug, result)
            continue
        if result > 0:
            evidence[slug] = round(result, 2)

    logger.info("[SIGNALS] Cross-chain evidence for %d/%d categories", len(evidence), len(targets))
    return evidence


# ===================================================================== #
#  Public API                                                             #
# ===================================================================== #

async def gather_external_signals(
    *,
    provider: MarketDataProvider,
    registry: RegistryLookup,
    category_slugs: Sequence[str],
) -> ExternalSignals:
    """Run both feeds concurrently; either may come back empty."""
    names_result, evidence_result = await asyncio.gather(
        registry.fetch_names(),
        find_cross_chain_evidence(provider, category_slugs),
        return_exceptions=True,
    )

    if isinstance(names_result, BaseException):
        logger.warning("[SIGNALS] Registry lookup raised: %s", names_result)
        names_result = []
    if isinstance(evidence_result, BaseException):
        logger.warning("[SIGNALS] Cross-chain finder raised: %s", evidence_result)
        evidence_result = {}

    return ExternalSignals(
        funded_project_names=tuple(names_result),
        cross_chain_evidence=evidence_result,
    )
