"""External signal tests — registry fallback, keyword terms, cross-chain isolation."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
from typing import Any, Dict, List

import httpx
import pytest

from void_radar.agents.void_detection.signals import (
    FirstSuccessRegistryLookup,
    RegistryLookup,
    find_cross_chain_evidence,
    gather_external_signals,
    get_registry_urls,
    parse_registry_payload,
    sum_external_liquidity,
    terms_for_category,
)
from void_radar.schemas.snapshot_schema import MarketToken
from void_radar.services.market_data import MarketDataProvider


def _pair(chain, liquidity, address=None):
    return {"chainId": chain, "pairAddress": address, "liquidity": {"usd": liquidity}}


class StubProvider(MarketDataProvider):
    """Per-term canned pairs; a term mapped to an exception raises, to 'hang' sleeps."""

    def __init__(self, by_term: Dict[str, Any]):
        self.by_term = by_term
        self.calls: List[str] = []

    async def fetch_tokens(self) -> List[MarketToken]:
        return []

    async def search_pairs(self, term: str) -> List[Dict[str, Any]]:
        self.calls.append(term)
        result = self.by_term.get(term, [])
        if result == "hang":
            await asyncio.sleep(5)
            return []
        if isinstance(result, Exception):
            raise result
        return result


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_parse_registry_list_of_objects():
    payload = [{"name": "Ref Finance"}, {"id": "burrow"}, {"name": " Ref Finance "}, {"other": 1}]
    assert parse_registry_payload(payload) == ["Ref Finance", "burrow"]


def test_parse_registry_wrapped_projects():
    assert parse_registry_payload({"projects": ["Meteor", "Sweat"]}) == ["Meteor", "Sweat"]


def test_parse_registry_unknown_shape():
    assert parse_registry_payload({"data": []}) == []
    assert parse_registry_payload("nope") == []


def test_registry_urls_from_env(monkeypatch):
    monkeypatch.setenv("FUNDED_REGISTRY_URLS", "https://a.example/x, https://b.example/y,")
    assert get_registry_urls() == ["https://a.example/x", "https://b.example/y"]


def test_registry_urls_default(monkeypatch):
    monkeypatch.delenv("FUNDED_REGISTRY_URLS", raising=False)
    assert len(get_registry_urls()) == 3


def _lookup(handler, urls):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, FirstSuccessRegistryLookup(client, urls=urls)


async def _fetch(handler, urls):
    client, lookup = _lookup(handler, urls)
    async with client:
        return await lookup.fetch_names()


def test_registry_first_non_empty_endpoint_wins():
    hits = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request.url.host)
        if request.url.host == "down.example":
            return httpx.Response(503)
        if request.url.host == "empty.example":
            return httpx.Response(200, json=[])
        if request.url.host == "good.example":
            return httpx.Response(200, json=[{"name": "Ref Finance"}])
        return httpx.Response(200, json=[{"name": "never reached"}])

    urls = [
        "https://down.example/f",
        "https://empty.example/f",
        "https://good.example/f",
        "https://late.example/f",
    ]
    names = asyncio.run(_fetch(handler, urls))

    assert names == ["Ref Finance"]
    assert hits == ["down.example", "empty.example", "good.example"]


def test_registry_all_endpoints_failing_returns_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "boom.example":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text="<html>not json</html>")

    names = asyncio.run(_fetch(handler, ["https://boom.example/f", "https://html.example/f"]))
    assert names == []


# ---------------------------------------------------------------------------
# Keyword terms + liquidity sums
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "slug,expected",
    [
        ("defi", ["aave", "pendle"]),
        ("dex-trading", ["uniswap", "raydium"]),
        ("dao-tooling", ["aragon"]),
        ("ai-agents", ["virtuals", "fetch"]),
        ("wallets", []),
    ],
)
def test_terms_for_category(slug, expected):
    assert terms_for_category(slug) == expected


def test_terms_capped_at_two():
    # "defi-lending" matches both "defi" and "lending"
    assert len(terms_for_category("defi-lending")) == 2


def test_liquidity_sum_uses_allow_list_and_dedupes():
    seen = set()
    pairs = [
        _pair("ethereum", 1_000_000, "0xa"),
        _pair("solana", 500_000, "sol1"),
        _pair("near", 9_000_000, "near1"),
        _pair("fantom", 9_000_000, "ftm1"),
        _pair("ethereum", 1_000_000, "0xa"),
        {"chainId": "base", "liquidity": None},
        {"chainId": "polygon", "pairAddress": "poly1", "liquidity": "lots"},
    ]
    assert sum_external_liquidity(pairs, seen) == 1_500_000
    # Pairs already counted under another term are skipped
    assert sum_external_liquidity([_pair("ethereum", 1_000_000, "0xa")], seen) == 0


# ---------------------------------------------------------------------------
# Cross-chain finder
# ---------------------------------------------------------------------------

def test_cross_chain_evidence_per_category():
    provider = StubProvider({
        "aave": [_pair("ethereum", 20_000_000, "0x1")],
        "pendle": [_pair("arbitrum", 5_000_000, "0x2"), _pair("ethereum", 20_000_000, "0x1")],
        "uniswap": [_pair("near", 1_000_000, "n1")],
    })
    evidence = asyncio.run(find_cross_chain_evidence(provider, ["defi", "dex-trading", "wallets"]))

    assert evidence == {"defi": 25_000_000}
    assert "wallets" not in evidence
    assert "dex-trading" not in evidence


def test_hanging_category_does_not_block_others():
    provider = StubProvider({
        "aave": "hang",
        "uniswap": [_pair("ethereum", 3_000_000, "0x1")],
    })
    evidence = asyncio.run(
        find_cross_chain_evidence(provider, ["defi", "dex-trading"], timeout=0.05)
    )
    assert evidence == {"dex-trading": 3_000_000}


def test_failing_category_does_not_block_others():
    provider = StubProvider({
        "virtuals": httpx.ConnectError("refused"),
        "uniswap": [_pair("solana", 2_000_000, "s1")],
    })
    evidence = asyncio.run(find_cross_chain_evidence(provider, ["ai-agents", "dex-trading"]))
    assert evidence == {"dex-trading": 2_000_000}


# ---------------------------------------------------------------------------
# Aggregated signals
# ---------------------------------------------------------------------------

class StaticRegistry(RegistryLookup):
    def __init__(self, names=None, error=None):
        self.names = names or []
        self.error = error

    async def fetch_names(self):
        if self.error:
            raise self.error
        return self.names


def test_gather_combines_both_feeds():
    provider = StubProvider({"aave": [_pair("ethereum", 1_000_000, "0x1")]})
    signals = asyncio.run(
        gather_external_signals(
            provider=provider,
            registry=StaticRegistry(["Ref Finance"]),
            category_slugs=["defi"],
        )
    )
    assert signals.funded_project_names == ("Ref Finance",)
    assert signals.cross_chain_evidence == {"defi": 1_000_000}


def test_gather_survives_registry_exception():
    signals = asyncio.run(
        gather_external_signals(
            provider=StubProvider({}),
            registry=StaticRegistry(error=RuntimeError("boom")),
            category_slugs=["defi"],
        )
    )
    assert signals.funded_project_names == ()
    assert signals.cross_chain_evidence == {}
