"""End-to-end pipeline tests with stubbed market data and a patched LLM."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from void_radar.agents.void_detection.pipeline import run_void_detection
from void_radar.agents.void_detection.signals import RegistryLookup
from void_radar.database import Base
from void_radar.models import Category, Opportunity, Project, SyncLog
from void_radar.schemas.snapshot_schema import MarketToken
from void_radar.services.market_data import DexScreenerProvider, MarketDataProvider
from void_radar.services.openai_client import StructuredGenerationError
from void_radar.services.reconciliation import stable_id

LLM_CALL = "void_radar.services.openai_client.call_openai_chat_async"

TEST_DATABASE_URL = "sqlite:///./test_pipeline.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class StubProvider(MarketDataProvider):
    async def fetch_tokens(self) -> List[MarketToken]:
        return [MarketToken(symbol="REF", name="Ref Finance", volume_24h=10_000, liquidity_usd=500_000)]

    async def search_pairs(self, term: str) -> List[Dict[str, Any]]:
        if term == "aave":
            return [{"chainId": "ethereum", "pairAddress": "0x1", "liquidity": {"usd": 12_000_000}}]
        return []


class StubRegistry(RegistryLookup):
    async def fetch_names(self) -> List[str]:
        return ["Ref Finance"]


def _seed(db):
    defi = Category(id=uuid.uuid4(), name="DeFi", slug="defi")
    db.add(defi)
    db.add(Project(
        name="Ref Finance",
        slug="ref-finance",
        category_id=defi.id,
        tvl_usd=2_000_000,
        github_stars=300,
        last_github_commit=NOW - timedelta(days=5),
        is_active=True,
    ))
    db.commit()
    return defi


def _gap(title, confidence=8):
    return {
        "categorySlug": "defi",
        "title": title,
        "description": f"{title} for NEAR",
        "reasoning": "Only one active DEX",
        "difficulty": "intermediate",
        "competitionLevel": "low",
        "suggestedFeatures": ["Feature"],
        "evidenceProjects": ["Ref Finance"],
        "voidConfidence": confidence,
    }


def _llm(synthesis, skeptic):
    return AsyncMock(side_effect=[json.dumps(synthesis), json.dumps({"results": skeptic})])


def _run(db):
    return asyncio.run(
        run_void_detection(db, provider=StubProvider(), registry=StubRegistry(), now=NOW)
    )


def test_full_run_writes_verified_gaps(db):
    _seed(db)
    synthesis = [_gap("Perps DEX"), _gap("Yield Vaults"), _gap("Crowded Idea"), _gap("Hunch", confidence=3)]
    skeptic = [
        {"title": "Perps DEX", "skepticScore": 9},
        {"title": "Crowded Idea", "skepticScore": 2},
    ]

    with patch(LLM_CALL, new=_llm(synthesis, skeptic)) as call:
        summary = _run(db)

    assert call.await_count == 2
    assert summary.error is None
    assert (summary.created, summary.updated) == (2, 0)

    rows = {r.title: r for r in db.query(Opportunity).all()}
    assert set(rows) == {"Perps DEX", "Yield Vaults"}
    perps = rows["Perps DEX"]
    assert perps.stable_id == stable_id("defi", "Perps DEX")
    assert perps.status == "active"
    # confidence blended with skeptic: round((8 + 9) / 2) == 9
    assert perps.void_confidence == 9
    assert 0 <= perps.gap_score <= 100
    assert 0 <= perps.demand_score <= 100
    # default skeptic score leaves confidence untouched
    assert rows["Yield Vaults"].void_confidence == 8

    log = db.query(SyncLog).one()
    assert log.status == "completed"
    assert log.records_processed == 2
    assert log.completed_at is not None


def test_cross_chain_evidence_reaches_prompt_and_demand(db):
    _seed(db)
    with patch(LLM_CALL, new=_llm([_gap("Perps DEX")], [])) as call:
        _run(db)

    synthesis_payload = json.loads(call.await_args_list[0].kwargs["messages"][1]["content"])
    assert synthesis_payload["crossChainEvidence"] == {"defi": 12_000_000}
    assert synthesis_payload["fundedProjectNames"] == ["Ref Finance"]

    # fill 0 (at the ecosystem average) + liquidity 30 (2M TVL) + cross-chain 20 (12M)
    assert db.query(Opportunity).one().demand_score == 50


def test_second_identical_run_is_idempotent(db):
    _seed(db)
    synthesis = [_gap("Perps DEX"), _gap("Yield Vaults")]

    with patch(LLM_CALL, new=_llm(synthesis, [])):
        _run(db)
    with patch(LLM_CALL, new=_llm(synthesis, [])):
        summary = _run(db)

    assert (summary.created, summary.updated) == (0, 2)
    assert db.query(Opportunity).count() == 2
    assert db.query(SyncLog).count() == 2


def test_gap_missing_from_later_run_is_marked_filling(db):
    _seed(db)
    with patch(LLM_CALL, new=_llm([_gap("A"), _gap("B")], [])):
        _run(db)
    with patch(LLM_CALL, new=_llm([_gap("A")], [])):
        _run(db)

    db.expire_all()
    statuses = {r.title: r.status for r in db.query(Opportunity).all()}
    assert statuses == {"A": "active", "B": "filling"}


def test_synthesis_failure_aborts_without_writes(db):
    _seed(db)
    with patch(LLM_CALL, new=_llm([_gap("A")], [])):
        _run(db)

    failure = StructuredGenerationError("http_status", "OpenAI returned HTTP 500")
    with patch(LLM_CALL, new=AsyncMock(side_effect=failure)) as call:
        summary = _run(db)

    assert call.await_count == 1
    assert (summary.created, summary.updated) == (0, 0)
    assert summary.error
    db.expire_all()
    # Existing rows are not swept when the run aborts
    assert db.query(Opportunity).one().status == "active"

    failed = db.query(SyncLog).filter(SyncLog.status == "failed").one()
    assert "HTTP 500" in failed.error_message


def test_skeptic_failure_does_not_abort(db):
    _seed(db)
    llm = AsyncMock(side_effect=[
        json.dumps([_gap("A")]),
        StructuredGenerationError("timeout", "OpenAI request timed out after 120s"),
    ])
    with patch(LLM_CALL, new=llm):
        summary = _run(db)

    assert summary.error is None
    assert summary.created == 1


def test_no_categories_aborts(db):
    with patch(LLM_CALL, new=AsyncMock()) as call:
        summary = _run(db)

    call.assert_not_awaited()
    assert summary.error == "No categories found"
    assert db.query(SyncLog).one().status == "failed"


class BrokenProvider(StubProvider):
    async def fetch_tokens(self) -> List[MarketToken]:
        raise RuntimeError("market feed exploded")


def test_unexpected_error_marks_sync_log_failed_and_reraises(db):
    _seed(db)
    with patch(LLM_CALL, new=AsyncMock()) as call:
        with pytest.raises(RuntimeError, match="market feed exploded"):
            asyncio.run(run_void_detection(db, provider=BrokenProvider(), registry=StubRegistry(), now=NOW))

    call.assert_not_awaited()
    db.expire_all()
    log = db.query(SyncLog).one()
    assert log.status == "failed"
    assert "RuntimeError: market feed exploded" in log.error_message
    assert log.completed_at is not None
    assert db.query(Opportunity).count() == 0


def test_malformed_market_pair_does_not_break_run(db):
    _seed(db)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/latest/dex/tokens/"):
            return httpx.Response(200, json={"pairs": [
                {"chainId": "near", "baseToken": {"symbol": 5, "name": "Numeric"}, "liquidity": {"usd": 1}},
                {"chainId": "near", "baseToken": {"symbol": "REF", "name": "Ref Finance"}, "liquidity": "deep"},
            ]})
        return httpx.Response(200, json={"pairs": []})

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = DexScreenerProvider(client, base_url="https://dex.example")
            return await run_void_detection(db, provider=provider, registry=StubRegistry(), now=NOW)

    with patch(LLM_CALL, new=_llm([_gap("Perps DEX")], [])):
        summary = asyncio.run(go())

    assert summary.error is None
    assert summary.created == 1
    assert db.query(SyncLog).one().status == "completed"
