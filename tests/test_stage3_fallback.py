"""Tests for Stage 3 fallback execution."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from venue_search.models import TierPlan
from venue_search.pipeline.stage2_tiers import QueryTierCompiler
from venue_search.pipeline.stage3_fallback import (
    EXHAUSTED_MESSAGE,
    TIER_MESSAGES,
    BackendNotConfiguredError,
    parse_hits,
    run_with_fallback,
)

from conftest import EMPTY_RESPONSE, es_response


@pytest.fixture
def plan(compiler: QueryTierCompiler) -> TierPlan:
    return compiler.compile("music venues in idaho")


def _hit(contact_id: int) -> dict[str, Any]:
    return {"contactId": contact_id, "company": f"Venue {contact_id}"}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestParseHits:
    def test_documents_and_total(self) -> None:
        docs, total = parse_hits(es_response(_hit(1), _hit(2)))
        assert [d.id for d in docs] == ["1", "2"]
        assert docs[0].source["company"] == "Venue 1"
        assert docs[0].score == 1.0
        assert total == 2

    def test_integer_total(self) -> None:
        response = {"hits": {"total": 42, "hits": [{"_id": "a", "_score": 3.5, "_source": {}}]}}
        docs, total = parse_hits(response)
        assert total == 42
        assert docs[0].score == 3.5

    def test_missing_total_falls_back_to_hit_count(self) -> None:
        response = {"hits": {"hits": [{"_id": "a", "_source": {}}]}}
        assert parse_hits(response)[1] == 1

    def test_highlights_kept(self) -> None:
        response = {
            "hits": {
                "total": {"value": 1},
                "hits": [{"_id": "a", "_score": 1, "_source": {}, "highlight": {"company": ["<em>Jazz</em>"]}}],
            }
        }
        docs, _ = parse_hits(response)
        assert docs[0].highlights == {"company": ["<em>Jazz</em>"]}

    @pytest.mark.parametrize("response", [None, {}, {"hits": None}, {"hits": {"hits": "nope"}}, ["x"]])
    def test_malformed_is_empty(self, response: Any) -> None:  # noqa: ANN401
        assert parse_hits(response) == ([], 0)

    def test_bad_hits_are_skipped(self) -> None:
        response = {"hits": {"total": {"value": 2}, "hits": ["garbage", {"_id": "ok", "_source": {}}]}}
        docs, total = parse_hits(response)
        assert [d.id for d in docs] == ["ok"]
        assert total == 2


# ---------------------------------------------------------------------------
# Fallback execution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestRunWithFallback:
    async def test_first_tier_hit_stops(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        mock_backend.search.return_value = es_response(_hit(1))
        outcome = await run_with_fallback(plan, mock_backend, 100)

        assert outcome.tier_used == 1
        assert outcome.message is None
        assert not outcome.exhausted
        assert mock_backend.search.await_count == 1
        query = mock_backend.search.await_args.args[0]
        assert query == plan.tiers[0].to_query()
        assert mock_backend.search.await_args.kwargs["size"] == 100

    async def test_empty_tier_advances(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        mock_backend.search.side_effect = [EMPTY_RESPONSE, es_response(_hit(7))]
        outcome = await run_with_fallback(plan, mock_backend, 10)

        assert outcome.tier_used == 2
        assert outcome.message == TIER_MESSAGES[2]
        assert [d.id for d in outcome.hits] == ["7"]
        assert mock_backend.search.await_count == 2

    @pytest.mark.parametrize("tier", [1, 2, 3, 4, 5])
    async def test_message_per_tier(self, plan: TierPlan, mock_backend: AsyncMock, tier: int) -> None:
        mock_backend.search.side_effect = [EMPTY_RESPONSE] * (tier - 1) + [es_response(_hit(1))]
        outcome = await run_with_fallback(plan, mock_backend, 10)
        assert outcome.tier_used == tier
        assert outcome.message == TIER_MESSAGES[tier]

    async def test_backend_error_treated_as_empty(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        mock_backend.search.side_effect = [
            httpx.ConnectError("connection refused"),
            RuntimeError("shard failure"),
            es_response(_hit(3)),
        ]
        outcome = await run_with_fallback(plan, mock_backend, 10)
        assert outcome.tier_used == 3
        assert mock_backend.search.await_count == 3

    async def test_malformed_response_treated_as_empty(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        mock_backend.search.side_effect = [{"error": "bad"}, es_response(_hit(1))]
        outcome = await run_with_fallback(plan, mock_backend, 10)
        assert outcome.tier_used == 2

    async def test_timeout_treated_as_empty(self, plan: TierPlan) -> None:
        calls: list[int] = []

        class SlowFirstTier:
            async def search(self, query: dict[str, Any], size: int) -> dict[str, Any]:
                calls.append(len(calls) + 1)
                if len(calls) == 1:
                    await asyncio.sleep(5)
                return es_response(_hit(len(calls)))

        outcome = await run_with_fallback(plan, SlowFirstTier(), 10, tier_timeout=0.05)
        assert outcome.tier_used == 2
        assert calls == [1, 2]

    async def test_exhausted(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        outcome = await run_with_fallback(plan, mock_backend, 10)

        assert outcome.exhausted
        assert outcome.tier_used == 5
        assert outcome.hits == []
        assert outcome.total == 0
        assert outcome.message == EXHAUSTED_MESSAGE
        assert mock_backend.search.await_count == 5

    async def test_tiers_tried_in_order(self, plan: TierPlan, mock_backend: AsyncMock) -> None:
        await run_with_fallback(plan, mock_backend, 10)
        sent = [call.args[0] for call in mock_backend.search.await_args_list]
        assert sent == [tier.to_query() for tier in plan.tiers]

    async def test_missing_backend(self, plan: TierPlan) -> None:
        with pytest.raises(BackendNotConfiguredError):
            await run_with_fallback(plan, None, 10)

    async def test_cancellation_propagates(self, plan: TierPlan) -> None:
        started = asyncio.Event()
        calls: list[dict[str, Any]] = []

        class HangingBackend:
            async def search(self, query: dict[str, Any], size: int) -> dict[str, Any]:
                calls.append(query)
                started.set()
                await asyncio.sleep(60)
                return EMPTY_RESPONSE

        task = asyncio.create_task(run_with_fallback(plan, HangingBackend(), 10, tier_timeout=120))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(calls) == 1
