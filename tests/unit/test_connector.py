"""Unit tests for market data sources (no network)."""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from token_radar.core.enums import Chain
from token_radar.core.errors import UpstreamUnavailable
from token_radar.core.throttle import RequestPacer, TimedCache
from token_radar.data.connector import (
    DEXSCREENER_API,
    DexScreenerGainersSource,
    DexScreenerTokenLookup,
    DexScreenerTrendingSource,
    GeckoTerminalFreshPoolsSource,
    GeckoTerminalNewPoolsSource,
    parse_dexscreener_pair,
    parse_gecko_pool,
)

from conftest import EVM_ADDRESS


def _pair(address=EVM_ADDRESS, chain="base", liquidity=40_000, change_24h=40, symbol="TEST"):
    return {
        "chainId": chain,
        "pairAddress": "0x" + "cd" * 20,
        "baseToken": {"address": address, "symbol": symbol, "name": "Test Token"},
        "priceUsd": "0.001",
        "priceChange": {"h1": 12, "h6": 20, "h24": change_24h},
        "volume": {"h24": 150_000},
        "liquidity": {"usd": liquidity},
        "fdv": 200_000,
        "txns": {"h24": {"buys": 420, "sells": 180}},
        "pairCreatedAt": 1736935200000,
    }


def _pool(address=EVM_ADDRESS, created="2025-01-15T10:00:00Z", fdv="300000", reserve="50000"):
    return {
        "attributes": {
            "address": "0x" + "ef" * 20,
            "name": "GEM / WETH",
            "base_token_price_usd": "0.002",
            "price_change_percentage": {"h1": "8", "h6": "15", "h24": "30"},
            "volume_usd": {"h24": "90000"},
            "reserve_in_usd": reserve,
            "fdv_usd": fdv,
            "transactions": {"h24": {"buys": 300, "sells": 100, "buyers": 120, "sellers": 40}},
            "pool_created_at": created,
        },
        "relationships": {"base_token": {"data": {"id": f"base_{address}"}}},
    }


def _response_ctx(status=200, payload=None):
    response = MagicMock(status=status)
    response.json = AsyncMock(return_value=payload)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _fast_pacer():
    return RequestPacer(min_interval=0)


class TestParsers:
    """Tests for upstream payload mapping."""

    def test_parse_dexscreener_pair(self):
        record = parse_dexscreener_pair(_pair())

        assert record["address"] == EVM_ADDRESS
        assert record["chain"] == "base"
        assert record["liquidity"] == 40_000
        assert record["buys_24h"] == 420
        assert record["pair_created_at"] == 1736935200000

    def test_parse_dexscreener_pair_missing_sections(self):
        record = parse_dexscreener_pair({"chainId": "solana"})
        assert record["address"] is None
        assert record["liquidity"] is None

    def test_parse_gecko_pool_uses_base_token_address(self):
        record = parse_gecko_pool(_pool(), Chain.BASE)

        assert record["address"] == EVM_ADDRESS
        assert record["symbol"] == "GEM"
        assert record["liquidity"] == 50_000
        assert record["fdv"] == 300_000
        assert record["unique_buyers_24h"] == 120

    def test_parse_gecko_pool_estimates_missing_fdv(self):
        record = parse_gecko_pool(_pool(fdv=None, reserve="25000"), Chain.BASE)
        assert record["fdv"] == 50_000


class TestHttpJsonSource:
    """Tests for caching, pacing and failure handling."""

    @pytest.mark.asyncio
    async def test_non_200_raises_upstream_unavailable(self):
        session = MagicMock(closed=False)
        session.get.return_value = _response_ctx(status=503)
        source = DexScreenerGainersSource(pacer=_fast_pacer(), session=session)

        with pytest.raises(UpstreamUnavailable):
            await source._get_json("/latest/dex/pairs/base")

    @pytest.mark.asyncio
    async def test_successful_response_cached(self):
        session = MagicMock(closed=False)
        session.get.return_value = _response_ctx(payload={"pairs": []})
        cache = TimedCache(ttl=30)
        source = DexScreenerGainersSource(pacer=_fast_pacer(), session=session, cache=cache)

        first = await source._get_json("/latest/dex/pairs/base")
        second = await source._get_json("/latest/dex/pairs/base")

        assert source.cache is cache
        assert len(cache) == 1
        assert first == second == {"pairs": []}
        assert session.get.call_count == 1

    @pytest.mark.asyncio
    async def test_fetch_degrades_to_empty(self):
        source = DexScreenerGainersSource(pacer=_fast_pacer())
        source._get_json = AsyncMock(side_effect=UpstreamUnavailable("dexscreener-gainers", "HTTP 500"))

        assert await source.fetch(Chain.BASE) == []

    @pytest.mark.asyncio
    async def test_fetch_degrades_on_malformed_body(self):
        source = GeckoTerminalNewPoolsSource(pacer=_fast_pacer())
        source._get_json = AsyncMock(return_value={"data": [None]})

        assert await source.fetch(Chain.BASE) == []

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = MagicMock(closed=False)
        session.close = AsyncMock()
        source = DexScreenerGainersSource(session=session)

        await source.close()
        session.close.assert_not_called()


class TestSources:
    """Tests for the concrete feeds."""

    @pytest.mark.asyncio
    async def test_trending_filters_chain_and_expands(self):
        source = DexScreenerTrendingSource(pacer=_fast_pacer())
        other = "0x" + "99" * 20

        async def fake_get(path, max_age=None):
            if path == "/token-boosts/top/v1":
                return [
                    {"chainId": "base", "tokenAddress": EVM_ADDRESS},
                    {"chainId": "solana", "tokenAddress": "So1"},
                    {"chainId": "base", "tokenAddress": other},
                ]
            address = path.rsplit("/", 1)[-1]
            return {"pairs": [_pair(address=address)]}

        source._get_json = AsyncMock(side_effect=fake_get)
        records = await source.fetch(Chain.BASE)

        assert [r["address"] for r in records] == [EVM_ADDRESS, other]

    @pytest.mark.asyncio
    async def test_gainers_threshold_and_cap(self):
        source = DexScreenerGainersSource(pacer=_fast_pacer(), max_per_chain=2)
        pairs = [_pair(change_24h=5), _pair(change_24h=15), _pair(change_24h=50), _pair(change_24h=80)]
        source._get_json = AsyncMock(return_value={"pairs": pairs})

        records = await source.fetch(Chain.BASE)

        assert [r["price_change_24h"] for r in records] == [15, 50]
        source._get_json.assert_awaited_once_with("/latest/dex/pairs/base")

    @pytest.mark.asyncio
    async def test_new_pools_use_gecko_network_id(self):
        source = GeckoTerminalNewPoolsSource(pacer=_fast_pacer())
        source._get_json = AsyncMock(return_value={"data": [_pool()]})

        records = await source.fetch(Chain.ETHEREUM)

        assert len(records) == 1
        source._get_json.assert_awaited_once_with("/networks/eth/new_pools?page=1")

    @pytest.mark.asyncio
    async def test_fresh_pools_age_ceiling(self, now):
        source = GeckoTerminalFreshPoolsSource(pacer=_fast_pacer())
        young = _pool(created=(now - timedelta(hours=2)).isoformat())
        old = _pool(address="0x" + "11" * 20, created=(now - timedelta(hours=9)).isoformat())
        undated = _pool(address="0x" + "22" * 20, created=None)
        source._get_json = AsyncMock(return_value={"data": [young, old, undated]})

        records = await source.fetch(Chain.BASE, {"now": now})

        assert [r["address"] for r in records] == [EVM_ADDRESS]

    @pytest.mark.asyncio
    async def test_lookup_picks_most_liquid_pair_on_chain(self):
        source = DexScreenerTokenLookup(pacer=_fast_pacer())
        pairs = [
            _pair(liquidity=10_000, symbol="SMALL"),
            _pair(liquidity=90_000, symbol="DEEP"),
            _pair(liquidity=500_000, symbol="OTHER", chain="ethereum"),
        ]
        source._get_json = AsyncMock(return_value={"pairs": pairs})

        record = await source.lookup(EVM_ADDRESS, Chain.BASE)

        assert record["symbol"] == "DEEP"

    @pytest.mark.asyncio
    async def test_lookup_no_pairs_returns_none(self):
        source = DexScreenerTokenLookup(pacer=_fast_pacer())
        source._get_json = AsyncMock(return_value={"pairs": None})

        assert await source.lookup(EVM_ADDRESS) is None

    @pytest.mark.asyncio
    async def test_lookup_propagates_upstream_failure(self):
        source = DexScreenerTokenLookup(pacer=_fast_pacer())
        source._get_json = AsyncMock(side_effect=UpstreamUnavailable("dexscreener-lookup", "timeout"))

        with pytest.raises(UpstreamUnavailable):
            await source.lookup(EVM_ADDRESS)

    def test_base_url(self):
        assert DexScreenerTokenLookup.base_url == DEXSCREENER_API
