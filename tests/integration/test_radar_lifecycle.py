"""Integration tests for the scan -> track -> exit lifecycle."""

import pytest
from datetime import timedelta

from token_radar.core.enums import ExitAction, ExitReason, PositionStatus
from token_radar.intel.social import SocialSource
from token_radar.intel.wallet import WalletSource
from token_radar.reporting.explainer import explain_position, radar_summary
from token_radar.service import TokenRadarService

from conftest import NOW, StaticLookup, StaticSource, evm_address


class MockMarket:
    """Mutable market shared by the scan source and the token lookup."""

    def __init__(self, records):
        self.records = {r["address"]: r for r in records}
        self.source = StaticSource(list(self.records.values()))
        self.lookup = StaticLookup(self.records)

    def move(self, address, **changes):
        self.records[address] = {**self.records[address], **changes}
        self.source.records = list(self.records.values())


@pytest.fixture
def market(make_record):
    records = [
        make_record(address=evm_address(1), symbol="DEEP", liquidity=70_000, volume_24h=400_000),
        make_record(address=evm_address(2), symbol="MID", liquidity=30_000),
        make_record(address=evm_address(3), symbol="THIN", liquidity=12_000, price_change_1h=3),
        make_record(address=evm_address(4), symbol="FLAT", price_change_1h=0, buys_24h=150, sells_24h=140),
        make_record(address=evm_address(5), symbol="TRAP", buys_24h=400, sells_24h=4),
    ]
    return MockMarket(records)


@pytest.fixture
def service(market):
    return TokenRadarService(
        config={'radar': {'chains': ['base'], 'limit': 3}},
        sources=[market.source],
        gem_sources=[market.source],
        lookup=market.lookup,
        social_source=SocialSource(),
        wallet_source=WalletSource(explorer_keys={}),
        clock=lambda: NOW,
    )


class TestRadarLifecycle:
    """End-to-end flows through the service."""

    @pytest.mark.asyncio
    async def test_scan_ranks_truncates_and_excludes_flagged(self, service):
        results = await service.radar()

        symbols = [r.candidate.symbol for r in results]
        assert len(results) == 3
        assert "TRAP" not in symbols
        composites = [r.candidate.scores.composite for r in results]
        assert composites == sorted(composites, reverse=True)
        assert all(r.eligible for r in results)

        summary = radar_summary(results, NOW)
        assert summary.startswith("# Token Radar - 3 Candidate(s)")

    @pytest.mark.asyncio
    async def test_track_to_trailing_stop(self, service, market):
        address = evm_address(1)
        position = await service.track(address, 'base', NOW)
        assert position.status == PositionStatus.ACTIVE

        market.move(address, price_usd="0.002")
        assert await service.check_exits(NOW + timedelta(minutes=30)) == []
        position = service.tracker.get_position(position.id)
        assert position.exit_signal.reason == ExitReason.PROFIT_TARGET_2X

        market.move(address, price_usd="0.004")
        assert await service.check_exits(NOW + timedelta(minutes=60)) == []

        market.move(address, price_usd="0.0028")
        signals = await service.check_exits(NOW + timedelta(minutes=90))

        assert len(signals) == 1
        closed, signal = signals[0]
        assert signal.signal == ExitAction.EXIT
        assert signal.reason == ExitReason.TRAILING_STOP
        assert closed.status == PositionStatus.EXITED
        assert closed.peak_multiple == pytest.approx(4.0)
        assert [s.reason for s in closed.exit_history] == [ExitReason.PROFIT_TARGET_2X, ExitReason.TRAILING_STOP]

        market.move(address, price_usd="0.02")
        assert await service.check_exits(NOW + timedelta(minutes=120)) == []
        assert service.tracker.get_position(position.id).current_multiple == pytest.approx(2.8)

        text = explain_position(service.tracker.get_position(position.id), NOW + timedelta(minutes=120))
        assert "**Status**: EXITED" in text

    @pytest.mark.asyncio
    async def test_rug_during_tracking(self, service, market):
        address = evm_address(2)
        position = await service.track(address, 'base', NOW)

        market.move(address, liquidity=1_000)
        signals = await service.check_exits(NOW + timedelta(minutes=5))

        assert signals[0][1].signal == ExitAction.EXIT
        assert service.tracker.get_position(position.id).status == PositionStatus.RUGGED
        status = service.get_status()
        assert status['tracked_positions'] == 1
        assert status['active_positions'] == 0

    @pytest.mark.asyncio
    async def test_detections_follow_later_scans(self, service, market):
        await service.radar(now=NOW)
        market.move(evm_address(1), price_usd="0.003")
        await service.radar(now=NOW + timedelta(hours=1))

        top = service.get_top_performers(now=NOW + timedelta(hours=1))
        stats = service.get_detection_stats(now=NOW + timedelta(hours=1))

        assert top[0]["symbol"] == "DEEP"
        assert top[0]["gain_since_detection"] == 200.0
        assert stats["green_count"] >= 1
