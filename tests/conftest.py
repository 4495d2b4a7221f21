"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from token_radar.core.enums import Chain
from token_radar.core.models import Candidate
from token_radar.core.policy import Policy
from token_radar.data.connector import MarketDataSource

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
EVM_ADDRESS = "0x" + "ab" * 20
SOLANA_ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


def evm_address(n: int) -> str:
    """Deterministic distinct EVM address."""
    return "0x" + f"{n:040x}"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def policy():
    return Policy()


@pytest.fixture
def make_candidate(now):
    """Factory for a healthy, eligible base-chain candidate with overrides."""

    def _make(**overrides) -> Candidate:
        fields: Dict[str, Any] = dict(
            chain=Chain.BASE,
            address=EVM_ADDRESS,
            symbol="TEST",
            name="Test Token",
            price_usd=0.001,
            price_change_1h=12.0,
            price_change_6h=20.0,
            price_change_24h=40.0,
            volume_24h=150_000.0,
            liquidity=40_000.0,
            fdv=200_000.0,
            buys_24h=420,
            sells_24h=180,
            pair_created_at=now - timedelta(hours=3),
            discovered_at=now,
            last_updated=now,
        )
        fields.update(overrides)
        fields.setdefault("unique_buyers_24h", fields["buys_24h"])
        fields.setdefault("unique_sellers_24h", fields["sells_24h"])
        return Candidate(**fields)

    return _make


@pytest.fixture
def make_record(now):
    """Factory for a raw source record (candidate field names, loose types)."""

    def _make(**overrides) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "address": EVM_ADDRESS,
            "symbol": "TEST",
            "name": "Test Token",
            "chain": "base",
            "price_usd": "0.001",
            "price_change_1h": 12,
            "price_change_6h": 20,
            "price_change_24h": 40,
            "volume_24h": 150_000,
            "liquidity": 40_000,
            "fdv": 200_000,
            "buys_24h": 420,
            "sells_24h": 180,
            "pair_created_at": int((now - timedelta(hours=3)).timestamp() * 1000),
        }
        record.update(overrides)
        return record

    return _make


class StaticSource(MarketDataSource):
    """Market data source returning fixed records per chain."""

    def __init__(self, records: List[Dict[str, Any]], name: str = "static", fail: bool = False):
        self.records = records
        self.name = name
        self.fail = fail
        self.calls: List[Chain] = []
        self.closed = False

    async def fetch(self, chain: Chain, criteria: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        self.calls.append(chain)
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return [r for r in self.records if str(r.get("chain")) == chain.value]

    async def close(self):
        self.closed = True


class StaticLookup:
    """Token lookup returning whatever ``records`` currently maps the address to."""

    def __init__(self, records: Optional[Dict[str, Optional[Dict[str, Any]]]] = None):
        self.records = records or {}
        self.closed = False

    async def lookup(self, address: str, chain: Optional[Chain] = None) -> Optional[Dict[str, Any]]:
        return self.records.get(address)

    async def close(self):
        self.closed = True
