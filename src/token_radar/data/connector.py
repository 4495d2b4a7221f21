"""Market data source interface and aggregator-backed implementations."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.enums import Chain
from ..core.errors import UpstreamUnavailable
from ..core.throttle import RequestPacer, TimedCache
from .normalizer import _to_datetime, _to_float, normalize_chain

logger = logging.getLogger(__name__)

DEXSCREENER_API = "https://api.dexscreener.com"
GECKOTERMINAL_API = "https://api.geckoterminal.com/api/v2"

GECKO_NETWORKS = {
    Chain.BASE: "base",
    Chain.ETHEREUM: "eth",
    Chain.BSC: "bsc",
    Chain.SOLANA: "solana",
}

_HEADERS = {"Accept": "application/json", "User-Agent": "token-radar/0.1"}


def parse_dexscreener_pair(pair: Dict[str, Any]) -> Dict[str, Any]:
    """Map a DexScreener pair to candidate field names."""
    base = pair.get("baseToken") or {}
    change = pair.get("priceChange") or {}
    txns = (pair.get("txns") or {}).get("h24") or {}
    return {
        "address": base.get("address"),
        "symbol": base.get("symbol"),
        "name": base.get("name"),
        "chain": pair.get("chainId"),
        "price_usd": pair.get("priceUsd"),
        "price_change_1h": change.get("h1"),
        "price_change_6h": change.get("h6"),
        "price_change_24h": change.get("h24"),
        "volume_24h": (pair.get("volume") or {}).get("h24"),
        "liquidity": (pair.get("liquidity") or {}).get("usd"),
        "fdv": pair.get("fdv"),
        "buys_24h": txns.get("buys"),
        "sells_24h": txns.get("sells"),
        "pair_address": pair.get("pairAddress"),
        "pair_created_at": pair.get("pairCreatedAt"),
    }


def parse_gecko_pool(pool: Dict[str, Any], chain: Chain) -> Dict[str, Any]:
    """Map a GeckoTerminal pool to candidate field names."""
    attrs = pool.get("attributes") or {}
    change = attrs.get("price_change_percentage") or {}
    txns = (attrs.get("transactions") or {}).get("h24") or {}

    # Prefer the base token id ("<network>_<address>") over the pool address
    base_id = (((pool.get("relationships") or {}).get("base_token") or {}).get("data") or {}).get("id") or ""
    address = base_id.split("_", 1)[1] if "_" in base_id else attrs.get("address")

    pool_name = attrs.get("name") or ""
    reserve = _to_float(attrs.get("reserve_in_usd"))
    fdv = _to_float(attrs.get("fdv_usd"))

    return {
        "address": address,
        "symbol": pool_name.split("/")[0].strip() or None,
        "name": pool_name or None,
        "chain": chain,
        "price_usd": attrs.get("base_token_price_usd"),
        "price_change_1h": change.get("h1"),
        "price_change_6h": change.get("h6"),
        "price_change_24h": change.get("h24"),
        "volume_24h": (attrs.get("volume_usd") or {}).get("h24"),
        "liquidity": reserve,
        # Valuation is estimated from the reserve when the feed omits it
        "fdv": fdv if fdv > 0 else reserve * 2,
        "buys_24h": txns.get("buys"),
        "sells_24h": txns.get("sells"),
        "unique_buyers_24h": txns.get("buyers"),
        "unique_sellers_24h": txns.get("sellers"),
        "pair_address": attrs.get("address"),
        "pair_created_at": attrs.get("pool_created_at"),
    }


class MarketDataSource(ABC):
    """Abstract market data source.

    ``fetch`` returns raw records keyed by candidate field names. Records may
    be partial; the normalizer fills the gaps.
    """

    name = "source"

    @abstractmethod
    async def fetch(self, chain: Chain, criteria: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Fetch raw records for *chain*."""
        pass

    async def close(self):
        """Release network resources."""
        pass


class HttpJsonSource(MarketDataSource):
    """aiohttp-backed source with response caching and request pacing.

    Upstream failures (timeouts, non-200 answers, undecodable bodies) are
    logged and degrade to an empty result so one source never aborts a scan.
    Reads honour ``default_max_age``; the cache TTL only bounds eviction.
    """

    base_url = ""
    default_max_age: Optional[float] = 30

    def __init__(
        self,
        cache: Optional[TimedCache] = None,
        pacer: Optional[RequestPacer] = None,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
        max_age: Optional[float] = None,
    ):
        self.cache = cache if cache is not None else TimedCache(ttl=3600)
        if max_age is not None:
            self.default_max_age = max_age
        self.pacer = pacer or RequestPacer(min_interval=1.0)
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=_HEADERS,
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, path: str, max_age: Optional[float] = None) -> Any:
        """GET ``base_url + path`` through the cache and pacer."""
        url = f"{self.base_url}{path}"
        cached = self.cache.get(url, max_age if max_age is not None else self.default_max_age)
        if cached is not None:
            return cached

        await self.pacer.acquire(self.base_url)
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(self.name, f"HTTP {response.status} for {path}")
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable(self.name, f"{type(e).__name__}: {e}") from e

        self.cache.set(url, data)
        return data

    async def fetch(self, chain: Chain, criteria: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        try:
            records = await self._fetch(chain, criteria or {})
        except UpstreamUnavailable as e:
            logger.warning(f"{self.name} unavailable for {chain.value}: {e}")
            return []
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"{self.name} returned a malformed response for {chain.value}: {e}")
            return []
        logger.debug(f"{self.name} returned {len(records)} records for {chain.value}")
        return records

    @abstractmethod
    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        pass


class DexScreenerTrendingSource(HttpJsonSource):
    """Boosted tokens, expanded through the token endpoint."""

    name = "dexscreener-trending"
    base_url = DEXSCREENER_API

    def __init__(self, *args, max_tokens: int = 20, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_tokens = max_tokens

    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        boosts = await self._get_json("/token-boosts/top/v1")
        if not isinstance(boosts, list):
            return []

        records: List[Dict[str, Any]] = []
        for boost in boosts[: self.max_tokens]:
            if normalize_chain(boost.get("chainId")) != chain:
                continue
            address = boost.get("tokenAddress")
            if not address:
                continue
            data = await self._get_json(f"/latest/dex/tokens/{address}", max_age=15)
            pairs = (data or {}).get("pairs") or []
            if pairs:
                records.append(parse_dexscreener_pair(pairs[0]))
        return records


class DexScreenerGainersSource(HttpJsonSource):
    """Latest pairs on a chain, filtered to 24h gainers."""

    name = "dexscreener-gainers"
    base_url = DEXSCREENER_API

    def __init__(self, *args, min_change_24h: float = 10.0, max_per_chain: int = 10, **kwargs):
        super().__init__(*args, **kwargs)
        self.min_change_24h = min_change_24h
        self.max_per_chain = max_per_chain

    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self._get_json(f"/latest/dex/pairs/{chain.value}")
        pairs = (data or {}).get("pairs") or []
        gainers = [
            p for p in pairs
            if _to_float((p.get("priceChange") or {}).get("h24")) > self.min_change_24h
        ]
        return [parse_dexscreener_pair(p) for p in gainers[: self.max_per_chain]]


class GeckoTerminalNewPoolsSource(HttpJsonSource):
    """Newly created pools per network."""

    name = "geckoterminal-new-pools"
    base_url = GECKOTERMINAL_API

    async def _pools(self, chain: Chain) -> List[Dict[str, Any]]:
        data = await self._get_json(f"/networks/{GECKO_NETWORKS[chain]}/new_pools?page=1")
        return [parse_gecko_pool(pool, chain) for pool in (data or {}).get("data") or []]

    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._pools(chain)


class GeckoTerminalFreshPoolsSource(GeckoTerminalNewPoolsSource):
    """New pools restricted to an age ceiling (default 6 hours), with a short cache."""

    name = "geckoterminal-fresh-pools"
    default_max_age = 15

    def __init__(self, *args, max_age_hours: float = 6.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_age_hours = max_age_hours

    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        now = criteria.get("now") or datetime.now(timezone.utc)
        max_age_hours = criteria.get("max_age_hours", self.max_age_hours)
        fresh: List[Dict[str, Any]] = []
        for record in await self._pools(chain):
            created = _to_datetime(record.get("pair_created_at"))
            if created is None:
                continue
            if (now - created).total_seconds() / 3600 < max_age_hours:
                fresh.append(record)
        return fresh


class DexScreenerTokenLookup(HttpJsonSource):
    """Single-token lookup used by analyze/track and exit checks.

    Unlike the scan sources, :meth:`lookup` lets ``UpstreamUnavailable``
    propagate: callers must tell "no pair exists" (None) apart from "could
    not reach the aggregator".
    """

    name = "dexscreener-lookup"
    base_url = DEXSCREENER_API
    default_max_age = 10

    async def lookup(self, address: str, chain: Optional[Chain] = None) -> Optional[Dict[str, Any]]:
        data = await self._get_json(f"/latest/dex/tokens/{address}")
        pairs = (data or {}).get("pairs") or []
        if chain is not None:
            pairs = [p for p in pairs if normalize_chain(p.get("chainId")) == chain]
        if not pairs:
            return None
        best = max(pairs, key=lambda p: _to_float((p.get("liquidity") or {}).get("usd")))
        return parse_dexscreener_pair(best)

    async def _fetch(self, chain: Chain, criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
        record = await self.lookup(criteria["address"], chain)
        return [record] if record else []
