"""Market data module."""

from .normalizer import (
    CandidateNormalizer, normalize_chain, validate_chain, validate_address, dedupe_by_volume,
)
from .connector import (
    MarketDataSource,
    HttpJsonSource,
    DexScreenerTrendingSource,
    DexScreenerGainersSource,
    GeckoTerminalNewPoolsSource,
    GeckoTerminalFreshPoolsSource,
    DexScreenerTokenLookup,
    parse_dexscreener_pair,
    parse_gecko_pool,
)

__all__ = [
    "CandidateNormalizer",
    "normalize_chain",
    "validate_chain",
    "validate_address",
    "dedupe_by_volume",
    "MarketDataSource",
    "HttpJsonSource",
    "DexScreenerTrendingSource",
    "DexScreenerGainersSource",
    "GeckoTerminalNewPoolsSource",
    "GeckoTerminalFreshPoolsSource",
    "DexScreenerTokenLookup",
    "parse_dexscreener_pair",
    "parse_gecko_pool",
]
