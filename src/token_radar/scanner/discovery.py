"""Discovery orchestration: fan out, deduplicate, evaluate, rank."""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from ..core.enums import Chain, ScanProfile
from ..core.errors import UpstreamUnavailable
from ..core.models import Candidate, DiscoveryResult, SocialSignals, WalletIntelligence
from ..data.connector import DexScreenerTokenLookup, MarketDataSource
from ..data.normalizer import dedupe_by_volume, validate_address, validate_chain
from ..intel.social import SocialSignalAnalyzer
from ..intel.wallet import WalletClassifier
from ..positions.store import PositionStore
from .evaluator import CandidateEvaluator

logger = logging.getLogger(__name__)


class DiscoveryOrchestrator:
    """
    Fans out to market-data sources, deduplicates by chain+address (keeping
    the highest-volume record), evaluates every unique candidate and returns
    eligible results sorted by composite score.

    Enrichment (social, wallet) is applied to a shortlist of twice the
    requested limit, after which that shortlist is evaluated again.
    """

    def __init__(
        self,
        evaluator: CandidateEvaluator,
        sources: Sequence[MarketDataSource],
        gem_sources: Optional[Sequence[MarketDataSource]] = None,
        lookup: Optional[DexScreenerTokenLookup] = None,
        social: Optional[SocialSignalAnalyzer] = None,
        wallet: Optional[WalletClassifier] = None,
        store: Optional[PositionStore] = None,
    ):
        self.evaluator = evaluator
        self.sources = list(sources)
        self.gem_sources = list(gem_sources) if gem_sources is not None else list(sources)
        self.lookup = lookup
        self.social = social
        self.wallet = wallet
        self.store = store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def scan(
        self,
        chains: Sequence[Chain],
        limit: int,
        now: datetime,
        profile: ScanProfile = ScanProfile.DISCOVERY,
        include_social: bool = False,
        include_wallet: bool = False,
    ) -> List[DiscoveryResult]:
        if limit < 1:
            return []
        chains = [validate_chain(c) for c in chains]
        sources = self.gem_sources if profile == ScanProfile.GEM else self.sources

        candidates = await self._collect(sources, chains, now)
        results = [r for r in (self._evaluate(c, profile, now) for c in candidates) if r is not None]

        if include_social or include_wallet:
            shortlist = self._rank([r for r in results if not r.candidate.hard_flags])[: limit * 2]
            enriched = await asyncio.gather(
                *(self._enrich(r, profile, now, include_social, include_wallet) for r in shortlist)
            )
            results = list(enriched)

        ranked = self._rank([r for r in results if r.eligible])[:limit]
        logger.info(
            f"{profile.value} scan over {', '.join(c.value for c in chains)}: "
            f"{len(candidates)} unique candidates, {len(ranked)} returned"
        )
        return ranked

    async def scan_gems(self, chains: Sequence[Chain], limit: int, now: datetime) -> List[DiscoveryResult]:
        include_social = self.social is not None and self.social.is_available()
        return await self.scan(chains, limit, now, ScanProfile.GEM, include_social=include_social)

    async def analyze(self, address: str, chain: Optional[Chain], now: datetime,
                      include_social: bool = True) -> Optional[DiscoveryResult]:
        """Evaluate one token by address. Raises UpstreamUnavailable when the lookup fails."""
        chain = validate_chain(chain) if chain is not None else None
        address = validate_address(address, chain)
        if self.lookup is None:
            return None

        record = await self.lookup.lookup(address, chain)
        if record is None:
            logger.info(f"No pair found for {address}")
            return None

        candidate = self.evaluator.normalizer.normalize(record, now)
        if candidate is None:
            return None
        result = self._evaluate(candidate, ScanProfile.DISCOVERY, now)
        if result is not None and include_social and self.social is not None and self.social.is_available():
            result = await self._enrich(result, ScanProfile.DISCOVERY, now, True, False)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _collect(self, sources: Sequence[MarketDataSource], chains: Sequence[Chain],
                       now: datetime) -> List[Candidate]:
        tasks = [source.fetch(chain, {"now": now}) for source in sources for chain in chains]
        batches = await asyncio.gather(*tasks, return_exceptions=True)

        records = []
        for batch in batches:
            if isinstance(batch, BaseException):
                logger.warning(f"Source failed during scan: {batch}")
                continue
            records.extend(batch)

        candidates = self.evaluator.normalizer.normalize_many(records, now)
        allowed = set(chains)
        return dedupe_by_volume(c for c in candidates if c.chain in allowed)

    def _prior_liquidity(self, candidate: Candidate) -> Optional[float]:
        if self.store is None:
            return None
        return self.store.latest_liquidity(candidate.key)

    def _evaluate(self, raw, profile: ScanProfile, now: datetime,
                  social: Optional[SocialSignals] = None,
                  wallet: Optional[WalletIntelligence] = None) -> Optional[DiscoveryResult]:
        prior = self._prior_liquidity(raw) if isinstance(raw, Candidate) else None
        return self.evaluator.evaluate(raw, profile, now, prior, social, wallet)

    async def _enrich(self, result: DiscoveryResult, profile: ScanProfile, now: datetime,
                      include_social: bool, include_wallet: bool) -> DiscoveryResult:
        candidate = result.candidate
        social = candidate.social
        wallet = candidate.wallet_intel

        if include_social and self.social is not None and self.social.is_available():
            social = await self.social.analyze(candidate.address, candidate.symbol, now)

        if include_wallet and self.wallet is not None:
            wallet = await self.wallet_intel(candidate, now) or wallet

        return self._evaluate(candidate, profile, now, social, wallet) or result

    async def wallet_intel(self, candidate: Candidate, now: datetime) -> Optional[WalletIntelligence]:
        """Buyer-population intelligence for a candidate, or None when unavailable."""
        if self.wallet is None or not self.wallet.source.supports(candidate.chain):
            return None
        try:
            buyers = await self.wallet.source.recent_buyers(
                candidate.address, candidate.chain, self.wallet.policy.max_wallets_per_analysis
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Buyer lookup failed for {candidate.symbol}: {e}")
            return None
        if not buyers:
            return None
        return await self.wallet.analyze_buyers(candidate.chain, buyers, now)

    @staticmethod
    def _rank(results: List[DiscoveryResult]) -> List[DiscoveryResult]:
        # Stable sort: ties keep first-seen order
        return sorted(results, key=lambda r: r.candidate.scores.composite, reverse=True)
