"""Token radar service: wires sources, evaluation, tracking and reporting."""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .core.enums import Chain, ExitAction, ScanProfile, SUPPORTED_CHAINS
from .core.models import DiscoveryResult, ExitSignal, TrackedPosition
from .core.policy import Policy
from .core.state_lock import StateManager
from .core.throttle import RequestPacer, SKIP, TimedCache
from .data.connector import (
    DexScreenerGainersSource, DexScreenerTokenLookup, DexScreenerTrendingSource,
    GeckoTerminalFreshPoolsSource, GeckoTerminalNewPoolsSource, HttpJsonSource, MarketDataSource,
)
from .data.normalizer import CandidateNormalizer, validate_chain
from .intel.social import SocialSignalAnalyzer, SocialSource
from .intel.wallet import DEFAULT_SOLANA_RPC, WalletClassifier, WalletSource
from .monitoring.performance import DetectionTracker
from .positions.store import PositionStore
from .positions.tracker import PositionTracker
from .reporting.explainer import brief_summary
from .risk.flags import FlagDetector
from .scanner.conditions import ConditionEvaluator
from .scanner.discovery import DiscoveryOrchestrator
from .scanner.evaluator import CandidateEvaluator
from .scanner.scoring import ScoringEngine

logger = logging.getLogger(__name__)

MARKET_CACHE_CEILING = 3600
WALLET_CACHE_CEILING = 86_400
SOCIAL_CACHE_CEILING = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRadarService:
    """
    Public surface of the radar: scans, single-token analysis, position
    tracking with exit checks, hot policy updates and a continuous loop.

    Stateful parts (position store, detection tracker, caches, pacers and
    HTTP sessions) live for the lifetime of the service. Everything derived
    from the policy is rebuilt on :meth:`update_policy`.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        sources: Optional[Sequence[MarketDataSource]] = None,
        gem_sources: Optional[Sequence[MarketDataSource]] = None,
        lookup: Optional[DexScreenerTokenLookup] = None,
        social_source: Optional[SocialSource] = None,
        wallet_source: Optional[WalletSource] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        defaults = self._default_config()
        if config:
            for key, val in config.items():
                if isinstance(val, dict) and key in defaults and isinstance(defaults[key], dict):
                    defaults[key].update(val)
                else:
                    defaults[key] = val
        self.config = defaults
        self._clock = clock

        self.policy = Policy().apply(self.config['policy']) if self.config['policy'] else Policy()

        # Long-lived state
        self.state_manager = StateManager()
        self.store = PositionStore(self.state_manager)
        self.detections = DetectionTracker()
        # Cache TTLs are eviction ceilings; each read applies the current policy max-age
        self.market_cache = TimedCache(ttl=MARKET_CACHE_CEILING, maxsize=2048)
        self.market_pacer = RequestPacer(self.policy.market_request_interval)
        self.wallet_cache = TimedCache(ttl=WALLET_CACHE_CEILING, maxsize=10_000)
        self.social_cache = TimedCache(ttl=SOCIAL_CACHE_CEILING)
        self.social_pacer = RequestPacer(self.policy.social_request_interval, mode=SKIP)

        self._init_sources(sources, gem_sources, lookup, social_source, wallet_source)
        self._build_components()

        self._running = False
        self._radar_task: Optional[asyncio.Task] = None
        self._last_scan_time: Optional[datetime] = None
        self._last_scan_count = 0

        logger.info("Token radar service initialized")

    @staticmethod
    def _default_config() -> Dict[str, Any]:
        """Default configuration."""
        etherscan_key = os.getenv('ETHERSCAN_API_KEY', '')
        return {
            'policy': {},
            'sources': {
                'timeout': 30,
                'trending_max_tokens': 20,
                'gainers_min_change_24h': 10.0,
                'gainers_max_per_chain': 10,
                'fresh_pool_max_age_hours': 6.0,
            },
            'wallet': {
                'explorer_keys': {
                    'ethereum': etherscan_key,
                    'base': etherscan_key,
                    'bsc': os.getenv('BSCSCAN_API_KEY', ''),
                },
                'solana_rpc_url': os.getenv('SOLANA_RPC_URL', DEFAULT_SOLANA_RPC),
            },
            'social': {
                'bearer_token': os.getenv('X_BEARER_TOKEN', ''),
            },
            'radar': {
                'chains': ['solana', 'base', 'ethereum', 'bsc'],
                'limit': 10,
                'include_social': False,
                'include_wallet': False,
                'gem_chains': ['solana', 'base'],
                'gem_limit': 15,
            },
        }

    def _init_sources(self, sources, gem_sources, lookup, social_source, wallet_source):
        source_cfg = self.config['sources']
        timeout = source_cfg['timeout']
        shared = dict(cache=self.market_cache, pacer=self.market_pacer, timeout=timeout)

        if sources is None:
            sources = [
                DexScreenerTrendingSource(max_tokens=source_cfg['trending_max_tokens'], **shared),
                DexScreenerGainersSource(
                    min_change_24h=source_cfg['gainers_min_change_24h'],
                    max_per_chain=source_cfg['gainers_max_per_chain'],
                    **shared,
                ),
                GeckoTerminalNewPoolsSource(**shared),
            ]
        if gem_sources is None:
            trending = [s for s in sources if isinstance(s, DexScreenerTrendingSource)]
            gem_sources = [
                GeckoTerminalFreshPoolsSource(max_age_hours=source_cfg['fresh_pool_max_age_hours'], **shared),
                *trending,
            ]

        self.sources: List[MarketDataSource] = list(sources)
        self.gem_sources: List[MarketDataSource] = list(gem_sources)
        self.lookup = lookup or DexScreenerTokenLookup(**shared)

        wallet_cfg = self.config['wallet']
        self.social_source = social_source or SocialSource(
            bearer_token=self.config['social'].get('bearer_token', ''), timeout=timeout
        )
        self.wallet_source = wallet_source or WalletSource(
            explorer_keys={validate_chain(k): v for k, v in wallet_cfg.get('explorer_keys', {}).items()},
            solana_rpc_url=wallet_cfg.get('solana_rpc_url', DEFAULT_SOLANA_RPC),
            pacer=RequestPacer(self.policy.wallet_request_interval),
            timeout=timeout,
        )

    def _build_components(self):
        """(Re)build every collaborator that reads the policy."""
        policy = self.policy
        self.market_pacer.min_interval = policy.market_request_interval
        self.social_pacer.min_interval = policy.social_request_interval
        self.wallet_source.pacer.min_interval = policy.wallet_request_interval
        self._apply_cache_ages(policy)

        self.evaluator = CandidateEvaluator(
            policy,
            CandidateNormalizer(),
            ConditionEvaluator(policy),
            ScoringEngine(policy),
            FlagDetector(policy),
        )
        self.wallet = WalletClassifier(self.wallet_source, policy, self.wallet_cache)
        self.social = SocialSignalAnalyzer(self.social_source, policy, self.social_cache, self.social_pacer)
        self.orchestrator = DiscoveryOrchestrator(
            self.evaluator,
            self.sources,
            gem_sources=self.gem_sources,
            lookup=self.lookup,
            social=self.social,
            wallet=self.wallet,
            store=self.store,
        )
        self.tracker = PositionTracker(self.store, policy)

    def _apply_cache_ages(self, policy: Policy):
        for source in [*self.sources, *self.gem_sources]:
            if isinstance(source, GeckoTerminalFreshPoolsSource):
                source.default_max_age = policy.fresh_pool_cache_seconds
            elif isinstance(source, HttpJsonSource) and not isinstance(source, DexScreenerTokenLookup):
                source.default_max_age = policy.cache_time_seconds

    def _chains(self, chains: Optional[Sequence[Any]], default_key: str) -> List[Chain]:
        return [validate_chain(c) for c in (chains or self.config['radar'][default_key])]

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def radar(
        self,
        chains: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
        include_social: Optional[bool] = None,
        include_wallet: Optional[bool] = None,
    ) -> List[DiscoveryResult]:
        """Ranked, eligible discovery candidates across *chains*."""
        radar_cfg = self.config['radar']
        now = now or self._clock()
        results = await self.orchestrator.scan(
            self._chains(chains, 'chains'),
            radar_cfg['limit'] if limit is None else limit,
            now,
            ScanProfile.DISCOVERY,
            include_social=radar_cfg['include_social'] if include_social is None else include_social,
            include_wallet=radar_cfg['include_wallet'] if include_wallet is None else include_wallet,
        )
        self._record_scan(results, now)
        return results

    async def scan_gems(
        self,
        chains: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[DiscoveryResult]:
        """Stricter gem profile, fed by the fresh-pool source first."""
        now = now or self._clock()
        limit = self.config['radar']['gem_limit'] if limit is None else limit
        results = await self.orchestrator.scan_gems(self._chains(chains, 'gem_chains'), limit, now)
        self._record_scan(results, now)
        return results

    async def analyze(self, address: str, chain: Optional[Any] = None,
                      now: Optional[datetime] = None) -> Optional[DiscoveryResult]:
        """Full evaluation of one token; None when no pair exists."""
        chain = validate_chain(chain) if chain is not None else None
        return await self.orchestrator.analyze(address, chain, now or self._clock())

    def _record_scan(self, results: List[DiscoveryResult], now: datetime):
        for result in results:
            self.detections.record(result.candidate, now)
        self._last_scan_time = now
        self._last_scan_count = len(results)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    async def track(self, address: str, chain: Optional[Any] = None,
                    now: Optional[datetime] = None) -> Optional[TrackedPosition]:
        """Start tracking a token at its current snapshot; None when no pair exists."""
        now = now or self._clock()
        result = await self.analyze(address, chain, now)
        if result is None:
            return None
        if result.candidate.hard_flags:
            logger.warning(f"Tracking {result.candidate.symbol} despite {len(result.candidate.hard_flags)} hard flag(s)")
        return await self.tracker.track(result.candidate, now)

    async def get_positions(self, now: Optional[datetime] = None) -> List[TrackedPosition]:
        """Refresh active positions, then return every tracked position."""
        await self.check_exits(now)
        return self.tracker.get_positions()

    async def check_exits(self, now: Optional[datetime] = None) -> List[Tuple[TrackedPosition, ExitSignal]]:
        """Run exit triggers for every active position; returns TRIM/EXIT signals only."""
        now = now or self._clock()
        signals: List[Tuple[TrackedPosition, ExitSignal]] = []

        for position in self.tracker.get_active_positions():
            try:
                signal = await self._refresh_position(position, now)
            except Exception as e:
                logger.warning(f"Exit check failed for {position.id}: {e}")
                continue
            if signal is not None and signal.signal != ExitAction.HOLD:
                signals.append((self.tracker.get_position(position.id), signal))

        if signals:
            logger.info(f"Exit check: {len(signals)} signal(s) across {len(self.store)} position(s)")
        return signals

    async def _refresh_position(self, position: TrackedPosition, now: datetime) -> Optional[ExitSignal]:
        tracked = position.candidate
        record = await self.lookup.lookup(tracked.address, tracked.chain)
        if record is None:
            return await self.tracker.mark_missing(position.id, now)

        prior = self.store.latest_liquidity(position.id)
        result = self.evaluator.evaluate(record, ScanProfile.DISCOVERY, now, prior_liquidity=prior)
        if result is None:
            return await self.tracker.mark_missing(position.id, now)

        wallet = None
        if self.config['radar']['include_wallet']:
            wallet = await self.orchestrator.wallet_intel(result.candidate, now)
        return await self.tracker.update(result.candidate, now, wallet)

    async def stop_tracking(self, position_id: str) -> bool:
        return await self.tracker.stop_tracking(position_id)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def get_policy(self) -> Policy:
        return self.policy

    def update_policy(self, updates: Dict[str, Any]) -> Policy:
        """Apply *updates* atomically. Raises PolicyViolation and keeps the old policy on rejection."""
        self.policy = self.policy.apply(updates)
        self._build_components()
        return self.policy

    # ------------------------------------------------------------------
    # Continuous radar
    # ------------------------------------------------------------------

    async def start_continuous_radar(self, interval: Optional[float] = None) -> bool:
        """Start the background scan loop. Returns False when already running."""
        if self._radar_task is not None and not self._radar_task.done():
            logger.info("Continuous radar already running")
            return False
        self._running = True
        self._radar_task = asyncio.create_task(self._radar_loop(interval))
        logger.info("Continuous radar started")
        return True

    async def stop_continuous_radar(self):
        self._running = False
        task, self._radar_task = self._radar_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Continuous radar stopped")

    async def _radar_loop(self, interval: Optional[float]):
        while self._running:
            try:
                results = await self.radar()
                for result in results:
                    logger.info(brief_summary(result.candidate))
                if self.tracker.get_active_positions():
                    for position, signal in await self.check_exits():
                        logger.info(f"{position.candidate.symbol}: {signal.signal.value} - {signal.explanation}")
            except Exception as e:
                logger.error(f"Radar tick failed: {e}")
            await asyncio.sleep(interval if interval is not None else self.policy.scan_interval_seconds)

    # ------------------------------------------------------------------
    # Status and shutdown
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self._running and self._radar_task is not None and not self._radar_task.done(),
            'tracked_positions': len(self.store),
            'active_positions': len(self.tracker.get_active_positions()),
            'social_available': self.social.is_available(),
            'supported_chains': [c.value for c in SUPPORTED_CHAINS],
            'last_scan_time': self._last_scan_time.isoformat() if self._last_scan_time else None,
            'last_scan_count': self._last_scan_count,
            'detected_tokens': len(self.detections),
        }

    def get_detection_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return self.detections.stats(now or self._clock())

    def get_top_performers(self, limit: int = 10, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return self.detections.top_performers(now or self._clock(), limit)

    async def close(self):
        await self.stop_continuous_radar()
        closers = {id(s): s for s in [*self.sources, *self.gem_sources, self.lookup]}
        for source in closers.values():
            await source.close()
        await self.social_source.close()
        await self.wallet_source.close()
        logger.info("Token radar service closed")
