"""Social signal analysis over recent public X posts."""

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.enums import Sentiment
from ..core.errors import UpstreamUnavailable
from ..core.models import SocialSignals
from ..core.policy import Policy
from ..core.throttle import SKIP, RequestPacer, TimedCache
from ..data.normalizer import _to_datetime

logger = logging.getLogger(__name__)

X_SEARCH_URL = "https://api.twitter.com/2/tweets/search/recent"


def has_social_validation(social: Optional[SocialSignals], policy: Optional[Policy] = None) -> bool:
    """Enough mentions, trending, not bearish and not dominated by repeat posters."""
    if social is None:
        return False
    spam_threshold = (policy or Policy()).social_spam_threshold
    return (
        social.mention_count >= 5
        and social.trending_score >= 30
        and social.sentiment != Sentiment.BEARISH
        and social.repeat_posters_ratio < spam_threshold
    )


def format_social_signal(social: Optional[SocialSignals]) -> Optional[str]:
    if social is None or social.mention_count == 0:
        return None
    parts: List[str] = []
    if social.spike_detected:
        parts.append(f"Mention spike: {social.mention_count} mentions, {social.mention_velocity:.0f}/hr")
    elif social.mention_count >= 10:
        parts.append(f"Trending: {social.mention_count} mentions")
    elif social.mention_count >= 5:
        parts.append(f"Active: {social.mention_count} mentions")
    if social.sentiment == Sentiment.BULLISH:
        parts.append("sentiment: bullish")
    return " | ".join(parts) if parts else None


class SocialSource:
    """X recent-search client. Unavailable when no bearer token is configured."""

    def __init__(self, bearer_token: str = "", timeout: float = 30,
                 session: Optional[aiohttp.ClientSession] = None):
        self.bearer_token = bearer_token
        self.timeout = timeout
        self._session = session

    @property
    def is_available(self) -> bool:
        return bool(self.bearer_token)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def search(self, address: str, symbol: str) -> List[Dict[str, Any]]:
        """Recent non-retweet posts mentioning the address or cashtag."""
        params = {
            "query": f"{address} OR ${symbol} -is:retweet",
            "max_results": "100",
            "tweet.fields": "created_at,public_metrics,author_id",
        }
        headers = {"Authorization": f"Bearer {self.bearer_token}"}
        session = await self._get_session()
        try:
            async with session.get(X_SEARCH_URL, params=params, headers=headers) as response:
                if response.status == 429:
                    raise UpstreamUnavailable("x", "rate limited")
                if response.status != 200:
                    raise UpstreamUnavailable("x", f"HTTP {response.status}")
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable("x", f"{type(e).__name__}: {e}") from e
        posts = (data or {}).get("data") or []
        if not isinstance(posts, list):
            raise UpstreamUnavailable("x", "malformed search response")
        return posts


class SocialSignalAnalyzer:
    """
    Turns recent posts into mention, velocity, spike and spam statistics.

    Results are cached per address and symbol. Requests arriving inside the
    pacing interval are skipped: the cached signal (or the empty sentinel)
    is returned instead.
    """

    def __init__(
        self,
        source: Optional[SocialSource] = None,
        policy: Optional[Policy] = None,
        cache: Optional[TimedCache] = None,
        pacer: Optional[RequestPacer] = None,
    ):
        self.source = source or SocialSource()
        self.policy = policy or Policy()
        self.cache = cache if cache is not None else TimedCache(ttl=self.policy.social_cache_seconds)
        self.pacer = pacer or RequestPacer(self.policy.social_request_interval, mode=SKIP)

    def is_available(self) -> bool:
        return self.source.is_available

    async def analyze(self, address: str, symbol: str, now: datetime) -> SocialSignals:
        cache_key = f"{address}:{symbol}"
        cached = self.cache.get(cache_key, max_age=self.policy.social_cache_seconds)
        if cached is not None:
            return cached

        if not self.is_available():
            return SocialSignals.empty(now)

        if not await self.pacer.acquire("x"):
            return SocialSignals.empty(now)

        try:
            posts = await self.source.search(address, symbol)
        except UpstreamUnavailable as e:
            logger.warning(f"Social signals unavailable for {symbol}: {e}")
            return SocialSignals.empty(now)

        signal = self.build_signal(posts, now)
        self.cache.set(cache_key, signal)
        logger.debug(f"Social {symbol}: {signal.mention_count} mentions, velocity {signal.mention_velocity:.0f}")
        return signal

    def build_signal(self, posts: List[Dict[str, Any]], now: datetime) -> SocialSignals:
        """Pure aggregation of search results at *now*."""
        mention_count = len(posts)
        hour_ago = now - timedelta(hours=1)
        velocity = 0
        engagement = 0
        for post in posts:
            created = _to_datetime(post.get("created_at"))
            if created is not None and created >= hour_ago:
                velocity += 1
            metrics = post.get("public_metrics") or {}
            engagement += int(metrics.get("like_count") or 0) + int(metrics.get("retweet_count") or 0)

        avg_engagement = engagement / mention_count if mention_count else 0.0

        authors = Counter(post.get("author_id") for post in posts if post.get("author_id"))
        attributed = sum(authors.values())
        repeat_posts = sum(n for n in authors.values() if n > 1)
        repeat_ratio = repeat_posts / attributed if attributed else 0.0

        if mention_count >= 5:
            sentiment = Sentiment.BULLISH if avg_engagement > 10 else Sentiment.NEUTRAL
        else:
            sentiment = Sentiment.UNKNOWN

        trending = (
            min(30.0, mention_count * 3)
            + min(40.0, velocity * 4)
            + min(30.0, avg_engagement * 3)
        )

        return SocialSignals(
            mention_count=mention_count,
            mention_velocity=float(velocity),
            spike_detected=velocity > self.policy.social_spike_threshold,
            spam_score=round(repeat_ratio * 100, 2),
            sentiment=sentiment,
            trending_score=min(100.0, trending),
            unique_posters=len(authors),
            repeat_posters_ratio=repeat_ratio,
            last_checked=now,
        )
