"""Unit tests for social signal analysis."""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from token_radar.core.enums import Sentiment
from token_radar.core.errors import UpstreamUnavailable
from token_radar.core.models import SocialSignals
from token_radar.core.policy import Policy
from token_radar.core.throttle import RequestPacer, TimedCache
from token_radar.intel.social import (
    SocialSignalAnalyzer, SocialSource, format_social_signal, has_social_validation,
)

from conftest import EVM_ADDRESS


def _posts(now, count, minutes_ago=10, likes=0, authors=None):
    posts = []
    for i in range(count):
        posts.append({
            "id": str(i),
            "created_at": (now - timedelta(minutes=minutes_ago)).isoformat(),
            "author_id": authors[i] if authors else f"user{i}",
            "public_metrics": {"like_count": likes, "retweet_count": 0},
        })
    return posts


class TestBuildSignal:
    """Tests for SocialSignalAnalyzer.build_signal."""

    def setup_method(self):
        self.analyzer = SocialSignalAnalyzer(source=SocialSource())

    def test_empty_posts(self, now):
        signal = self.analyzer.build_signal([], now)

        assert signal.mention_count == 0
        assert signal.sentiment == Sentiment.UNKNOWN
        assert signal.trending_score == 0
        assert signal.last_checked == now

    def test_velocity_counts_last_hour_only(self, now):
        posts = _posts(now, 4, minutes_ago=30) + _posts(now, 3, minutes_ago=180)
        signal = self.analyzer.build_signal(posts, now)

        assert signal.mention_count == 7
        assert signal.mention_velocity == 4
        assert not signal.spike_detected

    def test_spike_above_threshold(self, now):
        signal = self.analyzer.build_signal(_posts(now, 11), now)
        assert signal.spike_detected

    def test_engagement_sentiment(self, now):
        quiet = self.analyzer.build_signal(_posts(now, 6, likes=2), now)
        loud = self.analyzer.build_signal(_posts(now, 6, likes=20), now)

        assert quiet.sentiment == Sentiment.NEUTRAL
        assert loud.sentiment == Sentiment.BULLISH

    def test_repeat_posters(self, now):
        authors = ["a", "a", "a", "b", "c"]
        signal = self.analyzer.build_signal(_posts(now, 5, authors=authors), now)

        assert signal.unique_posters == 3
        assert signal.repeat_posters_ratio == pytest.approx(0.6)
        assert signal.spam_score == 60

    def test_trending_score_capped(self, now):
        signal = self.analyzer.build_signal(_posts(now, 40, likes=50), now)
        assert signal.trending_score == 100


class TestSocialHelpers:

    def test_validation(self):
        social = SocialSignals(mention_count=6, trending_score=40, sentiment=Sentiment.NEUTRAL,
                               repeat_posters_ratio=0.1)
        assert has_social_validation(social)
        assert not has_social_validation(None)
        assert not has_social_validation(social, Policy(social_spam_threshold=0.05))

    def test_format_signal(self):
        assert format_social_signal(None) is None
        assert format_social_signal(SocialSignals()) is None
        spike = SocialSignals(mention_count=15, mention_velocity=12, spike_detected=True,
                              sentiment=Sentiment.BULLISH)
        assert format_social_signal(spike) == "Mention spike: 15 mentions, 12/hr | sentiment: bullish"
        assert format_social_signal(SocialSignals(mention_count=6)) == "Active: 6 mentions"


class TestSocialSignalAnalyzer:
    """Tests for availability, pacing and caching."""

    def setup_method(self):
        self.source = MagicMock(is_available=True)
        self.source.search = AsyncMock(return_value=[])

    def _analyzer(self, interval=0.0):
        return SocialSignalAnalyzer(source=self.source, pacer=RequestPacer(interval, mode="skip"))

    @pytest.mark.asyncio
    async def test_unavailable_without_token(self, now):
        analyzer = SocialSignalAnalyzer(source=SocialSource(bearer_token=""))

        signal = await analyzer.analyze(EVM_ADDRESS, "TEST", now)

        assert not analyzer.is_available()
        assert signal.is_empty

    @pytest.mark.asyncio
    async def test_result_cached(self, now):
        self.source.search.return_value = _posts(now, 6)
        analyzer = self._analyzer()

        first = await analyzer.analyze(EVM_ADDRESS, "TEST", now)
        second = await analyzer.analyze(EVM_ADDRESS, "TEST", now)

        assert first.mention_count == 6
        assert second is first
        assert self.source.search.await_count == 1

    @pytest.mark.asyncio
    async def test_shared_cache_used_even_when_empty(self, now):
        self.source.search.return_value = _posts(now, 3)
        cache = TimedCache(ttl=300)
        analyzer = SocialSignalAnalyzer(source=self.source, cache=cache, pacer=RequestPacer(0.0, mode="skip"))

        await analyzer.analyze(EVM_ADDRESS, "TEST", now)

        assert analyzer.cache is cache
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_paced_request_skipped(self, now):
        analyzer = self._analyzer(interval=60)

        await analyzer.analyze(EVM_ADDRESS, "AAA", now)
        skipped = await analyzer.analyze(EVM_ADDRESS, "BBB", now)

        assert self.source.search.await_count == 1
        assert skipped.is_empty

    @pytest.mark.asyncio
    async def test_upstream_failure_is_empty(self, now):
        self.source.search.side_effect = UpstreamUnavailable("x", "rate limited")

        analyzer = self._analyzer()
        signal = await analyzer.analyze(EVM_ADDRESS, "TEST", now)

        assert signal.is_empty
        assert len(analyzer.cache) == 0
