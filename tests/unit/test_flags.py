"""Unit tests for rug and manipulation flag detection."""

import pytest

from token_radar.core.enums import FlagSeverity, FlagType, Sentiment
from token_radar.core.models import SocialSignals, WalletIntelligence
from token_radar.risk.flags import FlagDetector, count_by_severity, has_hard_flag, summarize


class TestFlagDetector:
    """Tests for individual flag rules."""

    def setup_method(self):
        self.detector = FlagDetector()

    def _types(self, flags):
        return {f.type for f in flags}

    def test_healthy_candidate_has_no_flags(self, make_candidate, now):
        assert self.detector.detect(make_candidate(), now) == []

    def test_honeypot_hard(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(buys_24h=300, sells_24h=5), now)

        honeypot = [f for f in flags if f.type == FlagType.HONEYPOT_SUSPECTED]
        assert len(honeypot) == 1
        assert honeypot[0].severity == FlagSeverity.HARD
        assert honeypot[0].evidence == {
            "buys": 300.0,
            "sells": 5.0,
            "sell_ratio": pytest.approx(5 / 305),
        }

    def test_honeypot_soft_band(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(buys_24h=300, sells_24h=30), now)

        honeypot = [f for f in flags if f.type == FlagType.HONEYPOT_SUSPECTED]
        assert honeypot[0].severity == FlagSeverity.SOFT

    def test_honeypot_not_raised_at_healthy_ratio(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(buys_24h=300, sells_24h=60), now)
        assert FlagType.HONEYPOT_SUSPECTED not in self._types(flags)

    def test_honeypot_needs_enough_transactions(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(buys_24h=40, sells_24h=0), now)
        assert FlagType.HONEYPOT_SUSPECTED not in self._types(flags)

    def test_liquidity_removed(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(liquidity=5_000), now, prior_liquidity=50_000)

        removed = [f for f in flags if f.type == FlagType.LIQUIDITY_REMOVED][0]
        assert removed.is_hard
        assert removed.evidence["drop_percent"] == pytest.approx(90.0)
        assert removed.evidence["previous_liquidity"] == 50_000

    def test_liquidity_removed_needs_prior(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(liquidity=5_000), now)
        assert FlagType.LIQUIDITY_REMOVED not in self._types(flags)

    def test_trading_disabled(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(buys_24h=0, sells_24h=0), now)
        assert FlagType.TRADING_DISABLED in self._types(flags)

    def test_extreme_concentration(self, make_candidate, now):
        flags = self.detector.detect(make_candidate(liquidity=10_000, fdv=2_000_000), now)

        flag = [f for f in flags if f.type == FlagType.EXTREME_CONCENTRATION][0]
        assert flag.is_hard
        assert flag.evidence["liquidity_ratio_percent"] == pytest.approx(0.5)

    def test_fee_on_transfer(self, make_candidate, now):
        candidate = make_candidate(volume_24h=3_000_000, liquidity=40_000, price_change_24h=-35)
        flags = self.detector.detect(candidate, now)

        flag = [f for f in flags if f.type == FlagType.FEE_ON_TRANSFER][0]
        assert flag.severity == FlagSeverity.SOFT
        assert set(flag.evidence) == {"turnover", "price_change_24h"}

    def test_wash_trading(self, make_candidate, now):
        candidate = make_candidate(buys_24h=500, sells_24h=500, volume_24h=1_000_000, liquidity=40_000)
        assert FlagType.WASH_TRADING in self._types(self.detector.detect(candidate, now))

    def test_rapid_pump_wording(self, make_candidate, now):
        rapid = self.detector.detect(make_candidate(price_change_1h=250), now)
        extreme = self.detector.detect(make_candidate(price_change_1h=650), now)

        assert [f.message for f in rapid if f.type == FlagType.RAPID_PUMP][0].startswith("Rapid pump")
        assert [f.message for f in extreme if f.type == FlagType.RAPID_PUMP][0].startswith("Extreme pump")

    def test_hype_without_liquidity(self, make_candidate, now):
        social = SocialSignals(mention_count=40, mention_velocity=25, spike_detected=True)
        flags = self.detector.detect(make_candidate(liquidity=6_000, fdv=60_000), now, social=social)
        assert FlagType.HYPE_NO_LIQUIDITY in self._types(flags)

    def test_hype_with_spam_spike(self, make_candidate, now):
        social = SocialSignals(mention_count=40, mention_velocity=25, spike_detected=True,
                               spam_score=70, sentiment=Sentiment.NEUTRAL)
        flags = self.detector.detect(make_candidate(), now, social=social)
        assert FlagType.HYPE_NO_LIQUIDITY in self._types(flags)

    def test_thin_hype_and_spam_spike_both_raised(self, make_candidate, now):
        social = SocialSignals(mention_count=40, mention_velocity=25, spike_detected=True,
                               spam_score=70, sentiment=Sentiment.NEUTRAL)
        flags = self.detector.detect(make_candidate(liquidity=6_000, fdv=60_000), now, social=social)

        hype = [f for f in flags if f.type == FlagType.HYPE_NO_LIQUIDITY]
        assert len(hype) == 2
        assert "liquidity" in hype[0].evidence
        assert hype[1].evidence["spam_score"] == 70

    def test_bot_heavy(self, make_candidate, now):
        wallet = WalletIntelligence(total_buyers=60, classified_count=50, analyzed_at=now)
        flags = self.detector.detect(make_candidate(), now, wallet=wallet)
        assert FlagType.BOT_HEAVY_ACTIVITY in self._types(flags)

    def test_enrichment_read_from_candidate(self, make_candidate, now):
        wallet = WalletIntelligence(total_buyers=60, classified_count=50, analyzed_at=now)
        flags = self.detector.detect(make_candidate(wallet_intel=wallet), now)
        assert FlagType.BOT_HEAVY_ACTIVITY in self._types(flags)

    def test_evidence_is_numeric(self, make_candidate, now):
        candidate = make_candidate(buys_24h=300, sells_24h=5, price_change_1h=300, liquidity=1_000)
        for flag in self.detector.detect(candidate, now, prior_liquidity=40_000):
            assert all(isinstance(v, float) for v in flag.evidence.values())
            assert flag.detected_at == now


class TestFlagHelpers:
    """Tests for flag summaries."""

    def test_helpers(self, make_candidate, now):
        flags = FlagDetector().detect(make_candidate(buys_24h=300, sells_24h=5, price_change_1h=250), now)

        assert has_hard_flag(flags)
        assert count_by_severity(flags) == {"hard": 1, "soft": 1}
        assert summarize(flags).startswith("1 hard, 1 soft: HONEYPOT_SUSPECTED")

    def test_summarize_empty(self):
        assert summarize([]) == "No flags"
        assert not has_hard_flag([])
