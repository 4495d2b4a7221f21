"""Unit tests for the discovery and gem condition sets."""

import pytest
from datetime import timedelta

from token_radar.core.enums import ScanProfile, Sentiment
from token_radar.core.models import SocialSignals
from token_radar.core.policy import Policy
from token_radar.scanner.conditions import ConditionEvaluator

DISCOVERY_NAMES = [
    "Accumulation Pattern",
    "Fresh Buyer Influx",
    "Fresh Token",
    "Micro Cap Opportunity",
    "Healthy Liquidity",
    "Early Momentum",
    "Transaction Velocity",
    "Not Overextended",
]

GEM_NAMES = [
    "Minimum Liquidity",
    "Strong Buy Dominance",
    "Healthy Volume",
    "Sustained Activity",
    "Healthy Liq Ratio",
    "Positive Momentum",
    "Not Overextended",
    "Volume Explosion",
    "Social Validation",
    "Reasonable MCap",
    "Buyer Diversity",
    "Low Sell Pressure",
]


def _by_name(conditions):
    return {c.name: c for c in conditions}


class TestDiscoveryConditions:
    """Tests for the discovery profile."""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()

    def test_order_and_names(self, make_candidate, now):
        conditions = self.evaluator.evaluate(make_candidate(), ScanProfile.DISCOVERY, now)
        assert [c.name for c in conditions] == DISCOVERY_NAMES

    def test_healthy_candidate_passes_all(self, make_candidate, now):
        candidate = make_candidate()
        conditions = self.evaluator.evaluate(candidate, ScanProfile.DISCOVERY, now)

        assert all(c.passed for c in conditions)
        assert self.evaluator.qualifies(conditions, ScanProfile.DISCOVERY, candidate)

    def test_unknown_age_says_unknown(self, make_candidate, now):
        conditions = _by_name(self.evaluator.evaluate(
            make_candidate(pair_created_at=None), ScanProfile.DISCOVERY, now))

        fresh = conditions["Fresh Token"]
        assert not fresh.passed
        assert "unknown" in fresh.evidence

    def test_missing_valuation_says_unknown(self, make_candidate, now):
        conditions = _by_name(self.evaluator.evaluate(make_candidate(fdv=0), ScanProfile.DISCOVERY, now))

        assert not conditions["Micro Cap Opportunity"].passed
        assert "unknown" in conditions["Micro Cap Opportunity"].evidence
        assert "unknown" in conditions["Accumulation Pattern"].evidence

    def test_missing_transactions_says_unknown(self, make_candidate, now):
        conditions = _by_name(self.evaluator.evaluate(
            make_candidate(buys_24h=0, sells_24h=0), ScanProfile.DISCOVERY, now))

        assert "unknown" in conditions["Transaction Velocity"].evidence
        assert "unknown" in conditions["Fresh Buyer Influx"].evidence

    def test_age_is_relative_to_now(self, make_candidate, now):
        candidate = make_candidate()
        later = now + timedelta(hours=10)

        early = _by_name(self.evaluator.evaluate(candidate, ScanProfile.DISCOVERY, now))
        late = _by_name(self.evaluator.evaluate(candidate, ScanProfile.DISCOVERY, later))

        assert early["Fresh Token"].passed
        assert not late["Fresh Token"].passed

    def test_min_conditions_from_policy(self, make_candidate, now):
        candidate = make_candidate(
            pair_created_at=None, fdv=0, price_change_1h=0, buys_24h=10, sells_24h=10,
        )
        conditions = self.evaluator.evaluate(candidate, ScanProfile.DISCOVERY, now)
        passed = sum(c.passed for c in conditions)

        strict = ConditionEvaluator(Policy(min_conditions_to_pass=passed + 1))
        lenient = ConditionEvaluator(Policy(min_conditions_to_pass=passed))

        assert not strict.qualifies(conditions, ScanProfile.DISCOVERY, candidate)
        assert lenient.qualifies(conditions, ScanProfile.DISCOVERY, candidate)

    def test_healthy_liquidity_uses_policy_floor(self, make_candidate, now):
        evaluator = ConditionEvaluator(Policy(min_liquidity=50_000))
        conditions = _by_name(evaluator.evaluate(make_candidate(), ScanProfile.DISCOVERY, now))
        assert not conditions["Healthy Liquidity"].passed


class TestGemConditions:
    """Tests for the gem profile."""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()

    def _gem(self, make_candidate, **overrides):
        fields = dict(
            liquidity=60_000, fdv=200_000, volume_24h=250_000,
            buys_24h=400, sells_24h=100, price_change_1h=25,
        )
        fields.update(overrides)
        return make_candidate(**fields)

    def test_order_and_names(self, make_candidate, now):
        conditions = self.evaluator.evaluate(self._gem(make_candidate), ScanProfile.GEM, now)
        assert [c.name for c in conditions] == GEM_NAMES

    def test_gem_qualifies_without_social(self, make_candidate, now):
        candidate = self._gem(make_candidate)
        conditions = self.evaluator.evaluate(candidate, ScanProfile.GEM, now)

        assert sum(c.passed for c in conditions) == 11
        assert not _by_name(conditions)["Social Validation"].passed
        assert self.evaluator.qualifies(conditions, ScanProfile.GEM, candidate)

    def test_mandatory_minimum_liquidity(self, make_candidate, now):
        candidate = self._gem(make_candidate, liquidity=20_000, fdv=100_000)
        conditions = self.evaluator.evaluate(candidate, ScanProfile.GEM, now)

        assert sum(c.passed for c in conditions) >= 8
        assert not self.evaluator.qualifies(conditions, ScanProfile.GEM, candidate)

    def test_mandatory_buy_ratio(self, make_candidate, now):
        candidate = self._gem(make_candidate, buys_24h=310, sells_24h=190)
        conditions = self.evaluator.evaluate(candidate, ScanProfile.GEM, now)

        assert candidate.buy_ratio < 0.65
        assert not self.evaluator.qualifies(conditions, ScanProfile.GEM, candidate)

    def test_social_validation_passes_with_signal(self, make_candidate, now):
        social = SocialSignals(
            mention_count=12, mention_velocity=6, trending_score=55,
            sentiment=Sentiment.BULLISH, repeat_posters_ratio=0.1,
        )
        conditions = _by_name(self.evaluator.evaluate(
            self._gem(make_candidate, social=social), ScanProfile.GEM, now))
        assert conditions["Social Validation"].passed

    @pytest.mark.parametrize("overrides", [
        {"sentiment": Sentiment.BEARISH},
        {"repeat_posters_ratio": 0.5},
        {"mention_count": 3},
        {"trending_score": 20},
    ])
    def test_social_validation_rejections(self, make_candidate, now, overrides):
        fields = dict(mention_count=12, mention_velocity=6, trending_score=55,
                      sentiment=Sentiment.BULLISH, repeat_posters_ratio=0.1)
        fields.update(overrides)
        conditions = _by_name(self.evaluator.evaluate(
            self._gem(make_candidate, social=SocialSignals(**fields)), ScanProfile.GEM, now))
        assert not conditions["Social Validation"].passed

    def test_low_sell_pressure_uses_policy(self, make_candidate, now):
        candidate = self._gem(make_candidate, buys_24h=330, sells_24h=170)
        default = _by_name(self.evaluator.evaluate(candidate, ScanProfile.GEM, now))
        relaxed = _by_name(ConditionEvaluator(Policy(buy_pressure_threshold=0.6)).evaluate(
            candidate, ScanProfile.GEM, now))
        strict = _by_name(ConditionEvaluator(Policy(buy_pressure_threshold=0.7)).evaluate(
            candidate, ScanProfile.GEM, now))

        assert default["Low Sell Pressure"].passed
        assert relaxed["Low Sell Pressure"].passed
        assert not strict["Low Sell Pressure"].passed
