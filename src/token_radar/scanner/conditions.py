"""Profile-specific ordered condition sets."""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..core.enums import ScanProfile
from ..core.models import Candidate, Condition
from ..core.policy import Policy
from ..intel.social import has_social_validation
from .rules import ScoreContext

logger = logging.getLogger(__name__)

GEM_MIN_PASSED = 8
GEM_MIN_LIQUIDITY = 25_000
GEM_MANDATORY_BUY_RATIO = 0.65


def _usd_k(value: float) -> str:
    return f"${value / 1000:.1f}K"


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.0f}%"


class ConditionEvaluator:
    """
    Runs the fixed ordered condition list for a profile.

    Conditions are pure functions of the candidate and an explicit ``now``.
    When an input is missing the evidence says so instead of inventing a value.
    """

    def __init__(self, policy: Optional[Policy] = None):
        self.policy = policy or Policy()
        self._profiles: Dict[ScanProfile, List[Callable[[ScoreContext], Condition]]] = {
            ScanProfile.DISCOVERY: [
                self._accumulation_pattern,
                self._fresh_buyer_influx,
                self._fresh_token,
                self._micro_cap,
                self._healthy_liquidity,
                self._early_momentum,
                self._transaction_velocity,
                self._not_overextended_24h,
            ],
            ScanProfile.GEM: [
                self._minimum_liquidity,
                self._strong_buy_dominance,
                self._healthy_volume,
                self._sustained_activity,
                self._healthy_liq_ratio,
                self._positive_momentum,
                self._not_overextended_1h,
                self._volume_explosion,
                self._social_validation,
                self._reasonable_mcap,
                self._buyer_diversity,
                self._low_sell_pressure,
            ],
        }

    def evaluate(self, candidate: Candidate, profile: ScanProfile, now: datetime) -> List[Condition]:
        ctx = ScoreContext.build(candidate, now=now)
        return [check(ctx) for check in self._profiles[profile]]

    def qualifies(self, conditions: List[Condition], profile: ScanProfile, candidate: Candidate) -> bool:
        passed = sum(1 for c in conditions if c.passed)
        if profile == ScanProfile.GEM:
            has_liquidity = any(c.passed for c in conditions if c.name == "Minimum Liquidity")
            return (passed >= GEM_MIN_PASSED and has_liquidity
                    and candidate.buy_ratio >= GEM_MANDATORY_BUY_RATIO)
        return passed >= self.policy.min_conditions_to_pass

    # ------------------------------------------------------------------
    # Discovery profile
    # ------------------------------------------------------------------

    def _accumulation_pattern(self, ctx: ScoreContext) -> Condition:
        passed = ctx.vol_mcap > 0.3 and ctx.buy_ratio > 0.55 and ctx.h1 < 50
        if ctx.fdv <= 0 or ctx.total_txns == 0:
            evidence = "Valuation or transaction data unknown"
        elif passed:
            evidence = (f"Accumulation: {_pct(ctx.vol_mcap)} volume/valuation "
                        f"with {_pct(ctx.buy_ratio)} buys")
        else:
            evidence = f"Volume/valuation {_pct(ctx.vol_mcap)}, buys {_pct(ctx.buy_ratio)}"
        return Condition(
            name="Accumulation Pattern",
            value=f"{_pct(ctx.vol_mcap)} vol/mcap, {_pct(ctx.buy_ratio)} buys",
            threshold=">30% vol/mcap, >55% buys, <50% 1h change",
            passed=passed,
            evidence=evidence,
        )

    def _fresh_buyer_influx(self, ctx: ScoreContext) -> Condition:
        c = ctx.candidate
        buyers, sellers = c.unique_buyers_24h, c.unique_sellers_24h
        ratio = buyers / sellers if sellers > 0 else float(buyers)
        passed = buyers > sellers * 1.5
        if buyers == 0 and sellers == 0:
            evidence = "Buyer and seller counts unknown"
        else:
            evidence = f"{buyers} buyers vs {sellers} sellers ({ratio:.1f}x)"
        return Condition(
            name="Fresh Buyer Influx",
            value=round(ratio, 2),
            threshold=">1.5x sellers",
            passed=passed,
            evidence=evidence,
        )

    def _fresh_token(self, ctx: ScoreContext) -> Condition:
        age = ctx.age_hours
        if age is None:
            return Condition(
                name="Fresh Token", value="Unknown age", threshold="< 6 hours",
                passed=False, evidence="Pair creation time unknown",
            )
        passed = age < 6
        if passed:
            evidence = f"Fresh launch: {age:.1f} hours old"
        elif age < 24:
            evidence = f"{age:.0f} hours old"
        else:
            evidence = f"Mature token: {age / 24:.1f} days old"
        return Condition(
            name="Fresh Token", value=f"{age:.1f} hours old", threshold="< 6 hours",
            passed=passed, evidence=evidence,
        )

    def _micro_cap(self, ctx: ScoreContext) -> Condition:
        passed = 10_000 < ctx.fdv < 500_000
        if ctx.fdv <= 0:
            evidence = "Valuation unknown"
        else:
            evidence = f"{_usd_k(ctx.fdv)} valuation, {'inside' if passed else 'outside'} $10K-$500K"
        return Condition(
            name="Micro Cap Opportunity", value=ctx.fdv, threshold="$10K - $500K mcap",
            passed=passed, evidence=evidence,
        )

    def _healthy_liquidity(self, ctx: ScoreContext) -> Condition:
        min_liq = self.policy.min_liquidity
        passed = 5 <= ctx.liq_ratio <= 40 and ctx.liquidity >= min_liq
        if ctx.fdv <= 0:
            evidence = f"Valuation unknown, liquidity {_usd_k(ctx.liquidity)}"
        else:
            evidence = f"{ctx.liq_ratio:.1f}% liquidity/valuation ({_usd_k(ctx.liquidity)})"
        return Condition(
            name="Healthy Liquidity", value=round(ctx.liq_ratio, 2),
            threshold=f"5-40% liq/mcap, min {_usd_k(min_liq)}",
            passed=passed, evidence=evidence,
        )

    def _early_momentum(self, ctx: ScoreContext) -> Condition:
        passed = 5 < ctx.h1 < 100
        if passed:
            evidence = f"Early move: {ctx.h1:+.0f}% in 1h"
        elif ctx.h1 >= 100:
            evidence = f"Late entry: {ctx.h1:+.0f}% in 1h"
        elif ctx.h1 == 0:
            evidence = "1h change unknown or flat"
        else:
            evidence = f"Flat: {ctx.h1:+.1f}% in 1h"
        return Condition(
            name="Early Momentum", value=ctx.h1, threshold="5-100% 1h change",
            passed=passed, evidence=evidence,
        )

    def _transaction_velocity(self, ctx: ScoreContext) -> Condition:
        c = ctx.candidate
        if ctx.total_txns == 0:
            evidence = "Transaction counts unknown"
        else:
            evidence = f"{ctx.total_txns} transactions in 24h ({c.buys_24h} buys, {c.sells_24h} sells)"
        return Condition(
            name="Transaction Velocity", value=float(ctx.total_txns), threshold=">200 txns/24h",
            passed=ctx.total_txns > 200, evidence=evidence,
        )

    def _not_overextended_24h(self, ctx: ScoreContext) -> Condition:
        passed = ctx.h24 < 500
        evidence = f"24h change {ctx.h24:+.0f}%" + ("" if passed else " already")
        return Condition(
            name="Not Overextended", value=ctx.h24, threshold="<500% 24h",
            passed=passed, evidence=evidence,
        )

    # ------------------------------------------------------------------
    # Gem profile
    # ------------------------------------------------------------------

    def _minimum_liquidity(self, ctx: ScoreContext) -> Condition:
        passed = ctx.liquidity >= GEM_MIN_LIQUIDITY
        return Condition(
            name="Minimum Liquidity", value=_usd_k(ctx.liquidity), threshold="> $25K",
            passed=passed,
            evidence=f"{_usd_k(ctx.liquidity)} liquidity" if ctx.liquidity > 0 else "Liquidity unknown",
        )

    def _strong_buy_dominance(self, ctx: ScoreContext) -> Condition:
        return Condition(
            name="Strong Buy Dominance", value=f"{_pct(ctx.buy_ratio)} buys", threshold=">= 75%",
            passed=ctx.buy_ratio >= 0.75,
            evidence=f"{_pct(ctx.buy_ratio)} buy ratio" if ctx.total_txns else "Transaction counts unknown",
        )

    def _healthy_volume(self, ctx: ScoreContext) -> Condition:
        volume = ctx.candidate.volume_24h
        return Condition(
            name="Healthy Volume", value=_usd_k(volume), threshold="> $50K 24h",
            passed=volume >= 50_000,
            evidence=f"{_usd_k(volume)} 24h volume" if volume > 0 else "Volume unknown",
        )

    def _sustained_activity(self, ctx: ScoreContext) -> Condition:
        return Condition(
            name="Sustained Activity", value=f"{ctx.total_txns} txns", threshold=">= 100 transactions",
            passed=ctx.total_txns >= 100,
            evidence=f"{ctx.total_txns} transactions in 24h" if ctx.total_txns else "Transaction counts unknown",
        )

    def _healthy_liq_ratio(self, ctx: ScoreContext) -> Condition:
        passed = 15 <= ctx.liq_ratio <= 50
        if ctx.fdv <= 0:
            evidence = "Valuation unknown"
        elif passed:
            evidence = f"{ctx.liq_ratio:.0f}% liquidity/valuation"
        elif ctx.liq_ratio > 50:
            evidence = f"Too high: {ctx.liq_ratio:.0f}%"
        else:
            evidence = f"Too low: {ctx.liq_ratio:.0f}%"
        return Condition(
            name="Healthy Liq Ratio", value=f"{ctx.liq_ratio:.0f}%", threshold="15-50% liq/mcap",
            passed=passed, evidence=evidence,
        )

    def _positive_momentum(self, ctx: ScoreContext) -> Condition:
        return Condition(
            name="Positive Momentum", value=f"{ctx.h1:.1f}%", threshold="> 5% 1h change",
            passed=ctx.h1 > 5, evidence=f"{ctx.h1:+.0f}% in 1h",
        )

    def _not_overextended_1h(self, ctx: ScoreContext) -> Condition:
        passed = ctx.h1 < 200
        return Condition(
            name="Not Overextended", value=f"{ctx.h1:.0f}%", threshold="< 200% 1h gain",
            passed=passed,
            evidence=f"{ctx.h1:+.0f}% in 1h" + ("" if passed else ", overextended"),
        )

    def _volume_explosion(self, ctx: ScoreContext) -> Condition:
        return Condition(
            name="Volume Explosion", value=_pct(ctx.vol_mcap), threshold=">= 100% vol/mcap",
            passed=ctx.vol_mcap >= 1.0,
            evidence=f"{_pct(ctx.vol_mcap)} volume/valuation" if ctx.fdv > 0 else "Valuation unknown",
        )

    def _social_validation(self, ctx: ScoreContext) -> Condition:
        social = ctx.social
        passed = has_social_validation(social, self.policy)
        if social is None:
            value, evidence = "No data", "Social data unavailable"
        else:
            value = f"{social.mention_count} mentions"
            evidence = f"{social.mention_count} mentions, {social.mention_velocity:.0f} in the last hour"
            if social.spike_detected:
                evidence += ", spike"
        return Condition(
            name="Social Validation", value=value, threshold="5+ mentions, trending",
            passed=passed, evidence=evidence,
        )

    def _reasonable_mcap(self, ctx: ScoreContext) -> Condition:
        passed = 10_000 <= ctx.fdv <= 500_000
        if ctx.fdv <= 0:
            evidence = "Valuation unknown"
        elif passed:
            evidence = f"{_usd_k(ctx.fdv)} valuation"
        elif ctx.fdv < 10_000:
            evidence = f"{_usd_k(ctx.fdv)} valuation, below $10K"
        else:
            evidence = f"{_usd_k(ctx.fdv)} valuation, above $500K"
        return Condition(
            name="Reasonable MCap", value=_usd_k(ctx.fdv), threshold="$10K - $500K",
            passed=passed, evidence=evidence,
        )

    def _buyer_diversity(self, ctx: ScoreContext) -> Condition:
        buyers = ctx.candidate.unique_buyers_24h
        return Condition(
            name="Buyer Diversity", value=f"{buyers} buyers", threshold=">= 50 unique buyers",
            passed=buyers >= 50,
            evidence=f"{buyers} unique buyers" if buyers else "Buyer count unknown",
        )

    def _low_sell_pressure(self, ctx: ScoreContext) -> Condition:
        threshold = self.policy.buy_pressure_threshold
        sells = 1 - ctx.buy_ratio if ctx.total_txns else 0.0
        return Condition(
            name="Low Sell Pressure", value=f"{_pct(sells)} sells",
            threshold=f"< {_pct(1 - threshold)} sell ratio",
            passed=ctx.buy_ratio >= threshold,
            evidence=f"{_pct(sells)} of transactions are sells" if ctx.total_txns else "Transaction counts unknown",
        )
