"""Banded score rules and the scoring engine.

Each sub-score is the fold of an ordered list of rule objects over a
``ScoreContext``; nothing here reads the wall clock.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..core.enums import ScanProfile, Sentiment
from ..core.models import Candidate, Condition, Flag, Scores, SocialSignals
from ..core.policy import Policy
from ..intel.social import format_social_signal
from .rules import Band, BandRule, ScoreContext, ScoreRule, RuleOutcome, fixed, fold

logger = logging.getLogger(__name__)

WEIGHTS = {
    ScanProfile.DISCOVERY: {"momentum": 0.50, "risk": 0.25, "liquidity": 0.15, "confidence": 0.10},
    ScanProfile.GEM: {"momentum": 0.35, "liquidity": 0.20, "risk": 0.25, "confidence": 0.20},
}

HARD_FLAG_PENALTY = 20
SOFT_FLAG_PENALTY = 5


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def social_boost(social: Optional[SocialSignals]) -> float:
    """Score boost from social activity, capped at 30."""
    if social is None:
        return 0.0
    boost = 0.0
    if social.mention_count >= 20:
        boost += 15
    elif social.mention_count >= 10:
        boost += 10
    elif social.mention_count >= 5:
        boost += 5

    if social.spike_detected:
        boost += 10
    elif social.mention_velocity >= 5:
        boost += 5

    if social.sentiment == Sentiment.BULLISH:
        boost += 10
    elif social.sentiment == Sentiment.NEUTRAL:
        boost += 5
    return min(30.0, boost)


def _k(value: float) -> str:
    return f"${value / 1000:.0f}K"


# ----------------------------------------------------------------------
# Shared rules
# ----------------------------------------------------------------------

FLAG_PENALTY = ScoreRule(
    "flag penalty",
    lambda c: RuleOutcome(-(c.hard_flags * HARD_FLAG_PENALTY + c.soft_flags * SOFT_FLAG_PENALTY)),
)

WALLET_RISK_RULES = [
    fixed(5, lambda c: c.wallet is not None and c.wallet.old_wallet_percent >= 30, "old wallet share"),
    fixed(5, lambda c: c.wallet is not None and c.wallet.profitable_wallet_percent >= 10, "profitable wallet share"),
]

WALLET_CONFIDENCE = fixed(5, lambda c: c.wallet is not None and c.wallet.classified_count > 0, "wallet coverage")

# ----------------------------------------------------------------------
# Discovery profile
# ----------------------------------------------------------------------

DISCOVERY_MOMENTUM: List[ScoreRule] = [
    BandRule("trend", [
        Band(lambda c: c.h6 < -50 and c.h1 < 0, -50,
             lambda c: f"Freefall: {c.h6:.0f}% over 6h and still dropping"),
        Band(lambda c: c.h1 < -10, -35, lambda c: f"Dumping: {c.h1:.0f}% in 1h"),
        Band(lambda c: c.h1 < -5, -20, lambda c: f"Weak: {c.h1:.0f}% in 1h"),
    ]),
    fixed(30, lambda c: c.h6 < -30 and c.h1 > 10, "bounce",
          lambda c: f"Bounce: +{c.h1:.0f}% in 1h after {c.h6:.0f}% over 6h"),
    BandRule("accumulation", [
        Band(lambda c: c.vol_mcap > 20 and abs(c.h1) < 10 and c.buy_ratio > 0.55, 50,
             lambda c: f"Stealth load: {c.vol_mcap * 100:.0f}% volume/valuation with flat price"),
        Band(lambda c: c.vol_mcap > 5 and abs(c.h1) < 10 and c.buy_ratio > 0.50, 35,
             "Breakout setup: heavy volume with buyers loading"),
        Band(lambda c: c.vol_mcap > 0.5 and 0 <= c.h1 < 30 and c.buy_ratio > 0.55, 30,
             "Accumulation phase"),
        Band(lambda c: c.vol_mcap > 0.3 and c.buy_ratio > 0.55 and c.h1 >= 0, 20),
    ], when=lambda c: c.h6 > -50),
    BandRule("1h move", [
        Band(lambda c: 0 <= c.h1 < 5, 15, "Ground floor: price stable"),
        Band(lambda c: 5 <= c.h1 < 15, 20, lambda c: f"Early move: +{c.h1:.0f}% in 1h"),
        Band(lambda c: 15 <= c.h1 < 30, 15, lambda c: f"Active: +{c.h1:.0f}% in 1h"),
        Band(lambda c: 30 <= c.h1 < 60, 5, lambda c: f"Extended: +{c.h1:.0f}% in 1h"),
        Band(lambda c: c.h1 >= 60, -15, lambda c: f"Chasing: +{c.h1:.0f}% in 1h"),
    ]),
    BandRule("buy pressure", [
        Band(lambda c: c.buy_ratio > 0.70, 25, lambda c: f"Heavy buying: {c.buy_ratio * 100:.0f}% buys"),
        Band(lambda c: c.buy_ratio > 0.60, 20, lambda c: f"Strong demand: {c.buy_ratio * 100:.0f}% buys"),
        Band(lambda c: c.buy_ratio > 0.55, 15),
        Band(lambda c: c.buy_ratio < 0.45, -15, lambda c: f"Sell pressure: {c.buy_ratio * 100:.0f}% buys"),
    ]),
    BandRule("valuation", [
        Band(lambda c: 5_000 < c.fdv < 50_000, 20, lambda c: f"Micro valuation: {_k(c.fdv)}"),
        Band(lambda c: c.fdv < 100_000, 15, lambda c: f"Small valuation: {_k(c.fdv)}"),
        Band(lambda c: c.fdv < 250_000, 10, lambda c: f"Low valuation: {_k(c.fdv)}"),
        Band(lambda c: c.fdv < 500_000, 5),
    ], when=lambda c: c.fdv > 0),
    BandRule("activity", [
        Band(lambda c: c.total_txns > 1000, 15, lambda c: f"Hot: {c.total_txns:,} transactions"),
        Band(lambda c: c.total_txns > 500, 10),
        Band(lambda c: c.total_txns > 200, 5),
        Band(lambda c: c.total_txns < 50, -10),
    ]),
    fixed(-20, lambda c: c.h24 > 200 and c.h1 < 0, "reversal",
          lambda c: f"Reversal: +{c.h24:.0f}% over 24h, now {c.h1:.0f}% in 1h"),
    BandRule("age", [
        Band(lambda c: c.age_hours < 2, 25, lambda c: f"Brand new: {c.age_hours:.1f}h old"),
        Band(lambda c: c.age_hours < 6, 15, lambda c: f"Fresh: {c.age_hours:.0f}h old"),
        Band(lambda c: c.age_hours < 24, 5),
    ], when=lambda c: c.age_hours is not None),
    fixed(20, lambda c: abs(c.h1) < 10 and c.vol_mcap > 0.5 and c.total_txns > 500, "coiling",
          "Coiling: price stable while volume builds"),
    BandRule("v-recovery", [
        Band(lambda c: c.h6 < -50 and c.h1 > 15, 35,
             lambda c: f"V-recovery: +{c.h1:.0f}% from a {c.h6:.0f}% dip"),
        Band(lambda c: c.h6 < -30 and c.h1 > 10, 25,
             lambda c: f"Recovery: +{c.h1:.0f}% from a {c.h6:.0f}% dip"),
        Band(lambda c: c.h6 < -20 and c.h1 > 5, 15,
             lambda c: f"Bounce forming: +{c.h1:.0f}% recovery"),
    ], when=lambda c: c.buy_ratio > 0.55),
    fixed(-15, lambda c: c.h1 > 100, "overextended",
          lambda c: f"Overextended: +{c.h1:.0f}% in 1h"),
]

DISCOVERY_LIQUIDITY: List[ScoreRule] = [
    BandRule("liquidity tier", [
        Band(lambda c: c.liquidity >= 100_000, 40),
        Band(lambda c: c.liquidity >= 50_000, 35),
        Band(lambda c: c.liquidity >= 25_000, 30),
        Band(lambda c: c.liquidity >= 10_000, 25),
        Band(lambda c: c.liquidity >= 5_000, 15),
        Band(lambda c: True, 5),
    ]),
    BandRule("liquidity ratio", [
        Band(lambda c: c.liq_ratio >= 20, 30),
        Band(lambda c: c.liq_ratio >= 10, 25),
        Band(lambda c: c.liq_ratio >= 5, 20),
        Band(lambda c: c.liq_ratio >= 2, 10),
    ]),
    # Bands are ordered so the score is non-decreasing in liquidity
    BandRule("turnover", [
        Band(lambda c: c.turnover is None or c.turnover > 20, 10),
        Band(lambda c: c.turnover > 10, 20),
        Band(lambda c: True, 30),
    ]),
]

DISCOVERY_RISK: List[ScoreRule] = [
    BandRule("liquidity safety", [
        Band(lambda c: c.liquidity >= 50_000, 15),
        Band(lambda c: c.liquidity >= 20_000, 10),
        Band(lambda c: c.liquidity >= 10_000, 5),
        Band(lambda c: True, -15),
    ]),
    BandRule("liquidity ratio safety", [
        Band(lambda c: c.liq_ratio >= 10, 15),
        Band(lambda c: c.liq_ratio >= 5, 10),
        Band(lambda c: c.liq_ratio < 2, -15),
    ]),
    BandRule("sell activity", [
        Band(lambda c: 0.2 <= c.sell_ratio <= 0.5, 15),
        Band(lambda c: c.sell_ratio < 0.1 and c.total_txns > 50, -20),
    ]),
    BandRule("sustained activity", [
        Band(lambda c: c.total_txns >= 500, 10),
        Band(lambda c: c.total_txns >= 100, 5),
    ]),
    FLAG_PENALTY,
    *WALLET_RISK_RULES,
]

DISCOVERY_CONFIDENCE: List[ScoreRule] = [
    ScoreRule("conditions passed", lambda c: RuleOutcome(
        c.conditions_passed / c.conditions_total * 50 if c.conditions_total else 0.0)),
    fixed(10, lambda c: c.candidate.volume_24h > 0, "has volume"),
    fixed(10, lambda c: c.total_txns > 0, "has transactions"),
    fixed(10, lambda c: c.liquidity > 0, "has liquidity"),
    fixed(10, lambda c: c.fdv > 0, "has valuation"),
    fixed(10, lambda c: c.h1 != 0, "has 1h change"),
    WALLET_CONFIDENCE,
]

# ----------------------------------------------------------------------
# Gem profile
# ----------------------------------------------------------------------

GEM_BONUS: List[ScoreRule] = [
    BandRule("liquidity bonus", [
        Band(lambda c: c.liquidity >= 100_000, 25, lambda c: f"Deep liquidity: {_k(c.liquidity)}"),
        Band(lambda c: c.liquidity >= 50_000, 15),
        Band(lambda c: c.liquidity >= 25_000, 5),
    ]),
    BandRule("age bonus", [
        Band(lambda c: 1 <= c.age_hours <= 6, 20, lambda c: f"Survived launch: {c.age_hours:.1f}h old"),
        Band(lambda c: c.age_hours < 1, 5),
        Band(lambda c: c.age_hours < 24, 15, lambda c: f"Fresh: {c.age_hours:.1f}h old"),
    ], when=lambda c: c.age_hours is not None),
    BandRule("valuation bonus", [
        Band(lambda c: 25_000 <= c.fdv < 100_000, 25, lambda c: f"Sweet spot: {_k(c.fdv)} valuation"),
        Band(lambda c: 100_000 <= c.fdv < 250_000, 20, lambda c: f"Growth valuation: {_k(c.fdv)}"),
        Band(lambda c: 10_000 <= c.fdv < 25_000, 10),
    ]),
    ScoreRule("social boost", lambda c: RuleOutcome(
        c.social_boost,
        f"Social validation: {c.social.mention_count if c.social else 0} mentions",
    ) if c.social_boost >= 15 else None),
]

GEM_PENALTY: List[ScoreRule] = [
    fixed(20, lambda c: c.liquidity < 25_000, "thin liquidity",
          lambda c: f"Low liquidity: ${c.liquidity / 1000:.1f}K"),
    fixed(10, lambda c: c.age_hours is not None and c.age_hours < 1, "very new"),
    BandRule("valuation risk", [
        Band(lambda c: 10_000 <= c.fdv < 25_000, 10),
        Band(lambda c: c.fdv < 10_000, 25, lambda c: f"Tiny valuation: ${c.fdv / 1000:.1f}K"),
    ]),
    fixed(25, lambda c: c.buy_ratio < 0.55, "weak demand",
          lambda c: f"Weak demand: {c.buy_ratio * 100:.0f}% buys"),
    fixed(10, lambda c: c.vol_mcap < 0.3, "low volume"),
    BandRule("1h risk", [
        Band(lambda c: c.h1 >= 100, 15, lambda c: f"Overextended: +{c.h1:.0f}% in 1h"),
        Band(lambda c: c.h1 < -10, 20, lambda c: f"Dumping: {c.h1:.0f}% in 1h"),
    ]),
]

GEM_MOMENTUM: List[ScoreRule] = [
    BandRule("buy dominance", [
        Band(lambda c: c.buy_ratio >= 0.80, 40, lambda c: f"Massive buying: {c.buy_ratio * 100:.0f}% buys"),
        Band(lambda c: c.buy_ratio >= 0.75, 30, lambda c: f"Strong demand: {c.buy_ratio * 100:.0f}% buys"),
        Band(lambda c: c.buy_ratio >= 0.65, 15),
    ]),
    BandRule("volume quality", [
        Band(lambda c: c.vol_mcap >= 2.0 and c.total_txns >= 200, 25,
             lambda c: f"High volume: {c.vol_mcap * 100:.0f}% volume/valuation, {c.total_txns} transactions"),
        Band(lambda c: c.vol_mcap >= 1.0 and c.total_txns >= 100, 15,
             lambda c: f"Active: {c.vol_mcap * 100:.0f}% volume/valuation"),
    ]),
    BandRule("1h trend", [
        Band(lambda c: 20 <= c.h1 < 100, 20, lambda c: f"Trending: +{c.h1:.0f}% in 1h"),
        Band(lambda c: 5 <= c.h1 < 20, 15),
    ]),
]

GEM_LIQUIDITY: List[ScoreRule] = [
    BandRule("liquidity tier", [
        Band(lambda c: c.liquidity >= 100_000, 50),
        Band(lambda c: c.liquidity >= 50_000, 40),
        Band(lambda c: c.liquidity >= 25_000, 30),
        Band(lambda c: True, 15),
    ]),
    BandRule("liquidity ratio", [
        Band(lambda c: c.fdv > 0 and c.liquidity / c.fdv >= 0.15, 30),
        Band(lambda c: True, 10),
    ]),
    BandRule("volume ratio", [
        Band(lambda c: c.vol_mcap >= 1.0, 20),
        Band(lambda c: True, 10),
    ]),
]

GEM_RISK: List[ScoreRule] = [
    fixed(20, lambda c: c.liquidity >= 50_000, "liquidity"),
    fixed(10, lambda c: c.liquidity >= 100_000, "deep liquidity"),
    fixed(15, lambda c: c.buy_ratio >= 0.70, "buy dominance"),
    fixed(10, lambda c: c.total_txns >= 100, "activity"),
    fixed(10, lambda c: c.age_hours is not None and 1 <= c.age_hours <= 12, "survived launch"),
    fixed(10, lambda c: c.social_boost >= 15, "social"),
    FLAG_PENALTY,
    *WALLET_RISK_RULES,
]

GEM_CONFIDENCE: List[ScoreRule] = [
    fixed(10, lambda c: c.social_boost >= 20, "social"),
    fixed(10, lambda c: c.liquidity >= 50_000, "liquidity"),
    WALLET_CONFIDENCE,
]


class ScoringEngine:
    """
    Computes momentum, liquidity, risk and confidence sub-scores and the
    profile-weighted composite.
    """

    def __init__(self, policy: Optional[Policy] = None):
        self.policy = policy or Policy()

    def score(
        self,
        candidate: Candidate,
        conditions: Sequence[Condition],
        flags: Sequence[Flag],
        profile: ScanProfile,
        now: datetime,
    ) -> Tuple[Scores, List[str]]:
        ctx = ScoreContext.build(candidate, conditions, flags, now, social_boost=social_boost(candidate.social))
        if profile == ScanProfile.GEM:
            return self._score_gem(ctx)
        return self._score_discovery(ctx)

    def _composite(self, profile: ScanProfile, momentum: float, liquidity: float,
                   risk: float, confidence: float) -> Scores:
        weights = WEIGHTS[profile]
        composite = round(
            momentum * weights["momentum"]
            + liquidity * weights["liquidity"]
            + risk * weights["risk"]
            + confidence * weights["confidence"]
        )
        return Scores(
            momentum=momentum,
            liquidity=liquidity,
            risk=risk,
            confidence=confidence,
            composite=clamp(composite),
        )

    def _score_discovery(self, ctx: ScoreContext) -> Tuple[Scores, List[str]]:
        momentum, signals = fold(DISCOVERY_MOMENTUM, ctx)
        liquidity, _ = fold(DISCOVERY_LIQUIDITY, ctx)
        risk, _ = fold(DISCOVERY_RISK, ctx)
        confidence, _ = fold(DISCOVERY_CONFIDENCE, ctx)

        momentum = clamp(momentum)
        scores = self._composite(
            ScanProfile.DISCOVERY, momentum, clamp(liquidity), clamp(50 + risk), clamp(confidence)
        )

        h1 = ctx.h1
        if momentum >= 70 and ctx.buy_ratio > 0.55 and 0 < h1 < 50 and ctx.fdv < 500_000:
            signals.insert(0, "PRIME SIGNAL: high-confidence pre-pump setup")
        return scores, signals

    def _score_gem(self, ctx: ScoreContext) -> Tuple[Scores, List[str]]:
        signals: List[str] = []
        social_text = format_social_signal(ctx.social)
        if social_text:
            signals.append(social_text)

        gem_bonus, bonus_signals = fold(GEM_BONUS, ctx)
        momentum, momentum_signals = fold(GEM_MOMENTUM, ctx)
        risk_penalty, penalty_signals = fold(GEM_PENALTY, ctx)
        signals.extend(bonus_signals + momentum_signals + penalty_signals)

        quality = gem_bonus + momentum - risk_penalty
        if quality >= 80 and ctx.buy_ratio >= 0.75 and ctx.liquidity >= 50_000:
            signals.insert(0, "HIGH CONFIDENCE: strong metrics across the board")
        if quality >= 70 and ctx.buy_ratio >= 0.70 and ctx.total_txns >= 150 and ctx.social_boost >= 15:
            signals.insert(0, "VALIDATED GEM: liquidity, demand and social proof")

        liquidity, _ = fold(GEM_LIQUIDITY, ctx)
        risk_adjust, _ = fold(GEM_RISK, ctx)
        risk = 40 + risk_adjust - risk_penalty * 0.5

        if ctx.conditions_total:
            base_confidence = min(100.0, ctx.conditions_passed / ctx.conditions_total * 60 + 20)
        else:
            base_confidence = 20.0
        confidence_adjust, _ = fold(GEM_CONFIDENCE, ctx)

        scores = self._composite(
            ScanProfile.GEM,
            clamp(momentum + gem_bonus - risk_penalty),
            clamp(liquidity),
            clamp(risk),
            clamp(base_confidence + confidence_adjust),
        )
        return scores, signals
