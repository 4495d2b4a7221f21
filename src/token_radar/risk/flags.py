"""Rug and manipulation flag detection."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from ..core.enums import FlagSeverity, FlagType, HARD_FLAG_TYPES
from ..core.models import Candidate, Flag, SocialSignals, WalletIntelligence
from ..core.policy import Policy

logger = logging.getLogger(__name__)


def has_hard_flag(flags: List[Flag]) -> bool:
    return any(f.is_hard for f in flags)


def count_by_severity(flags: List[Flag]) -> Dict[str, int]:
    counts = {FlagSeverity.HARD.value: 0, FlagSeverity.SOFT.value: 0}
    for flag in flags:
        counts[flag.severity.value] += 1
    return counts


def summarize(flags: List[Flag]) -> str:
    """One-line flag summary, hard flags first."""
    if not flags:
        return "No flags"
    counts = count_by_severity(flags)
    ordered = sorted(flags, key=lambda f: 0 if f.is_hard else 1)
    names = ", ".join(f.type.value for f in ordered)
    return f"{counts['hard']} hard, {counts['soft']} soft: {names}"


class FlagDetector:
    """
    Independent rule set producing hard (disqualifying) and soft (advisory) flags.

    Each check is a pure function of the candidate and the optional prior
    liquidity, social and wallet inputs. A flag's evidence holds only the
    numbers its rule actually compared.
    """

    def __init__(self, policy: Optional[Policy] = None):
        self.policy = policy or Policy()

    def detect(
        self,
        candidate: Candidate,
        now: datetime,
        prior_liquidity: Optional[float] = None,
        social: Optional[SocialSignals] = None,
        wallet: Optional[WalletIntelligence] = None,
    ) -> List[Flag]:
        social = social if social is not None else candidate.social
        wallet = wallet if wallet is not None else candidate.wallet_intel

        checks = [
            self._check_liquidity_removed(candidate, now, prior_liquidity),
            self._check_honeypot(candidate, now),
            self._check_trading_disabled(candidate, now),
            self._check_concentration(candidate, now),
            self._check_fee_on_transfer(candidate, now),
            self._check_wash_trading(candidate, now),
            self._check_rapid_pump(candidate, now),
        ]
        flags: List[Flag] = [flag for flag in checks if flag is not None]
        flags.extend(self._check_hype_without_liquidity(candidate, now, social))
        bot_heavy = self._check_bot_heavy(candidate, now, wallet)
        if bot_heavy is not None:
            flags.append(bot_heavy)

        if flags:
            logger.debug(f"{candidate.symbol} flagged: {summarize(flags)}")
        return flags

    @staticmethod
    def _flag(flag_type: FlagType, message: str, evidence: Dict[str, float], now: datetime,
              severity: Optional[FlagSeverity] = None) -> Flag:
        if severity is None:
            severity = FlagSeverity.HARD if flag_type in HARD_FLAG_TYPES else FlagSeverity.SOFT
        return Flag(
            type=flag_type,
            severity=severity,
            message=message,
            evidence={k: float(v) for k, v in evidence.items()},
            detected_at=now,
        )

    # ------------------------------------------------------------------
    # Hard flags
    # ------------------------------------------------------------------

    def _check_liquidity_removed(self, c: Candidate, now: datetime, prior: Optional[float]) -> Optional[Flag]:
        if prior is None or prior <= 0:
            return None
        drop = (prior - c.liquidity) / prior * 100
        if drop < 80:
            return None
        return self._flag(
            FlagType.LIQUIDITY_REMOVED,
            f"Liquidity dropped {drop:.1f}% (${prior:,.0f} -> ${c.liquidity:,.0f})",
            {"previous_liquidity": prior, "current_liquidity": c.liquidity, "drop_percent": drop},
            now,
        )

    def _check_honeypot(self, c: Candidate, now: datetime) -> Optional[Flag]:
        total = c.total_txns
        if total < 50:
            return None
        sell_ratio = c.sell_ratio
        evidence = {"buys": c.buys_24h, "sells": c.sells_24h, "sell_ratio": sell_ratio}
        if sell_ratio < 0.05:
            return self._flag(
                FlagType.HONEYPOT_SUSPECTED,
                f"Only {sell_ratio * 100:.1f}% sells across {total} transactions",
                evidence,
                now,
            )
        if sell_ratio < 0.15:
            return self._flag(
                FlagType.HONEYPOT_SUSPECTED,
                f"Low sell ratio: {sell_ratio * 100:.1f}% of {total} transactions",
                evidence,
                now,
                severity=FlagSeverity.SOFT,
            )
        return None

    def _check_trading_disabled(self, c: Candidate, now: datetime) -> Optional[Flag]:
        if c.liquidity > 1000 and c.fdv > 10_000 and c.total_txns == 0:
            return self._flag(
                FlagType.TRADING_DISABLED,
                f"No transactions in 24h despite ${c.liquidity:,.0f} liquidity",
                {"liquidity": c.liquidity, "fdv": c.fdv, "total_txns": 0},
                now,
            )
        return None

    def _check_concentration(self, c: Candidate, now: datetime) -> Optional[Flag]:
        if c.fdv <= 100_000:
            return None
        liq_ratio = c.liquidity / c.fdv * 100
        if liq_ratio >= 2:
            return None
        return self._flag(
            FlagType.EXTREME_CONCENTRATION,
            f"Liquidity is {liq_ratio:.2f}% of a ${c.fdv:,.0f} valuation",
            {"liquidity": c.liquidity, "fdv": c.fdv, "liquidity_ratio_percent": liq_ratio},
            now,
        )

    # ------------------------------------------------------------------
    # Soft flags
    # ------------------------------------------------------------------

    def _check_fee_on_transfer(self, c: Candidate, now: datetime) -> Optional[Flag]:
        if c.liquidity <= 0:
            return None
        turnover = c.volume_24h / c.liquidity
        if turnover > 50 and c.price_change_24h <= -20:
            return self._flag(
                FlagType.FEE_ON_TRANSFER,
                f"Turnover {turnover:.1f}x with a {c.price_change_24h:.1f}% 24h decline",
                {"turnover": turnover, "price_change_24h": c.price_change_24h},
                now,
            )
        return None

    def _check_wash_trading(self, c: Candidate, now: datetime) -> Optional[Flag]:
        if c.total_txns <= 100 or c.liquidity <= 0:
            return None
        buy_ratio = c.buy_ratio
        turnover = c.volume_24h / c.liquidity
        if 0.48 < buy_ratio < 0.52 and turnover > 20:
            return self._flag(
                FlagType.WASH_TRADING,
                f"Buy ratio {buy_ratio * 100:.1f}% with {turnover:.1f}x turnover over {c.total_txns} transactions",
                {"buy_ratio": buy_ratio, "turnover": turnover, "total_txns": c.total_txns},
                now,
            )
        return None

    def _check_rapid_pump(self, c: Candidate, now: datetime) -> Optional[Flag]:
        change = c.price_change_1h
        if change <= 200:
            return None
        if change > 500:
            message = f"Extreme pump: +{change:.0f}% in 1h"
        else:
            message = f"Rapid pump: +{change:.0f}% in 1h"
        return self._flag(FlagType.RAPID_PUMP, message, {"price_change_1h": change}, now)

    def _check_hype_without_liquidity(self, c: Candidate, now: datetime,
                                      social: Optional[SocialSignals]) -> List[Flag]:
        """Low-liquidity hype and a spammy mention spike are reported separately."""
        flags: List[Flag] = []
        if social is None:
            return flags
        if social.mention_velocity > self.policy.social_spike_threshold and c.liquidity < 10_000:
            flags.append(self._flag(
                FlagType.HYPE_NO_LIQUIDITY,
                f"{social.mention_velocity:.0f} mentions/hour with ${c.liquidity:,.0f} liquidity",
                {"mention_velocity": social.mention_velocity, "liquidity": c.liquidity},
                now,
            ))
        if social.spike_detected and social.spam_score > 50:
            flags.append(self._flag(
                FlagType.HYPE_NO_LIQUIDITY,
                f"Mention spike with spam score {social.spam_score:.0f}",
                {"mention_velocity": social.mention_velocity, "spam_score": social.spam_score},
                now,
            ))
        return flags

    def _check_bot_heavy(self, c: Candidate, now: datetime,
                         wallet: Optional[WalletIntelligence]) -> Optional[Flag]:
        if wallet is None:
            return None
        if (wallet.total_buyers >= 50 and wallet.old_wallet_count == 0
                and wallet.profitable_wallet_count == 0 and c.volume_24h > 50_000):
            return self._flag(
                FlagType.BOT_HEAVY_ACTIVITY,
                f"{wallet.total_buyers} buyers, none old or profitable, on ${c.volume_24h:,.0f} volume",
                {
                    "total_buyers": wallet.total_buyers,
                    "old_wallet_count": 0,
                    "profitable_wallet_count": 0,
                    "volume_24h": c.volume_24h,
                },
                now,
            )
        return None
