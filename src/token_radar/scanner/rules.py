"""Score rules: independent objects returning a signed delta and an optional signal."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ..core.models import Candidate, Condition, Flag, SocialSignals, WalletIntelligence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreContext:
    """Derived market metrics shared by conditions and score rules."""

    candidate: Candidate
    now: datetime
    total_txns: int
    buy_ratio: float
    sell_ratio: float
    vol_mcap: float           # 24h volume / valuation, 0 when valuation unknown
    liq_ratio: float          # liquidity / valuation in percent, 0 when valuation unknown
    turnover: Optional[float]  # 24h volume / liquidity, None when liquidity is zero
    age_hours: Optional[float]
    conditions_passed: int = 0
    conditions_total: int = 0
    hard_flags: int = 0
    soft_flags: int = 0
    social: Optional[SocialSignals] = None
    wallet: Optional[WalletIntelligence] = None
    social_boost: float = 0.0
    conditions: Tuple[Condition, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        candidate: Candidate,
        conditions: Sequence[Condition] = (),
        flags: Sequence[Flag] = (),
        now: Optional[datetime] = None,
        social_boost: float = 0.0,
    ) -> "ScoreContext":
        now = now or candidate.last_updated
        fdv = candidate.fdv
        liquidity = candidate.liquidity
        return cls(
            candidate=candidate,
            now=now,
            total_txns=candidate.total_txns,
            buy_ratio=candidate.buy_ratio,
            sell_ratio=candidate.sell_ratio,
            vol_mcap=candidate.volume_24h / fdv if fdv > 0 else 0.0,
            liq_ratio=liquidity / fdv * 100 if fdv > 0 else 0.0,
            turnover=candidate.volume_24h / liquidity if liquidity > 0 else None,
            age_hours=candidate.age_hours(now),
            conditions_passed=sum(1 for c in conditions if c.passed),
            conditions_total=len(conditions),
            hard_flags=sum(1 for f in flags if f.is_hard),
            soft_flags=sum(1 for f in flags if not f.is_hard),
            social=candidate.social,
            wallet=candidate.wallet_intel,
            social_boost=social_boost,
            conditions=tuple(conditions),
        )

    # Shorthands used by the rule tables
    @property
    def h1(self) -> float:
        return self.candidate.price_change_1h

    @property
    def h6(self) -> float:
        return self.candidate.price_change_6h

    @property
    def h24(self) -> float:
        return self.candidate.price_change_24h

    @property
    def liquidity(self) -> float:
        return self.candidate.liquidity

    @property
    def fdv(self) -> float:
        return self.candidate.fdv


@dataclass(frozen=True)
class RuleOutcome:
    delta: float = 0.0
    signal: Optional[str] = None


NO_CHANGE = RuleOutcome()

Signal = Union[None, str, Callable[[ScoreContext], str]]


def _render(signal: Signal, ctx: ScoreContext) -> Optional[str]:
    if signal is None or isinstance(signal, str):
        return signal
    return signal(ctx)


class ScoreRule:
    """A named rule: ``apply(ctx)`` returns the rule's delta and signal."""

    def __init__(self, name: str, fn: Callable[[ScoreContext], Optional[RuleOutcome]]):
        self.name = name
        self._fn = fn

    def apply(self, ctx: ScoreContext) -> RuleOutcome:
        return self._fn(ctx) or NO_CHANGE

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


@dataclass(frozen=True)
class Band:
    test: Callable[[ScoreContext], bool]
    delta: float
    signal: Signal = None


class BandRule(ScoreRule):
    """Ordered bands, first match wins. An optional guard disables the whole rule."""

    def __init__(self, name: str, bands: Sequence[Band],
                 when: Optional[Callable[[ScoreContext], bool]] = None):
        self.bands = list(bands)
        self.when = when
        super().__init__(name, self._match)

    def _match(self, ctx: ScoreContext) -> Optional[RuleOutcome]:
        if self.when is not None and not self.when(ctx):
            return None
        for band in self.bands:
            if band.test(ctx):
                return RuleOutcome(band.delta, _render(band.signal, ctx))
        return None


def fixed(delta: float, test: Callable[[ScoreContext], bool], name: str, signal: Signal = None) -> BandRule:
    """Single-band rule."""
    return BandRule(name, [Band(test, delta, signal)])


def fold(rules: Sequence[ScoreRule], ctx: ScoreContext) -> Tuple[float, List[str]]:
    """Sum rule deltas in order and collect their signals."""
    total = 0.0
    signals: List[str] = []
    for rule in rules:
        outcome = rule.apply(ctx)
        if outcome.delta:
            logger.debug(f"{ctx.candidate.symbol} {rule.name}: {outcome.delta:+g}")
        total += outcome.delta
        if outcome.signal:
            signals.append(outcome.signal)
    return total, signals
