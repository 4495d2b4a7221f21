"""Position tracking and the exit state machine.

Positions move ``active -> trimmed | exited | rugged``. Non-active positions
are frozen: later updates are ignored and nothing escalates automatically.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..core.enums import (
    ACTION_PRIORITY, ExitAction, ExitReason, FlagSeverity, FlagType,
    PositionStatus, SignalConfidence,
)
from ..core.models import Candidate, ExitSignal, Flag, TrackedPosition, WalletIntelligence
from ..core.policy import Policy
from .store import PositionStore

logger = logging.getLogger(__name__)

MOMENTUM_MIN_TXNS = 50
SMART_MONEY_DROP_POINTS = 20
TRAILING_WARNING_FRACTION = 0.6
LIQUIDITY_WARNING_FRACTION = 0.5


def _signal(action: ExitAction, reason: ExitReason, confidence: SignalConfidence,
            now: datetime, explanation: str, **evidence) -> ExitSignal:
    return ExitSignal(
        signal=action,
        reason=reason,
        confidence=confidence,
        timestamp=now,
        evidence=evidence,
        explanation=explanation,
    )


class PositionTracker:
    """
    Tracks positions and emits HOLD / TRIM / EXIT signals.

    Each update evaluates six independent triggers in a fixed order (profit
    targets, trailing stop, liquidity drop, momentum reversal, smart-money
    exit, hard flag) and returns the highest-priority result. Ties keep the
    evaluation order.
    """

    def __init__(self, store: Optional[PositionStore] = None, policy: Optional[Policy] = None):
        self.store = store if store is not None else PositionStore()
        self.policy = policy or Policy()
        self._checks: List[Callable[..., Optional[ExitSignal]]] = [
            self._check_profit_targets,
            self._check_trailing_stop,
            self._check_liquidity_drop,
            self._check_momentum_reversal,
            self._check_smart_money_exit,
            self._check_hard_flags,
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def track(self, candidate: Candidate, now: datetime) -> TrackedPosition:
        """Open a position at the current snapshot.

        Tracking a token that is already tracked returns the existing
        position unchanged; call :meth:`stop_tracking` first to reset it.
        """
        key = candidate.key
        async with self.store.state.lock_position(key):
            existing = self.store.get(key)
            if existing is not None:
                logger.info(f"{candidate.symbol} already tracked ({existing.status.value})")
                return existing

            position = TrackedPosition(
                id=key,
                candidate=candidate,
                entry_price=candidate.price_usd,
                entry_time=now,
                entry_liquidity=candidate.liquidity,
                current_price=candidate.price_usd,
                current_liquidity=candidate.liquidity,
                current_multiple=1.0,
                peak_price=candidate.price_usd,
                peak_multiple=1.0,
                peak_time=now,
                exit_signal=_signal(
                    ExitAction.HOLD, ExitReason.MANUAL, SignalConfidence.MEDIUM, now,
                    "Position just opened",
                ),
            )
            await self.store.save(position)
            await self.store.record_liquidity(key, now, candidate.liquidity,
                                              self.policy.liquidity_history_seconds)

        logger.info(f"Tracking {candidate.symbol} on {candidate.chain.value} at ${candidate.price_usd:.8g}")
        return position

    async def update(self, candidate: Candidate, now: datetime,
                     wallet: Optional[WalletIntelligence] = None) -> Optional[ExitSignal]:
        """
        Apply a fresh snapshot to an active position.

        Returns:
            The winning signal, a HOLD/NO_TRIGGER signal when nothing fired,
            or None when the position is unknown or no longer active.
        """
        key = candidate.key
        async with self.store.state.lock_position(key):
            position = self.store.get(key)
            if position is None or not position.is_active:
                return None

            multiple = candidate.price_usd / position.entry_price if position.entry_price > 0 else 0.0
            changes = {
                "candidate": candidate,
                "current_price": candidate.price_usd,
                "current_liquidity": candidate.liquidity,
                "current_multiple": multiple,
            }
            if multiple > position.peak_multiple:
                changes.update(peak_price=candidate.price_usd, peak_multiple=multiple, peak_time=now)
            position = position.model_copy(update=changes)

            await self.store.record_liquidity(key, now, candidate.liquidity,
                                              self.policy.liquidity_history_seconds)
            if wallet is not None:
                await self.store.record_wallet(key, wallet, self.policy.wallet_history_size)

            fired = [s for s in (check(position, now, wallet) for check in self._checks) if s is not None]
            if not fired:
                await self.store.save(position)
                return _signal(ExitAction.HOLD, ExitReason.NO_TRIGGER, SignalConfidence.LOW, now,
                               "No exit trigger fired", current_multiple=multiple)

            # Stable sort keeps evaluation order among equal priorities
            winner = sorted(fired, key=lambda s: ACTION_PRIORITY[s.signal], reverse=True)[0]
            position = position.model_copy(update={
                "exit_signal": winner,
                "exit_history": position.exit_history + [winner],
                "status": self._status_for(winner, position),
            })
            await self.store.save(position)

        if winner.signal != ExitAction.HOLD:
            logger.info(f"{candidate.symbol}: {winner.signal.value} ({winner.reason.value}) -> {position.status.value}")
        return winner

    async def mark_missing(self, position_id: str, now: datetime) -> Optional[ExitSignal]:
        """Move an active position whose pair vanished upstream to ``rugged``."""
        async with self.store.state.lock_position(position_id):
            position = self.store.get(position_id)
            if position is None or not position.is_active:
                return None

            flag = Flag(
                type=FlagType.LIQUIDITY_REMOVED,
                severity=FlagSeverity.HARD,
                message="Pair no longer found upstream",
                evidence={"previous_liquidity": position.current_liquidity, "current_liquidity": 0.0},
                detected_at=now,
            )
            signal = _signal(
                ExitAction.EXIT, ExitReason.HARD_FLAG_DETECTED, SignalConfidence.HIGH, now,
                "Critical flag detected: pair no longer found upstream",
                flags=[flag.type.value],
                previous_liquidity=position.current_liquidity,
            )
            candidate = position.candidate.model_copy(update={"flags": position.candidate.flags + [flag]})
            position = position.model_copy(update={
                "candidate": candidate,
                "current_liquidity": 0.0,
                "exit_signal": signal,
                "exit_history": position.exit_history + [signal],
                "status": PositionStatus.RUGGED,
            })
            await self.store.save(position)

        logger.warning(f"{candidate.symbol}: pair missing upstream, marked rugged")
        return signal

    async def stop_tracking(self, position_id: str) -> bool:
        async with self.store.state.lock_position(position_id):
            removed = await self.store.remove(position_id)
        self.store.state.forget_position(position_id)
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        return self.store.get(position_id)

    def get_positions(self) -> List[TrackedPosition]:
        return self.store.all()

    def get_active_positions(self) -> List[TrackedPosition]:
        return [p for p in self.store.all() if p.is_active]

    @staticmethod
    def position_summary(position: TrackedPosition) -> str:
        """One-line summary: symbol, multiple, peak, status and last signal."""
        signal = position.exit_signal
        return (
            f"[{position.status.value}] {position.candidate.symbol}: {position.current_multiple:.2f}x "
            f"(peak: {position.peak_multiple:.2f}x) | {signal.signal.value}: {signal.explanation}"
        )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    @staticmethod
    def _status_for(signal: ExitSignal, position: TrackedPosition) -> PositionStatus:
        if signal.signal == ExitAction.TRIM:
            return PositionStatus.TRIMMED
        if signal.signal == ExitAction.EXIT:
            # Any hard flag or a fully drained pool is a rug, whichever trigger won
            rugged = (
                signal.reason == ExitReason.HARD_FLAG_DETECTED
                or position.candidate.hard_flags
                or (position.entry_liquidity > 0 and position.current_liquidity <= 0)
            )
            if rugged:
                return PositionStatus.RUGGED
            return PositionStatus.EXITED
        return PositionStatus.ACTIVE

    def _check_profit_targets(self, position: TrackedPosition, now: datetime,
                              wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        info, trim, exit_ = self.policy.profit_targets
        multiple = position.current_multiple
        evidence = {
            "current_multiple": multiple,
            "entry_price": position.entry_price,
            "current_price": position.current_price,
        }

        if multiple >= exit_:
            return _signal(ExitAction.EXIT, ExitReason.PROFIT_TARGET_10X, SignalConfidence.HIGH, now,
                           f"{exit_:g}x target reached ({multiple:.1f}x). Taking profits is strongly recommended.",
                           **evidence)
        if multiple >= trim:
            return _signal(ExitAction.TRIM, ExitReason.PROFIT_TARGET_5X, SignalConfidence.HIGH, now,
                           f"{trim:g}x target reached ({multiple:.1f}x). Consider taking partial profits.",
                           **evidence)
        already_fired = any(s.reason == ExitReason.PROFIT_TARGET_2X for s in position.exit_history)
        if multiple >= info and not already_fired:
            return _signal(ExitAction.HOLD, ExitReason.PROFIT_TARGET_2X, SignalConfidence.MEDIUM, now,
                           f"{info:g}x reached ({multiple:.1f}x). In profit, watch for exit signals.",
                           **evidence)
        return None

    def _check_trailing_stop(self, position: TrackedPosition, now: datetime,
                             wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        peak = position.peak_multiple
        if peak < self.policy.trailing_stop_activation:
            return None

        drop = (peak - position.current_multiple) / peak * 100
        threshold = self.policy.trailing_stop_percent
        evidence = {
            "peak_multiple": peak,
            "current_multiple": position.current_multiple,
            "drop_from_peak": drop,
            "threshold": threshold,
        }

        if drop >= threshold:
            return _signal(ExitAction.EXIT, ExitReason.TRAILING_STOP, SignalConfidence.HIGH, now,
                           f"Trailing stop triggered. Dropped {drop:.0f}% from {peak:.1f}x peak.",
                           **evidence)
        if drop >= threshold * TRAILING_WARNING_FRACTION:
            return _signal(ExitAction.TRIM, ExitReason.TRAILING_STOP, SignalConfidence.MEDIUM, now,
                           f"Approaching trailing stop. Down {drop:.0f}% from peak.",
                           **evidence)
        return None

    def _check_liquidity_drop(self, position: TrackedPosition, now: datetime,
                              wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        window = self.policy.liquidity_drop_window
        cutoff = now - timedelta(seconds=window)
        recent = [liq for at, liq in self.store.liquidity_history(position.id) if at >= cutoff]
        if len(recent) < 2:
            return None

        start = recent[0]
        current = position.current_liquidity
        drop = (start - current) / start * 100 if start > 0 else 0.0
        threshold = self.policy.liquidity_drop_threshold
        minutes = window / 60
        evidence = {
            "start_liquidity": start,
            "current_liquidity": current,
            "drop_percent": drop,
            "window_minutes": minutes,
        }

        if drop >= threshold:
            return _signal(ExitAction.EXIT, ExitReason.LIQUIDITY_DROP, SignalConfidence.HIGH, now,
                           f"Liquidity dropped {drop:.0f}% in {minutes:.0f} minutes. Exit immediately.",
                           **evidence)
        if drop >= threshold * LIQUIDITY_WARNING_FRACTION:
            return _signal(ExitAction.TRIM, ExitReason.LIQUIDITY_DROP, SignalConfidence.MEDIUM, now,
                           f"Liquidity dropping ({drop:.0f}% in {minutes:.0f} minutes). Watch closely.",
                           **evidence)
        return None

    def _check_momentum_reversal(self, position: TrackedPosition, now: datetime,
                                 wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        candidate = position.candidate
        if candidate.total_txns < MOMENTUM_MIN_TXNS:
            return None

        buy_ratio = candidate.buy_ratio
        volume_ratio = candidate.volume_24h / candidate.fdv if candidate.fdv > 0 else 0.0
        h1 = candidate.price_change_1h

        reasons = []
        if buy_ratio < 0.4:
            reasons.append(f"Sell pressure dominates ({buy_ratio * 100:.0f}% buys)")
        if h1 < -15 and volume_ratio > 0.3:
            reasons.append(f"Price falling {h1:.0f}% 1h on volume at {volume_ratio:.2f}x valuation")
        if h1 < -30:
            reasons.append(f"Sharp price decline ({h1:.0f}% 1h)")
        if not reasons:
            return None

        evidence = {
            "buy_ratio": buy_ratio,
            "price_change_1h": h1,
            "volume_ratio": volume_ratio,
            "signals": reasons,
        }
        if len(reasons) >= 2:
            return _signal(ExitAction.EXIT, ExitReason.MOMENTUM_REVERSAL, SignalConfidence.HIGH, now,
                           f"Momentum reversal detected: {', '.join(reasons)}", **evidence)
        return _signal(ExitAction.TRIM, ExitReason.MOMENTUM_REVERSAL, SignalConfidence.MEDIUM, now,
                       f"Momentum warning: {reasons[0]}", **evidence)

    def _check_smart_money_exit(self, position: TrackedPosition, now: datetime,
                                wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        if wallet is None:
            return None
        history = self.store.wallet_history(position.id)
        if len(history) < 2:
            return None

        previous, current = history[-2], history[-1]
        old_drop = previous.old_wallet_percent - current.old_wallet_percent
        profitable_drop = previous.profitable_wallet_percent - current.profitable_wallet_percent
        if old_drop <= SMART_MONEY_DROP_POINTS and profitable_drop <= SMART_MONEY_DROP_POINTS:
            return None

        return _signal(
            ExitAction.TRIM, ExitReason.SMART_MONEY_EXIT, SignalConfidence.MEDIUM, now,
            f"Smart money reducing exposure. Old wallets: -{old_drop:.0f} pts, "
            f"profitable: -{profitable_drop:.0f} pts",
            old_wallet_drop=old_drop,
            profitable_wallet_drop=profitable_drop,
            current_old_wallet_percent=current.old_wallet_percent,
            current_profitable_wallet_percent=current.profitable_wallet_percent,
        )

    def _check_hard_flags(self, position: TrackedPosition, now: datetime,
                          wallet: Optional[WalletIntelligence]) -> Optional[ExitSignal]:
        hard = position.candidate.hard_flags
        if not hard:
            return None
        return _signal(
            ExitAction.EXIT, ExitReason.HARD_FLAG_DETECTED, SignalConfidence.HIGH, now,
            f"Critical flag detected: {'; '.join(f.message for f in hard)}",
            flags=[f.type.value for f in hard],
        )
