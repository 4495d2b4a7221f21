"""Evidence-only explanations for candidates, flags, exit signals and positions.

Every line is built from computed metrics or recorded evidence. Inputs that
are missing are rendered as "unknown".
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from ..core.models import (
    Candidate, DiscoveryResult, EvidenceValue, ExitSignal, Flag, Scores, TrackedPosition,
)

UNKNOWN = "unknown"


# ----------------------------------------------------------------------
# Formatting helpers
# ----------------------------------------------------------------------

def format_key(key: str) -> str:
    """``drop_percent`` -> ``Drop Percent``."""
    return " ".join(word.capitalize() for word in key.split("_") if word)


# Evidence keys holding US dollar amounts; everything else is unitless
USD_KEYS = frozenset({
    "liquidity", "start_liquidity", "previous_liquidity", "current_liquidity",
    "fdv", "volume_24h", "entry_price", "current_price",
})
COUNT_KEYS = frozenset({"buys", "sells", "total_txns", "total_buyers"})


def _is_count(key: Optional[str]) -> bool:
    return key is not None and (key in COUNT_KEYS or key.endswith("_count"))


def format_value(value: EvidenceValue, key: Optional[str] = None) -> str:
    """Render one evidence value. Only keys known to hold dollars get a ``$``."""
    if isinstance(value, list):
        return ", ".join(value)
    if isinstance(value, str):
        return value
    if _is_count(key):
        return f"{value:,.0f}"
    if 0 < abs(value) < 0.01:
        text = f"{value:.2e}"
    else:
        text = format_number(value)
    return f"${text}" if key in USD_KEYS else text


def format_number(num: float) -> str:
    magnitude = abs(num)
    if magnitude >= 1_000_000_000:
        return f"{num / 1_000_000_000:.2f}B"
    if magnitude >= 1_000_000:
        return f"{num / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{num / 1_000:.2f}K"
    return f"{num:.2f}"


def format_duration(delta: timedelta) -> str:
    seconds = max(0, int(delta.total_seconds()))
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def _grade(score: float) -> str:
    if score >= 80:
        return "strong"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "weak"


def _risk_label(risk: float) -> str:
    if risk >= 70:
        return "Lower risk"
    if risk >= 50:
        return "Medium risk"
    return "Higher risk"


def _signed(value: float, suffix: str = "%") -> str:
    return f"{'+' if value >= 0 else ''}{value:.1f}{suffix}"


# ----------------------------------------------------------------------
# Candidates
# ----------------------------------------------------------------------

def explain_scores(scores: Scores) -> str:
    return "\n".join([
        f"- **Momentum**: {scores.momentum:g}/100 ({_grade(scores.momentum)})",
        f"- **Liquidity**: {scores.liquidity:g}/100 ({_grade(scores.liquidity)})",
        f"- **Risk**: {scores.risk:g}/100 ({_risk_label(scores.risk).lower()}, higher = safer)",
        f"- **Confidence**: {scores.confidence:g}/100 ({_grade(scores.confidence)})",
        f"- **Composite**: {scores.composite:g}/100",
    ])


def explain_flags(flags: Sequence[Flag]) -> str:
    """Hard flags with their full evidence, then soft flags."""
    if not flags:
        return "No flags detected."

    parts: List[str] = []
    hard = [f for f in flags if f.is_hard]
    soft = [f for f in flags if not f.is_hard]

    if hard:
        parts.append("**Critical Flags:**")
        for flag in hard:
            parts.append(f"- **{flag.type.value}**: {flag.message}")
            if flag.evidence:
                evidence = ", ".join(f"{format_key(k)}: {format_value(v, k)}" for k, v in flag.evidence.items())
                parts.append(f"  Evidence: {evidence}")

    if soft:
        parts.append("**Warnings:**")
        for flag in soft:
            parts.append(f"- **{flag.type.value}**: {flag.message}")

    return "\n".join(parts)


def explain_candidate(result: DiscoveryResult) -> str:
    """Why a candidate ranked (or did not): status, scores, conditions, signals, flags."""
    candidate = result.candidate
    parts = [f"## {candidate.symbol} ({candidate.chain.value.upper()})", ""]

    if result.qualifies:
        parts.append(f"**QUALIFIED** - Passed {result.conditions_passed}/{result.conditions_total} conditions")
    else:
        parts.append(f"**DID NOT QUALIFY** - Only {result.conditions_passed}/{result.conditions_total} conditions passed")
    parts.append("")

    parts += ["### Scores", explain_scores(candidate.scores), ""]

    parts.append("### Conditions")
    for condition in result.conditions:
        mark = "[x]" if condition.passed else "[ ]"
        parts.append(f"- {mark} **{condition.name}**: {condition.evidence}")
    parts.append("")

    if candidate.signals:
        parts.append("### Signals")
        parts += [f"- {signal}" for signal in candidate.signals]
        parts.append("")

    if candidate.flags:
        parts += ["### Flags", explain_flags(candidate.flags)]

    return "\n".join(parts).rstrip()


def brief_summary(candidate: Candidate) -> str:
    scores = candidate.scores
    hard = candidate.hard_flags
    if hard:
        return f"{candidate.symbol}: Score {scores.composite:g}/100 but has {len(hard)} critical flag(s)"
    return (
        f"{candidate.symbol}: Score {scores.composite:g}/100 | Momentum {scores.momentum:g} | "
        f"{_risk_label(scores.risk)}"
    )


def radar_summary(results: Sequence[DiscoveryResult], now: datetime, limit: int = 10) -> str:
    if not results:
        return "No candidates found matching criteria."

    parts = [f"# Token Radar - {len(results)} Candidate(s)", "", f"*Scanned at {now.isoformat()}*", ""]

    for rank, result in enumerate(results[:limit], start=1):
        c = result.candidate
        parts.append(f"### {rank}. {c.symbol} ({c.chain.value})")
        parts.append(f"- **Score**: {c.scores.composite:g}/100")
        parts.append(f"- **Price**: ${c.price_usd:.8f} ({_signed(c.price_change_1h)} 1h)")
        parts.append(f"- **MCap**: ${format_number(c.fdv)}" if c.fdv > 0 else f"- **MCap**: {UNKNOWN}")
        parts.append(f"- **Liquidity**: ${format_number(c.liquidity)}")
        parts.append(f"- **Volume**: ${format_number(c.volume_24h)}")
        parts.append(f"- **Conditions**: {result.conditions_passed}/{result.conditions_total} passed")
        if c.flags:
            parts.append(f"- **Flags**: {len(c.hard_flags)} critical, {len(c.soft_flags)} warning")
        parts.append("")

    parts += ["---", "*Scores are computed from market data. Higher risk scores = safer.*"]
    return "\n".join(parts)


# ----------------------------------------------------------------------
# Exits and positions
# ----------------------------------------------------------------------

def explain_exit_signal(signal: ExitSignal) -> str:
    parts = [
        f"**{signal.signal.value}** ({signal.confidence.value} confidence)",
        "",
        f"**Reason**: {signal.reason.value}",
        "",
        f"**Explanation**: {signal.explanation}",
    ]
    if signal.evidence:
        parts += ["", "**Evidence**:"]
        parts += [f"- {format_key(k)}: {format_value(v, k)}" for k, v in signal.evidence.items()]
    return "\n".join(parts)


def explain_position(position: TrackedPosition, now: datetime) -> str:
    candidate = position.candidate
    parts = [
        f"## Position: {candidate.symbol} ({candidate.chain.value.upper()})",
        "",
        f"**Status**: {position.status.value.upper()}",
        "",
        "### Performance",
        f"- Entry Price: ${position.entry_price:.8f}",
        f"- Current Price: ${position.current_price:.8f}",
        f"- Current Multiple: **{position.current_multiple:.2f}x**",
        f"- Peak Multiple: {position.peak_multiple:.2f}x",
        f"- P&L: {_signed(position.pnl_percent)}",
        "",
        "### Current Signal",
        explain_exit_signal(position.exit_signal),
        "",
        "### Liquidity",
        f"- Entry: ${position.entry_liquidity:,.0f}",
    ]

    if position.entry_liquidity > 0:
        change = (position.current_liquidity - position.entry_liquidity) / position.entry_liquidity * 100
        parts.append(f"- Current: ${position.current_liquidity:,.0f} ({_signed(change)})")
    else:
        parts.append(f"- Current: ${position.current_liquidity:,.0f} (change {UNKNOWN})")

    parts += [
        "",
        "### Timing",
        f"- Entered: {position.entry_time.isoformat()}",
        f"- Peak reached: {position.peak_time.isoformat()}",
        f"- Duration: {format_duration(now - position.entry_time)}",
    ]
    return "\n".join(parts)
