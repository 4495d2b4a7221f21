"""Core enumerations for the token radar."""

from enum import Enum


class Chain(str, Enum):
    """Supported chains."""
    BASE = "base"
    ETHEREUM = "ethereum"
    BSC = "bsc"
    SOLANA = "solana"


SUPPORTED_CHAINS = [Chain.BASE, Chain.ETHEREUM, Chain.BSC, Chain.SOLANA]
EVM_CHAINS = {Chain.BASE, Chain.ETHEREUM, Chain.BSC}


class ScanProfile(str, Enum):
    """Condition/weight profiles."""
    DISCOVERY = "discovery"
    GEM = "gem"


class FlagSeverity(str, Enum):
    """Flag severities."""
    HARD = "hard"
    SOFT = "soft"


class FlagType(str, Enum):
    """Risk flag types."""
    # Hard flags disqualify a candidate
    LIQUIDITY_REMOVED = "LIQUIDITY_REMOVED"
    HONEYPOT_SUSPECTED = "HONEYPOT_SUSPECTED"
    TRADING_DISABLED = "TRADING_DISABLED"
    EXTREME_CONCENTRATION = "EXTREME_CONCENTRATION"
    # Soft flags are advisory
    FEE_ON_TRANSFER = "FEE_ON_TRANSFER"
    WASH_TRADING = "WASH_TRADING"
    HYPE_NO_LIQUIDITY = "HYPE_NO_LIQUIDITY"
    BOT_HEAVY_ACTIVITY = "BOT_HEAVY_ACTIVITY"
    RAPID_PUMP = "RAPID_PUMP"


HARD_FLAG_TYPES = {
    FlagType.LIQUIDITY_REMOVED,
    FlagType.HONEYPOT_SUSPECTED,
    FlagType.TRADING_DISABLED,
    FlagType.EXTREME_CONCENTRATION,
}


class ExitAction(str, Enum):
    """Exit signal actions."""
    HOLD = "HOLD"
    TRIM = "TRIM"
    EXIT = "EXIT"


ACTION_PRIORITY = {
    ExitAction.EXIT: 3,
    ExitAction.TRIM: 2,
    ExitAction.HOLD: 1,
}


class ExitReason(str, Enum):
    """What produced an exit signal."""
    PROFIT_TARGET_2X = "PROFIT_TARGET_2X"
    PROFIT_TARGET_5X = "PROFIT_TARGET_5X"
    PROFIT_TARGET_10X = "PROFIT_TARGET_10X"
    TRAILING_STOP = "TRAILING_STOP"
    LIQUIDITY_DROP = "LIQUIDITY_DROP"
    MOMENTUM_REVERSAL = "MOMENTUM_REVERSAL"
    SMART_MONEY_EXIT = "SMART_MONEY_EXIT"
    HARD_FLAG_DETECTED = "HARD_FLAG_DETECTED"
    MANUAL = "MANUAL"
    NO_TRIGGER = "NO_TRIGGER"


class SignalConfidence(str, Enum):
    """Exit signal confidence."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PositionStatus(str, Enum):
    """Tracked position states."""
    ACTIVE = "active"
    TRIMMED = "trimmed"
    EXITED = "exited"
    RUGGED = "rugged"


class Sentiment(str, Enum):
    """Social sentiment buckets."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"
