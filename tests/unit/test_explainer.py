"""Unit tests for explanation rendering."""

import pytest
from datetime import timedelta

from token_radar.core.enums import (
    ExitAction, ExitReason, FlagSeverity, FlagType, ScanProfile, SignalConfidence,
)
from token_radar.core.models import ExitSignal, Flag
from token_radar.positions.tracker import PositionTracker
from token_radar.reporting.explainer import (
    brief_summary, explain_candidate, explain_exit_signal, explain_flags, explain_position,
    format_duration, format_key, format_number, format_value, radar_summary,
)
from token_radar.scanner.evaluator import CandidateEvaluator


def _flag(now, flag_type, severity, message, **evidence):
    return Flag(type=flag_type, severity=severity, message=message, evidence=evidence, detected_at=now)


class TestFormatting:

    def test_format_key(self):
        assert format_key("drop_percent") == "Drop Percent"
        assert format_key("start_liquidity") == "Start Liquidity"

    @pytest.mark.parametrize("value, key, expected", [
        (2_500_000, "liquidity", "$2.50M"),
        (40_000, "start_liquidity", "$40.00K"),
        (500, "fdv", "$500.00"),
        (0.00012, "entry_price", "$1.20e-04"),
        (25.0, "drop_percent", "25.00"),
        (0, None, "0.00"),
        ("already", None, "already"),
        (["A", "B"], "flags", "A, B"),
    ])
    def test_format_value(self, value, key, expected):
        assert format_value(value, key) == expected

    @pytest.mark.parametrize("value, key, expected", [
        (2_000, "total_txns", "2,000"),
        (1_500, "total_buyers", "1,500"),
        (12, "old_wallet_count", "12"),
        (4_500, "turnover", "4.50K"),
        (4_500, None, "4.50K"),
    ])
    def test_large_counts_and_ratios_carry_no_currency(self, value, key, expected):
        assert format_value(value, key) == expected

    def test_format_number(self):
        assert format_number(1_500_000_000) == "1.50B"
        assert format_number(1_500) == "1.50K"
        assert format_number(12) == "12.00"

    @pytest.mark.parametrize("delta, expected", [
        (timedelta(seconds=42), "42s"),
        (timedelta(minutes=5), "5m"),
        (timedelta(hours=2, minutes=30), "2h 30m"),
        (timedelta(days=1, hours=3), "1d 3h"),
        (timedelta(seconds=-5), "0s"),
    ])
    def test_format_duration(self, delta, expected):
        assert format_duration(delta) == expected


class TestFlagExplanations:

    def test_no_flags(self):
        assert explain_flags([]) == "No flags detected."

    def test_hard_before_soft_with_evidence(self, now):
        flags = [
            _flag(now, FlagType.RAPID_PUMP, FlagSeverity.SOFT, "Rapid pump", price_change_1h=250.0),
            _flag(now, FlagType.HONEYPOT_SUSPECTED, FlagSeverity.HARD, "Few sells", sells=5.0, buys=300.0),
        ]

        text = explain_flags(flags)

        assert text.index("**Critical Flags:**") < text.index("**Warnings:**")
        assert "Evidence: Sells: 5, Buys: 300" in text
        assert "- **RAPID_PUMP**: Rapid pump" in text


class TestCandidateExplanations:

    def setup_method(self):
        self.evaluator = CandidateEvaluator()

    def test_qualified_candidate(self, make_record, now):
        result = self.evaluator.evaluate(make_record(), ScanProfile.DISCOVERY, now)

        text = explain_candidate(result)

        assert text.startswith("## TEST (BASE)")
        assert "**QUALIFIED** - Passed 8/8 conditions" in text
        assert "- [x] **Fresh Token**: Fresh launch: 3.0 hours old" in text
        assert "### Signals" in text

    def test_unqualified_candidate(self, make_record, now):
        result = self.evaluator.evaluate(
            make_record(pair_created_at=None, fdv=0, price_change_1h=0, buys_24h=10, sells_24h=10),
            ScanProfile.DISCOVERY, now)

        text = explain_candidate(result)

        assert "**DID NOT QUALIFY**" in text
        assert "- [ ] **Fresh Token**: Pair creation time unknown" in text

    def test_brief_summary(self, make_record, now):
        clean = self.evaluator.evaluate(make_record(), ScanProfile.DISCOVERY, now).candidate
        flagged = self.evaluator.evaluate(make_record(buys_24h=300, sells_24h=5), ScanProfile.DISCOVERY, now).candidate

        assert brief_summary(clean).startswith("TEST: Score ")
        assert "| Momentum" in brief_summary(clean)
        assert brief_summary(flagged).endswith("critical flag(s)")

    def test_radar_summary(self, make_record, now):
        results = [
            self.evaluator.evaluate(make_record(), ScanProfile.DISCOVERY, now),
            self.evaluator.evaluate(make_record(address="0x" + "cd" * 20, symbol="ZERO", fdv=0),
                                    ScanProfile.DISCOVERY, now),
        ]

        text = radar_summary(results, now, limit=10)

        assert text.startswith("# Token Radar - 2 Candidate(s)")
        assert "### 1. TEST (base)" in text
        assert "- **MCap**: $200.00K" in text
        assert "- **MCap**: unknown" in text

    def test_radar_summary_empty(self, now):
        assert radar_summary([], now) == "No candidates found matching criteria."


class TestExitExplanations:

    def test_exit_signal(self, now):
        signal = ExitSignal(
            signal=ExitAction.EXIT, reason=ExitReason.LIQUIDITY_DROP, confidence=SignalConfidence.HIGH,
            timestamp=now, explanation="Liquidity dropped 50% in 10 minutes.",
            evidence={"start_liquidity": 80_000.0, "drop_percent": 50.0},
        )

        text = explain_exit_signal(signal)

        assert text.startswith("**EXIT** (high confidence)")
        assert "**Reason**: LIQUIDITY_DROP" in text
        assert "- Start Liquidity: $80.00K" in text
        assert "- Drop Percent: 50.00" in text

    def test_exit_signal_counts_are_not_dollars(self, now):
        signal = ExitSignal(
            signal=ExitAction.TRIM, reason=ExitReason.MOMENTUM_REVERSAL, confidence=SignalConfidence.MEDIUM,
            timestamp=now, explanation="Momentum weakening.",
            evidence={"total_txns": 2_000.0, "buy_ratio": 0.35, "volume_ratio": 0.4},
        )

        text = explain_exit_signal(signal)

        assert "- Total Txns: 2,000" in text
        assert "- Buy Ratio: 0.35" in text
        assert "$" not in text

    @pytest.mark.asyncio
    async def test_position(self, make_candidate, now):
        tracker = PositionTracker()
        await tracker.track(make_candidate(), now)
        await tracker.update(make_candidate(price_usd=0.002, liquidity=30_000), now + timedelta(hours=2))
        position = tracker.get_position(make_candidate().key)

        text = explain_position(position, now + timedelta(hours=3))

        assert "**Status**: ACTIVE" in text
        assert "- Current Multiple: **2.00x**" in text
        assert "- Current: $30,000 (-25.0%)" in text
        assert "- Duration: 3h 0m" in text

    @pytest.mark.asyncio
    async def test_position_without_entry_liquidity(self, make_candidate, now):
        position = await PositionTracker().track(make_candidate(liquidity=0), now)
        assert "(change unknown)" in explain_position(position, now)
