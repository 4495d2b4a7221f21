"""Reporting module: evidence-only explanations."""

from .explainer import (
    explain_candidate,
    explain_scores,
    explain_flags,
    explain_exit_signal,
    explain_position,
    brief_summary,
    radar_summary,
    format_key,
    format_value,
    format_number,
    format_duration,
)

__all__ = [
    "explain_candidate",
    "explain_scores",
    "explain_flags",
    "explain_exit_signal",
    "explain_position",
    "brief_summary",
    "radar_summary",
    "format_key",
    "format_value",
    "format_number",
    "format_duration",
]
