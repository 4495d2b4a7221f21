"""Risk flag module."""

from .flags import FlagDetector, has_hard_flag, count_by_severity, summarize

__all__ = ["FlagDetector", "has_hard_flag", "count_by_severity", "summarize"]
