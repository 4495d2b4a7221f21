"""Scanner module: conditions, scoring rules and discovery."""

from .conditions import ConditionEvaluator
from .rules import Band, BandRule, RuleOutcome, ScoreContext, ScoreRule, fold
from .scoring import ScoringEngine, clamp, social_boost
from .evaluator import CandidateEvaluator
from .discovery import DiscoveryOrchestrator

__all__ = [
    "ConditionEvaluator",
    "Band",
    "BandRule",
    "RuleOutcome",
    "ScoreContext",
    "ScoreRule",
    "fold",
    "ScoringEngine",
    "clamp",
    "social_boost",
    "CandidateEvaluator",
    "DiscoveryOrchestrator",
]
