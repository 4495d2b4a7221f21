"""One-candidate evaluation pipeline."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..core.enums import ScanProfile
from ..core.models import Candidate, DiscoveryResult, SocialSignals, WalletIntelligence
from ..core.policy import Policy
from ..data.normalizer import CandidateNormalizer
from ..risk.flags import FlagDetector
from .conditions import ConditionEvaluator
from .scoring import ScoringEngine

logger = logging.getLogger(__name__)


class CandidateEvaluator:
    """
    Normalize, run conditions and flags, score, and attach the results.

    Scores, signals and flags are replaced wholesale on every call; re-running
    on an unchanged candidate with the same ``now`` yields the same result.
    """

    def __init__(
        self,
        policy: Optional[Policy] = None,
        normalizer: Optional[CandidateNormalizer] = None,
        conditions: Optional[ConditionEvaluator] = None,
        scoring: Optional[ScoringEngine] = None,
        flags: Optional[FlagDetector] = None,
    ):
        self.policy = policy or Policy()
        self.normalizer = normalizer or CandidateNormalizer()
        self.conditions = conditions or ConditionEvaluator(self.policy)
        self.scoring = scoring or ScoringEngine(self.policy)
        self.flags = flags or FlagDetector(self.policy)

    def evaluate(
        self,
        raw: Union[Dict[str, Any], Candidate],
        profile: ScanProfile,
        now: datetime,
        prior_liquidity: Optional[float] = None,
        social: Optional[SocialSignals] = None,
        wallet: Optional[WalletIntelligence] = None,
    ) -> Optional[DiscoveryResult]:
        """Return the evaluated result, or None when the record has no identity."""
        if isinstance(raw, Candidate):
            social = social if social is not None else raw.social
            wallet = wallet if wallet is not None else raw.wallet_intel

        candidate = self.normalizer.normalize(raw, now)
        if candidate is None:
            return None
        if social is not None or wallet is not None:
            candidate = candidate.model_copy(update={"social": social, "wallet_intel": wallet})

        conditions = self.conditions.evaluate(candidate, profile, now)
        flags = self.flags.detect(candidate, now, prior_liquidity, social, wallet)
        scores, signals = self.scoring.score(candidate, conditions, flags, profile, now)
        candidate = candidate.model_copy(update={"scores": scores, "signals": signals, "flags": flags})

        passed = sum(1 for c in conditions if c.passed)
        return DiscoveryResult(
            candidate=candidate,
            conditions=conditions,
            conditions_passed=passed,
            conditions_total=len(conditions),
            qualifies=self.conditions.qualifies(conditions, profile, candidate),
            profile=profile,
        )
