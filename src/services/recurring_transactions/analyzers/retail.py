"""
Retail-suppression heuristic.

Repeat purchases at grocery stores, restaurants or fuel stations recur
often enough to look periodic. This analyzer scores how retail-like a
candidate is from its merchant name and its amount and interval noise,
with an override for very strong periodic signals.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from models.recurring_transaction import Cadence, RecurrenceFrequency
from services.recurring_transactions.config import RetailConfig

logger = logging.getLogger(__name__)


@dataclass
class RetailProfile:
    """Statistical shape of a candidate pattern."""
    expected_amount: float
    amount_variance: float
    occurrence_count: int
    frequency: RecurrenceFrequency
    cadence: Cadence

    @property
    def amount_cv(self) -> float:
        if self.expected_amount == 0:
            return 0.0
        return (self.amount_variance ** 0.5) / self.expected_amount


class RetailSuppressionAnalyzer:
    """Scores candidates for retail-likeness and decides whether to suppress them."""

    def __init__(self, config: Optional[RetailConfig] = None):
        self.config = config or RetailConfig()
        alternatives = "|".join(re.escape(k) for k in sorted(self.config.keywords, key=len, reverse=True))
        self._keyword_pattern = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def matches_retail_keyword(self, merchant_name: str) -> bool:
        return bool(merchant_name) and self._keyword_pattern.search(merchant_name) is not None

    def retail_score(self, merchant_name: str, profile: RetailProfile) -> float:
        """
        Score in [0, 1]; higher means more likely ordinary retail or dining.
        """
        keyword = 1.0 if self.matches_retail_keyword(merchant_name) else 0.0
        variance = min(1.0, profile.amount_cv / self.config.cv_ceiling)
        jitter = min(1.0, profile.cadence.jitter / self.config.jitter_ceiling)
        score = (
            self.config.keyword_weight * keyword +
            self.config.variance_weight * variance +
            self.config.jitter_weight * jitter
        )
        return round(score, 4)

    def has_strong_signal(self, profile: RetailProfile) -> bool:
        """Enough occurrences with very low interval jitter and amount variance."""
        return (
            profile.occurrence_count >= self.config.override_min_occurrences and
            profile.cadence.jitter < self.config.override_max_jitter and
            profile.amount_variance < self.config.override_max_variance_ratio * profile.expected_amount ** 2
        )

    def should_suppress(self, merchant_name: str, profile: RetailProfile) -> bool:
        """Suppress when retail-like, unless the periodic signal is strong."""
        if self.has_strong_signal(profile):
            return False
        score = self.retail_score(merchant_name, profile)
        if score > self.config.max_retail_score:
            logger.debug(f"Suppressing {merchant_name!r}: retail score {score:.2f}")
            return True
        return False
