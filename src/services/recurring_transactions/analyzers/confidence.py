"""
Confidence score calculator for recurring transaction detection.

Calculates multi-factor confidence scores and applies the recency gate.
"""

import logging
from datetime import date
from typing import List, Optional

from models.transaction import Transaction
from models.recurring_transaction import Cadence, RecurrenceFrequency
from services.recurring_transactions.analyzers.validation import ValidationResult
from services.recurring_transactions.config import ConfidenceWeights, ScoringConfig

logger = logging.getLogger(__name__)


class ConfidenceScoreCalculator:
    """
    Calculates multi-factor confidence scores for recurring patterns.

    Considers:
    - Interval regularity (1 - mad / median interval)
    - Amount consistency (inverse of relative amount variance)
    - Occurrence count (more occurrences = higher confidence, diminishing returns)
    - Anchor consistency (share of transactions on the day anchor)
    """

    def __init__(self, weights: Optional[ConfidenceWeights] = None, scoring: Optional[ScoringConfig] = None):
        """
        Initialize the confidence score calculator.

        Args:
            weights: Optional custom weights for scoring factors.
                    If None, uses default weights (35%, 25%, 25%, 15%)
            scoring: Optional factor shape and acceptance settings
        """
        self.weights = weights or ConfidenceWeights()
        self.scoring = scoring or ScoringConfig()

    def score(self, group: List[Transaction], cadence: Cadence, validation: ValidationResult) -> float:
        """
        Calculate the confidence score (0.0-1.0).

        Args:
            group: Transactions in the amount group
            cadence: Inferred cadence
            validation: Result of validating the group

        Returns:
            Confidence score rounded to two places
        """
        interval_regularity = self.interval_regularity(cadence)
        amount_consistency = self.amount_consistency(validation.relative_variance)
        occurrences = self.occurrence_score(len(group))

        confidence = (
            self.weights.interval_regularity * interval_regularity +
            self.weights.amount_consistency * amount_consistency +
            self.weights.occurrences * occurrences +
            self.weights.anchor_consistency * validation.anchor_consistency
        )
        return round(min(1.0, max(0.0, confidence)), 2)

    def interval_regularity(self, cadence: Cadence) -> float:
        return min(1.0, max(0.0, 1.0 - cadence.jitter))

    def amount_consistency(self, relative_variance: float) -> float:
        return 1.0 / (1.0 + self.scoring.amount_variance_scale * relative_variance)

    def occurrence_score(self, count: int) -> float:
        return count / (count + self.scoring.occurrence_half_point)

    def is_confident(self, score: float) -> bool:
        return score >= self.scoring.min_confidence

    def is_recent(self, last_date: date, cadence: Cadence, now: date) -> bool:
        """
        Check that the most recent occurrence is not stale.

        The allowance is recency_multiplier median intervals, with a floor for
        biweekly cadences so one skipped cycle is tolerated.
        """
        allowance = self.scoring.recency_multiplier * cadence.median_interval
        if cadence.frequency == RecurrenceFrequency.BIWEEKLY:
            allowance = max(allowance, self.scoring.biweekly_floor_days)
        return (now - last_date).days <= allowance
