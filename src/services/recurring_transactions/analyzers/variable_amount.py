"""
Variable-amount fallback analyzer.

Handles merchants whose bills differ materially every cycle (utilities,
metered services), so that neither exact nor similar amount grouping finds
a cluster. The cadence is inferred from the whole segment and the amount is
summarised by its median.
"""

import logging
from datetime import date
from typing import List, Optional

from models.transaction import Transaction
from services.recurring_transactions.analyzers.cadence import CadenceAnalyzer
from services.recurring_transactions.analyzers.confidence import ConfidenceScoreCalculator
from services.recurring_transactions.analyzers.retail import RetailProfile, RetailSuppressionAnalyzer
from services.recurring_transactions.analyzers.validation import PatternValidator
from services.recurring_transactions.config import VariableAmountConfig
from services.recurring_transactions.grouping import PatternCandidate
from services.recurring_transactions.statistics import amount_variance, coefficient_of_variation, median

logger = logging.getLogger(__name__)


class VariableAmountAnalyzer:
    """Looks for a cadence-only pattern across a whole segment."""

    def __init__(
        self,
        cadence_analyzer: CadenceAnalyzer,
        validator: PatternValidator,
        confidence_calculator: ConfidenceScoreCalculator,
        retail_analyzer: RetailSuppressionAnalyzer,
        config: Optional[VariableAmountConfig] = None
    ):
        self.cadence_analyzer = cadence_analyzer
        self.validator = validator
        self.confidence_calculator = confidence_calculator
        self.retail_analyzer = retail_analyzer
        self.config = config or VariableAmountConfig()

    def is_utility_like(self, cv: float) -> bool:
        low, high = self.config.utility_cv_band
        return low <= cv <= high

    def analyze(self, merchant_name: str, segment: List[Transaction], now: date) -> Optional[PatternCandidate]:
        """
        Attempt a cadence-only pattern over the segment.

        Returns:
            PatternCandidate, or None when no acceptable pattern exists
        """
        if len(segment) < self.config.min_occurrences:
            return None

        cadence = self.cadence_analyzer.infer(segment, evidence_pool="variable_amount")
        if cadence is None:
            return None

        validation = self.validator.validate(segment, cadence, check_amounts=False)
        if not validation.valid:
            logger.debug(f"Variable-amount candidate {merchant_name!r} rejected: {'; '.join(validation.reasons)}")
            return None

        confidence = self.confidence_calculator.score(segment, cadence, validation)
        if not self.confidence_calculator.is_confident(confidence):
            return None
        if not self.confidence_calculator.is_recent(segment[-1].date, cadence, now):
            return None

        amounts = [float(t.amount) for t in segment]
        expected = median(amounts)
        variance = amount_variance(amounts, expected)
        cv = coefficient_of_variation(amounts, expected)

        profile = RetailProfile(
            expected_amount=expected,
            amount_variance=variance,
            occurrence_count=len(segment),
            frequency=cadence.frequency,
            cadence=cadence,
        )
        retail_score = self.retail_analyzer.retail_score(merchant_name, profile)
        if retail_score > self.retail_analyzer.config.max_retail_score and not self.is_utility_like(cv):
            logger.debug(
                f"Variable-amount candidate {merchant_name!r} suppressed: "
                f"retail score {retail_score:.2f}, cv {cv:.2f}"
            )
            return None

        logger.info(
            f"Variable-amount pattern for {merchant_name!r}: {cadence.frequency.value}, "
            f"median amount {expected:.2f}, cv {cv:.2f}, confidence {confidence}"
        )
        return PatternCandidate(
            transactions=list(segment),
            cadence=cadence,
            confidence_score=confidence,
            expected_amount=expected,
            amount_variance=variance,
            is_amount_variable=True,
        )
