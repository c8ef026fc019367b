"""
Recurring Transaction Detection Service.

This module orchestrates recurring transaction detection over a snapshot of
transaction history using specialized analyzers.

## Detection Pipeline

```mermaid
graph TD
    A[Transactions] --> B[Lookback + Eligibility Filter]
    B --> C[Candidate Grouping]
    C --> D[Gap Segmentation]
    D --> E{Exact-amount groups?}
    E -->|Yes| H[CadenceAnalyzer]
    E -->|No| F{Similar-amount groups?}
    F -->|Yes| H
    F -->|No| G[VariableAmountAnalyzer]
    H --> I[PatternValidator]
    I --> J[ConfidenceScoreCalculator]
    J --> K[Recency Gate]
    K --> L[RetailSuppressionAnalyzer]
    G --> M[RecurringPatterns]
    L --> M
```

The pass is pure and deterministic: it performs no I/O and takes "now" as
a parameter. Candidate groups share no state and are analyzed independently.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from models.transaction import Transaction
from models.recurring_transaction import RecurrenceFrequency, RecurringPattern
from services.recurring_transactions.amount_grouping import CENTS, group_by_exact_amount, group_by_similar_amount
from services.recurring_transactions.analyzers import (
    CadenceAnalyzer,
    CadenceContext,
    ConfidenceScoreCalculator,
    PatternValidator,
    RetailProfile,
    RetailSuppressionAnalyzer,
    VariableAmountAnalyzer,
)
from services.recurring_transactions.config import DetectionConfig, DEFAULT_CONFIG
from services.recurring_transactions.grouping import (
    CandidateGroup,
    PatternCandidate,
    filter_lookback,
    group_candidates,
    most_recent_segment,
)
from services.recurring_transactions.scheduling import calculate_next_expected_date
from services.recurring_transactions.statistics import amount_variance, median, most_common
from utils.detection_performance import DetectionPerformanceTracker

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_MONTHS = 12


class RecurringTransactionDetectionService:
    """
    Orchestrates recurring transaction detection using specialized analyzers.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        """
        Initialize the detection service.

        Args:
            config: Optional detection configuration. If None, uses DEFAULT_CONFIG.
        """
        self.config = config or DEFAULT_CONFIG

        self.cadence_analyzer = CadenceAnalyzer(
            frequency_thresholds=self.config.frequency_thresholds,
            validation=self.config.validation,
        )
        self.validator = PatternValidator(self.config.validation)
        self.confidence_calculator = ConfidenceScoreCalculator(
            weights=self.config.confidence_weights,
            scoring=self.config.scoring,
        )
        self.retail_analyzer = RetailSuppressionAnalyzer(self.config.retail)
        self.variable_amount_analyzer = VariableAmountAnalyzer(
            cadence_analyzer=self.cadence_analyzer,
            validator=self.validator,
            confidence_calculator=self.confidence_calculator,
            retail_analyzer=self.retail_analyzer,
            config=self.config.variable_amount,
        )

    def detect_recurring_patterns(
        self,
        transactions: List[Transaction],
        lookback_months: int = DEFAULT_LOOKBACK_MONTHS,
        now: Optional[date] = None
    ) -> List[RecurringPattern]:
        """
        Detect recurring patterns in a transaction snapshot.

        Args:
            transactions: Transactions for one settlement scope
            lookback_months: Months of history to consider, ending at now
            now: Reference date (defaults to today, UTC)

        Returns:
            Detected patterns, sorted by merchant name, direction and amount
        """
        now = now or datetime.now(timezone.utc).date()

        with DetectionPerformanceTracker("recurring_transaction_detection") as tracker:
            tracker.set_transaction_count(len(transactions))

            with tracker.stage("filtering"):
                in_window = filter_lookback(transactions, lookback_months, now)

            with tracker.stage("grouping"):
                groups = group_candidates(
                    in_window,
                    self.config.segmentation,
                    strict_integrity=self.config.strict_integrity,
                )
                tracker.set_groups_identified(len(groups))

            with tracker.stage("pattern_analysis"):
                patterns: List[RecurringPattern] = []
                for group in groups:
                    patterns.extend(self.analyze_group(group, now))
                patterns = self._deduplicate(patterns)
                tracker.set_patterns_detected(len(patterns))

        logger.info(
            f"Detection complete: {len(patterns)} patterns from {len(groups)} candidate groups "
            f"({len(in_window)} of {len(transactions)} transactions in window)"
        )
        return patterns

    def analyze_group(self, group: CandidateGroup, now: date) -> List[RecurringPattern]:
        """
        Run the per-group pipeline: segment, amount grouping, analysis.
        """
        segment = most_recent_segment(group.transactions, self.config.segmentation)
        if segment is None:
            return []

        merchant_name = group.merchant_name
        amount_groups = group_by_exact_amount(segment, self.config.amount_grouping)
        strategy = "exact"
        if not amount_groups:
            amount_groups = group_by_similar_amount(segment, self.config.amount_grouping)
            strategy = "similar"

        if not amount_groups:
            candidate = self.variable_amount_analyzer.analyze(merchant_name, segment, now)
            return [self._build_pattern(group, candidate)] if candidate else []

        context = CadenceContext(candidate_group=group.transactions, segment=segment)
        patterns = []
        for amount_group in amount_groups:
            candidate = self.evaluate_amount_group(merchant_name, amount_group, context, now)
            if candidate is not None:
                patterns.append(self._build_pattern(group, candidate))

        logger.debug(
            f"{merchant_name!r}: {len(amount_groups)} {strategy}-amount groups, "
            f"{len(patterns)} accepted"
        )
        return patterns

    def evaluate_amount_group(
        self,
        merchant_name: str,
        amount_group: List[Transaction],
        context: CadenceContext,
        now: date
    ) -> Optional[PatternCandidate]:
        """
        Infer, validate, score, recency-gate and retail-check one amount group.
        """
        cadence = self.cadence_analyzer.infer_for_group(amount_group, context)
        if cadence is None:
            logger.debug(f"{merchant_name!r}: no cadence for group of {len(amount_group)}")
            return None

        validation = self.validator.validate(amount_group, cadence)
        if not validation.valid:
            logger.debug(f"{merchant_name!r}: rejected, {'; '.join(validation.reasons)}")
            return None

        confidence = self.confidence_calculator.score(amount_group, cadence, validation)
        if not self.confidence_calculator.is_confident(confidence):
            logger.debug(f"{merchant_name!r}: confidence {confidence} below threshold")
            return None

        if not self.confidence_calculator.is_recent(amount_group[-1].date, cadence, now):
            logger.debug(f"{merchant_name!r}: last occurrence {amount_group[-1].date} is stale")
            return None

        amounts = [float(t.amount) for t in amount_group]
        expected = median(amounts)
        variance = amount_variance(amounts, expected)
        profile = RetailProfile(
            expected_amount=expected,
            amount_variance=variance,
            occurrence_count=len(amount_group),
            frequency=cadence.frequency,
            cadence=cadence,
        )
        if self.retail_analyzer.should_suppress(merchant_name, profile):
            return None

        return PatternCandidate(
            transactions=amount_group,
            cadence=cadence,
            confidence_score=confidence,
            expected_amount=expected,
            amount_variance=variance,
        )

    def _build_pattern(self, group: CandidateGroup, candidate: PatternCandidate) -> RecurringPattern:
        transactions = candidate.transactions
        latest = transactions[-1]
        cadence = candidate.cadence

        interval = 1
        if cadence.frequency == RecurrenceFrequency.CUSTOM:
            interval = max(1, round(cadence.median_interval))

        category_id = most_common(
            category_id for txn in transactions for category_id in txn.budget_category_ids
        )

        return RecurringPattern(
            userId=latest.user_id,
            merchantGroupId=group.merchant_group_id,
            merchantName=group.merchant_name,
            frequency=cadence.frequency,
            expectedAmount=Decimal(str(candidate.expected_amount)).quantize(CENTS),
            amountVariance=Decimal(str(round(candidate.amount_variance, 4))),
            transactionType=group.transaction_type,
            categoryId=category_id,
            accountId=latest.account_id,
            creditCardId=latest.credit_card_id,
            confidenceScore=candidate.confidence_score,
            occurrenceCount=len(transactions),
            lastOccurrenceDate=latest.date,
            nextExpectedDate=calculate_next_expected_date(
                latest.date, cadence.frequency, interval, cadence.day_of_month, cadence.day_of_week
            ),
            transactionIds=[t.transaction_id for t in transactions],
            dayOfMonth=cadence.day_of_month,
            dayOfWeek=cadence.day_of_week,
            interval=interval,
            medianInterval=cadence.median_interval,
            isAmountVariable=candidate.is_amount_variable,
        )

    def _deduplicate(self, patterns: List[RecurringPattern]) -> List[RecurringPattern]:
        """Keep the most confident pattern per merchant, direction, account and amount."""
        best: Dict[Tuple[str, str, str, Decimal], RecurringPattern] = {}
        for pattern in patterns:
            key = (
                str(pattern.merchant_group_id),
                pattern.transaction_type.value,
                str(pattern.account_scope),
                pattern.expected_amount,
            )
            current = best.get(key)
            if current is None or pattern.confidence_score > current.confidence_score:
                best[key] = pattern
        return sorted(
            best.values(),
            key=lambda p: (p.merchant_name, p.transaction_type.value, p.expected_amount, str(p.merchant_group_id))
        )


def detect_recurring_patterns(
    transactions: List[Transaction],
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS,
    now: Optional[date] = None,
    config: Optional[DetectionConfig] = None
) -> List[RecurringPattern]:
    """Detect recurring patterns with a one-off service instance."""
    return RecurringTransactionDetectionService(config).detect_recurring_patterns(
        transactions, lookback_months=lookback_months, now=now
    )
