"""
Configuration classes for recurring transaction detection and tracking.

Centralizes all configuration parameters, thresholds, and weights used
in the detection pipeline and by the missed-occurrence tracker.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Tuple, Optional

from models.recurring_transaction import RecurrenceFrequency


@dataclass
class SegmentationConfig:
    """Configuration for candidate grouping and gap segmentation."""

    min_candidate_group_size: int = 3
    """Candidate groups smaller than this are discarded before segmentation."""

    min_gap_days: float = 60
    """A gap must exceed at least this many days to split a group."""

    gap_multiplier: float = 3.0
    """
    Multiple of the group's median gap that splits a group.

    The effective threshold is max(min_gap_days, gap_multiplier * median gap).
    """

    min_segment_size: int = 2
    """A most-recent segment smaller than this yields nothing."""


@dataclass
class AmountGroupingConfig:
    """Configuration for exact and similar amount grouping."""

    min_group_size: int = 3
    """Minimum transactions sharing an amount to form an amount group."""

    split_min_group_size: int = 2
    """Minimum group size when several price points coexist in a segment."""

    split_min_segment_size: int = 4
    """Segment size required before 2-transaction buckets are promoted."""

    split_min_distinct_amounts: int = 2
    """Distinct rounded amounts required before 2-transaction buckets are promoted."""

    similar_relative_tolerance: float = 0.05
    """Relative distance from the cluster anchor allowed for similar amounts."""

    similar_absolute_floor: float = 1.00
    """Absolute tolerance floor for small similar amounts."""


@dataclass
class FrequencyThresholds:
    """
    Day range thresholds for frequency classification.

    Each threshold is a tuple of (min_days, max_days) that defines
    the acceptable median interval for that frequency.
    """

    daily: Tuple[float, float] = (0.5, 1.5)
    weekly: Tuple[float, float] = (6, 8)
    biweekly: Tuple[float, float] = (12, 16)
    monthly: Tuple[float, float] = (25, 35)
    bimonthly: Tuple[float, float] = (55, 65)
    quarterly: Tuple[float, float] = (85, 95)
    yearly: Tuple[float, float] = (355, 375)

    allow_custom: bool = False
    """Label intervals that fit no bucket as custom instead of failing."""

    def to_dict(self) -> Dict[RecurrenceFrequency, Tuple[float, float]]:
        """
        Convert thresholds to a dictionary mapping frequency enum to ranges.

        Returns:
            Dictionary mapping RecurrenceFrequency to (min_days, max_days) tuple
        """
        return {
            RecurrenceFrequency.DAILY: self.daily,
            RecurrenceFrequency.WEEKLY: self.weekly,
            RecurrenceFrequency.BIWEEKLY: self.biweekly,
            RecurrenceFrequency.MONTHLY: self.monthly,
            RecurrenceFrequency.BIMONTHLY: self.bimonthly,
            RecurrenceFrequency.QUARTERLY: self.quarterly,
            RecurrenceFrequency.YEARLY: self.yearly,
        }


@dataclass
class ValidationConfig:
    """Hard checks applied to an amount group and its cadence."""

    day_of_month_tolerance: int = 3
    """Days either side of the inferred day of month that still count as on-anchor."""

    day_of_week_tolerance: int = 1
    """Weekdays either side of the inferred day of week that still count as on-anchor."""

    min_anchor_match_ratio: float = 0.6
    """Share of transactions that must sit on the anchor."""

    max_amount_cv: float = 0.25
    """Largest standard deviation relative to the expected amount."""

    max_gap_ratio: float = 3.5
    """Largest single gap as a multiple of the median interval."""

    min_pool_size: int = 3
    """Transactions an evidence pool must supply before cadence is inferred from it."""


@dataclass
class ConfidenceWeights:
    """
    Weights for multi-factor confidence score calculation.

    All weights must sum to 1.0 for proper normalization.
    """

    interval_regularity: float = 0.35
    """Weight for interval regularity (1 - mad / median interval)."""

    amount_consistency: float = 0.25
    """Weight for amount consistency (inverse relative variance)."""

    occurrences: float = 0.25
    """Weight for occurrence count, with diminishing returns."""

    anchor_consistency: float = 0.15
    """Weight for the share of transactions on the day anchor."""

    def __post_init__(self):
        """Validate that weights sum to 1.0."""
        total = (
            self.interval_regularity +
            self.amount_consistency +
            self.occurrences +
            self.anchor_consistency
        )
        if abs(total - 1.0) > 0.001:
            raise ValueError(
                f"Confidence weights must sum to 1.0, got {total}. "
                f"Weights: interval={self.interval_regularity}, "
                f"amount={self.amount_consistency}, "
                f"occurrences={self.occurrences}, "
                f"anchor={self.anchor_consistency}"
            )


@dataclass
class ScoringConfig:
    """Shape of the individual confidence factors and the acceptance cut-off."""

    occurrence_half_point: float = 3.0
    """Occurrence count at which the occurrence factor reaches 0.5."""

    amount_variance_scale: float = 100.0
    """Scale applied to variance / expected^2 before inverting."""

    min_confidence: float = 0.5
    """Patterns scoring below this are discarded."""

    recency_multiplier: float = 1.5
    """The last occurrence must be within this many median intervals of now."""

    biweekly_floor_days: float = 30
    """Recency allowance floor for biweekly cadences."""


DEFAULT_RETAIL_KEYWORDS: Tuple[str, ...] = (
    "grocery", "groceries", "supermarket", "market", "foods",
    "walmart", "target", "costco", "kroger", "safeway", "aldi", "tesco",
    "whole foods", "trader joe", "sainsbury", "lidl",
    "restaurant", "cafe", "coffee", "starbucks", "mcdonald", "burger",
    "pizza", "diner", "deli", "bakery", "bar & grill", "taco", "sushi",
    "doordash", "uber eats", "grubhub", "deliveroo",
    "fuel", "shell", "chevron", "exxon", "bp",
    "pharmacy", "cvs", "walgreens", "7-eleven", "convenience", "liquor",
    "ebay", "mart",
)


@dataclass
class RetailConfig:
    """
    Retail-suppression heuristic.

    A high score means the merchant behaves like ordinary retail or dining.
    The keyword, variance and jitter weights must sum to 1.0.
    """

    keywords: Tuple[str, ...] = DEFAULT_RETAIL_KEYWORDS
    keyword_weight: float = 0.65
    variance_weight: float = 0.20
    jitter_weight: float = 0.15

    cv_ceiling: float = 0.5
    """Amount coefficient of variation that saturates the variance factor."""

    jitter_ceiling: float = 0.5
    """Interval jitter (mad / median) that saturates the jitter factor."""

    max_retail_score: float = 0.6
    """Candidates scoring above this are discarded unless the override applies."""

    override_min_occurrences: int = 4
    override_max_jitter: float = 0.15
    override_max_variance_ratio: float = 0.01
    """Variance must stay below this fraction of expected_amount^2 for the override."""

    def __post_init__(self):
        total = self.keyword_weight + self.variance_weight + self.jitter_weight
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"Retail weights must sum to 1.0, got {total}")


@dataclass
class VariableAmountConfig:
    """Configuration for the cadence-only fallback analyzer."""

    min_occurrences: int = 4
    """Segment size required before the fallback is attempted."""

    utility_cv_band: Tuple[float, float] = (0.1, 0.4)
    """Coefficient of variation range that looks like a metered bill."""


class DetectionConfig:
    """
    Master configuration for recurring transaction detection.

    Aggregates all configuration classes into a single configuration object.
    """

    def __init__(
        self,
        segmentation: Optional[SegmentationConfig] = None,
        amount_grouping: Optional[AmountGroupingConfig] = None,
        frequency_thresholds: Optional[FrequencyThresholds] = None,
        validation: Optional[ValidationConfig] = None,
        confidence_weights: Optional[ConfidenceWeights] = None,
        scoring: Optional[ScoringConfig] = None,
        retail: Optional[RetailConfig] = None,
        variable_amount: Optional[VariableAmountConfig] = None,
        strict_integrity: bool = False
    ):
        """
        Initialize detection configuration.

        Args:
            segmentation: Grouping and gap segmentation config
            amount_grouping: Exact/similar amount grouping config
            frequency_thresholds: Frequency bucket day ranges
            validation: Hard validation checks
            confidence_weights: Confidence factor weights
            scoring: Confidence factor shape, acceptance and recency
            retail: Retail-suppression heuristic
            variable_amount: Variable-amount fallback analyzer
            strict_integrity: Raise on data-integrity violations instead of skipping
        """
        self.segmentation = segmentation or SegmentationConfig()
        self.amount_grouping = amount_grouping or AmountGroupingConfig()
        self.frequency_thresholds = frequency_thresholds or FrequencyThresholds()
        self.validation = validation or ValidationConfig()
        self.confidence_weights = confidence_weights or ConfidenceWeights()
        self.scoring = scoring or ScoringConfig()
        self.retail = retail or RetailConfig()
        self.variable_amount = variable_amount or VariableAmountConfig()
        self.strict_integrity = strict_integrity


@dataclass
class TrackerConfig:
    """Configuration for the scheduled missed-occurrence tracker."""

    grace_window_days: int = 3
    """Days past the expected date before an occurrence is checked."""

    match_window_days: int = 3
    """Days either side of the expected date a real transaction may land."""

    amount_absolute_tolerance: float = 5.00
    amount_relative_tolerance: float = 0.05
    """A match must be within max(absolute, relative * expected) of the expected amount."""

    deactivate_after_misses: int = 2
    """Missed streak at which a record is deactivated."""

    reminder_lookahead_days: int = 7
    """Records due within this many days are evaluated for reminders."""

    default_reminder_days_before: int = 2
    """Reminder lead time when the user has not configured one."""

    match_lookback_months: int = 3
    """History fetched when searching for matching transactions."""

    max_records_per_run: Optional[int] = 500
    """Records beyond this count are deferred to the next run."""

    max_run_seconds: Optional[float] = None
    """Wall-clock budget per run; remaining records are deferred."""

    variable_amount_ratio: float = 0.10
    """Standard deviation share above which a saved pattern is flagged variable."""

    def amount_tolerance(
        self,
        expected_amount: Decimal,
        amount_variance: Decimal = Decimal("0"),
        is_variable: bool = False
    ) -> Decimal:
        """max(absolute, relative * expected), widened to two deviations for variable amounts."""
        tolerance = max(
            Decimal(str(self.amount_absolute_tolerance)),
            expected_amount * Decimal(str(self.amount_relative_tolerance)),
        )
        if is_variable:
            tolerance = max(tolerance, 2 * amount_variance.sqrt())
        return tolerance


# Default configuration instances
DEFAULT_CONFIG = DetectionConfig()
DEFAULT_TRACKER_CONFIG = TrackerConfig()

MIN_CONFIDENCE = DEFAULT_CONFIG.scoring.min_confidence
FREQUENCY_THRESHOLDS = DEFAULT_CONFIG.frequency_thresholds.to_dict()
