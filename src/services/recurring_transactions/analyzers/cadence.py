"""
Cadence analyzer for recurring transaction detection.

Infers a robust cadence (median interval, MAD, discrete frequency and day
anchor) from a date-sorted amount group.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from models.transaction import Transaction
from models.recurring_transaction import Cadence, RecurrenceFrequency
from services.recurring_transactions.amount_grouping import to_cents
from services.recurring_transactions.config import FrequencyThresholds, ValidationConfig
from services.recurring_transactions.statistics import day_gaps, median, median_absolute_deviation, most_common

logger = logging.getLogger(__name__)


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def normalized_day_of_month(d: date) -> int:
    """Day of month, with the last day of any month treated as day 31."""
    return 31 if d.day == _last_day(d.year, d.month) else d.day


def days_from_month_anchor(d: date, anchor: int) -> int:
    """
    Distance in days from d to the nearest occurrence of the anchor day.

    The anchor is clamped to each month's length and the neighbouring months
    are considered, so day 1 and the 30th of the previous month are one day apart.
    """
    distances = []
    for offset in (-1, 0, 1):
        month_index = d.month - 1 + offset
        year = d.year + month_index // 12
        month = month_index % 12 + 1
        anchored = date(year, month, min(anchor, _last_day(year, month)))
        distances.append(abs((d - anchored).days))
    return min(distances)


def days_from_week_anchor(d: date, anchor: int) -> int:
    diff = (d.weekday() - anchor) % 7
    return min(diff, 7 - diff)


@dataclass
class CadenceContext:
    """Wider transaction pools available when an amount group is too small."""
    candidate_group: List[Transaction]
    segment: List[Transaction]


@dataclass(frozen=True)
class EvidencePool:
    """A named strategy selecting transactions to infer a cadence from."""
    name: str
    select: Callable[[List[Transaction], CadenceContext], List[Transaction]]


def _same_amount_in_candidate_group(group: List[Transaction], context: CadenceContext) -> List[Transaction]:
    amount = to_cents(group[0].amount)
    return [t for t in context.candidate_group if to_cents(t.amount) == amount]


def _full_candidate_group(group: List[Transaction], context: CadenceContext) -> List[Transaction]:
    return list(context.candidate_group)


def _full_segment(group: List[Transaction], context: CadenceContext) -> List[Transaction]:
    return list(context.segment)


# Tried in order for 2-transaction groups; the first pool yielding a cadence wins
DEFAULT_EVIDENCE_POOLS: Tuple[EvidencePool, ...] = (
    EvidencePool("same_amount_in_candidate_group", _same_amount_in_candidate_group),
    EvidencePool("full_candidate_group", _full_candidate_group),
    EvidencePool("full_segment", _full_segment),
)


class CadenceAnalyzer:
    """
    Infers cadence from transaction intervals.

    Uses the median interval and median absolute deviation so that a single
    late or skipped payment does not distort the result, then maps the
    median onto the configured frequency buckets.
    """

    def __init__(
        self,
        frequency_thresholds: Optional[FrequencyThresholds] = None,
        validation: Optional[ValidationConfig] = None,
        evidence_pools: Sequence[EvidencePool] = DEFAULT_EVIDENCE_POOLS
    ):
        self.frequency_thresholds = frequency_thresholds or FrequencyThresholds()
        self.validation = validation or ValidationConfig()
        self.evidence_pools = tuple(evidence_pools)
        self._buckets: Dict[RecurrenceFrequency, Tuple[float, float]] = self.frequency_thresholds.to_dict()

    def infer(self, transactions: List[Transaction], evidence_pool: str = "group") -> Optional[Cadence]:
        """
        Infer the cadence of date-sorted transactions.

        Args:
            transactions: At least two transactions, oldest first
            evidence_pool: Name recorded on the resulting cadence

        Returns:
            Cadence, or None when the median interval fits no frequency bucket
        """
        dates = [t.date for t in transactions]
        gaps = day_gaps(dates)
        if not gaps:
            return None

        median_interval = median(gaps)
        if median_interval <= 0:
            return None
        mad = median_absolute_deviation(gaps, median_interval)

        frequency = self.match_frequency(median_interval)
        if frequency is None:
            logger.debug(f"Median interval {median_interval:.1f}d fits no frequency bucket")
            return None

        day_of_month = None
        day_of_week = None
        if frequency.is_monthly_or_longer:
            day_of_month = self.dominant_day_of_month(dates)
        elif frequency.is_weekly_anchored:
            day_of_week = most_common(d.weekday() for d in dates)

        return Cadence(
            frequency=frequency,
            medianInterval=median_interval,
            mad=mad,
            dayOfMonth=day_of_month,
            dayOfWeek=day_of_week,
            evidencePool=evidence_pool,
        )

    def infer_for_group(self, group: List[Transaction], context: CadenceContext) -> Optional[Cadence]:
        """
        Infer the cadence for an amount group, widening the evidence if needed.

        Groups of three or more are judged on their own. A 2-transaction group
        has a single gap, so the evidence pools are tried in order and the
        first one that yields a cadence is used.
        """
        if len(group) >= self.validation.min_pool_size:
            return self.infer(group)
        if len(group) < 2:
            return None

        for pool in self.evidence_pools:
            pool_transactions = pool.select(group, context)
            if len(pool_transactions) < self.validation.min_pool_size:
                continue
            cadence = self.infer(pool_transactions, evidence_pool=pool.name)
            if cadence is not None:
                logger.debug(f"Cadence {cadence.frequency.value} inferred from pool {pool.name}")
                return cadence
        return None

    def match_frequency(self, median_interval: float) -> Optional[RecurrenceFrequency]:
        """Match the median interval to a frequency bucket."""
        for frequency, (min_days, max_days) in self._buckets.items():
            if min_days <= median_interval <= max_days:
                return frequency
        if self.frequency_thresholds.allow_custom:
            return RecurrenceFrequency.CUSTOM
        return None

    def dominant_day_of_month(self, dates: List[date]) -> int:
        """
        Pick the day-of-month anchor that the most dates sit close to.

        Candidate anchors are the observed days (month-end days count as 31);
        ties go to the most frequent exact day.
        """
        tolerance = self.validation.day_of_month_tolerance
        observed = [normalized_day_of_month(d) for d in dates]
        exact_counts = {day: observed.count(day) for day in observed}

        def support(anchor: int) -> Tuple[int, int, int]:
            near = sum(1 for d in dates if days_from_month_anchor(d, anchor) <= tolerance)
            return near, exact_counts[anchor], -anchor

        return max(exact_counts, key=support)
