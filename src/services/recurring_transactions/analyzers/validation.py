"""
Pattern validator for recurring transaction detection.

Applies the hard checks an amount group must pass before it is scored:
date anchors, amount clustering and the absence of unexplained gaps.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from models.transaction import Transaction
from models.recurring_transaction import Cadence
from services.recurring_transactions.analyzers.cadence import days_from_month_anchor, days_from_week_anchor
from services.recurring_transactions.config import ValidationConfig
from services.recurring_transactions.statistics import amount_variance, coefficient_of_variation, day_gaps, median

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of validating an amount group against its cadence."""
    valid: bool
    reasons: List[str] = field(default_factory=list)
    anchor_consistency: float = 1.0
    relative_variance: float = 0.0


class PatternValidator:
    """Validates amount groups against their inferred cadence."""

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()

    def validate(self, group: List[Transaction], cadence: Cadence, check_amounts: bool = True) -> ValidationResult:
        """
        Check a date-sorted group against its cadence.

        Args:
            group: Transactions in the amount group, oldest first
            cadence: Cadence inferred for the group
            check_amounts: Enforce tight amount clustering (off for variable-amount bills)

        Returns:
            ValidationResult with the failure reasons, if any
        """
        reasons: List[str] = []

        anchor_consistency = self.anchor_consistency(group, cadence)
        if anchor_consistency < self.config.min_anchor_match_ratio:
            reasons.append(
                f"only {anchor_consistency:.0%} of transactions fall on the "
                f"{'day of month' if cadence.day_of_month else 'day of week'} anchor"
            )

        amounts = [float(t.amount) for t in group]
        center = median(amounts)
        relative_variance = amount_variance(amounts, center) / (center ** 2) if center else 0.0
        if check_amounts:
            cv = coefficient_of_variation(amounts, center)
            if cv > self.config.max_amount_cv:
                reasons.append(f"amount coefficient of variation {cv:.2f} exceeds {self.config.max_amount_cv}")

        gaps = day_gaps([t.date for t in group])
        if gaps and max(gaps) > self.config.max_gap_ratio * cadence.median_interval:
            reasons.append(
                f"gap of {max(gaps)} days is more than {self.config.max_gap_ratio}x "
                f"the {cadence.median_interval:.1f} day interval"
            )

        return ValidationResult(
            valid=not reasons,
            reasons=reasons,
            anchor_consistency=anchor_consistency,
            relative_variance=relative_variance,
        )

    def anchor_consistency(self, group: List[Transaction], cadence: Cadence) -> float:
        """Share of transactions within tolerance of the cadence's day anchor."""
        if not group:
            return 0.0
        if cadence.day_of_month is not None:
            tolerance = self.config.day_of_month_tolerance
            on_anchor = sum(
                1 for t in group if days_from_month_anchor(t.date, cadence.day_of_month) <= tolerance
            )
        elif cadence.day_of_week is not None:
            tolerance = self.config.day_of_week_tolerance
            on_anchor = sum(
                1 for t in group if days_from_week_anchor(t.date, cadence.day_of_week) <= tolerance
            )
        else:
            return 1.0
        return on_anchor / len(group)
