"""
Candidate grouping and gap segmentation.

Transactions are partitioned by (merchant group, direction, settlement
account). Each candidate group is then split at abnormally large gaps, and
only its most recent run of activity is eligible for pattern detection so
that lapsed subscriptions never resurface.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from models.transaction import Transaction, TransactionType
from models.recurring_transaction import Cadence
from services.recurring_transactions.config import SegmentationConfig
from services.recurring_transactions.scheduling import add_months
from services.recurring_transactions.statistics import day_gaps, median

logger = logging.getLogger(__name__)

GroupKey = Tuple[uuid.UUID, TransactionType, Optional[uuid.UUID]]


class DataIntegrityError(ValueError):
    """Raised for input that violates the transaction model's invariants."""
    pass


@dataclass
class CandidateGroup:
    """Transactions sharing merchant, direction and settlement account, oldest first."""
    key: GroupKey
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def merchant_group_id(self) -> uuid.UUID:
        return self.key[0]

    @property
    def transaction_type(self) -> TransactionType:
        return self.key[1]

    @property
    def merchant_name(self) -> str:
        for txn in reversed(self.transactions):
            if txn.merchant_display_name:
                return txn.merchant_display_name
        return str(self.merchant_group_id)


@dataclass
class PatternCandidate:
    """An accepted amount group with everything needed to emit a pattern."""
    transactions: List[Transaction]
    cadence: Cadence
    confidence_score: float
    expected_amount: float
    amount_variance: float
    is_amount_variable: bool = False


def chronological(transactions: List[Transaction]) -> List[Transaction]:
    """Sort ascending by date, with the transaction id as a stable tie-breaker."""
    return sorted(transactions, key=lambda t: (t.date, str(t.transaction_id)))


def is_eligible(txn: Transaction) -> bool:
    """
    Check whether a transaction can take part in detection.

    It needs a merchant group, and when it carries category assignments at
    least one must be a real budget category; transactions linked only to
    system or buffer categories are internal movements.
    """
    if txn.merchant_group_id is None:
        return False
    if txn.category_assignments and not txn.budget_category_ids:
        return False
    return True


def filter_lookback(transactions: List[Transaction], lookback_months: int, now: date) -> List[Transaction]:
    """Keep transactions dated within the lookback window ending at now."""
    if lookback_months < 1:
        raise ValueError(f"lookback_months must be at least 1, got {lookback_months}")
    window_start = add_months(now, -lookback_months)
    return [t for t in transactions if window_start <= t.date <= now]


def group_candidates(
    transactions: List[Transaction],
    config: Optional[SegmentationConfig] = None,
    strict_integrity: bool = False
) -> List[CandidateGroup]:
    """
    Partition eligible transactions into candidate groups.

    Args:
        transactions: Transactions in the lookback window
        config: Segmentation config (minimum group size)
        strict_integrity: Raise DataIntegrityError instead of skipping bad input

    Returns:
        Candidate groups with at least min_candidate_group_size transactions,
        each sorted oldest first, in a deterministic order
    """
    config = config or SegmentationConfig()
    grouped: Dict[GroupKey, List[Transaction]] = {}

    for txn in transactions:
        if txn.has_conflicting_settlement:
            message = (
                f"Transaction {txn.transaction_id} has both accountId {txn.account_id} "
                f"and creditCardId {txn.credit_card_id}"
            )
            if strict_integrity:
                raise DataIntegrityError(message)
            logger.warning(f"{message}; skipping")
            continue
        if not is_eligible(txn):
            continue
        key = (txn.merchant_group_id, txn.transaction_type, txn.settlement_account_id)
        grouped.setdefault(key, []).append(txn)

    groups = [
        CandidateGroup(key=key, transactions=chronological(txns))
        for key, txns in grouped.items()
        if len(txns) >= config.min_candidate_group_size
    ]
    groups.sort(key=lambda g: (str(g.key[0]), g.key[1].value, str(g.key[2])))

    logger.debug(f"Grouped {len(transactions)} transactions into {len(groups)} candidate groups")
    return groups


def gap_threshold(transactions: List[Transaction], config: SegmentationConfig) -> float:
    """Largest gap (days) tolerated inside a segment of this group."""
    gaps = day_gaps([t.date for t in transactions])
    return max(config.min_gap_days, config.gap_multiplier * median(gaps))


def segment_by_gap(transactions: List[Transaction], config: Optional[SegmentationConfig] = None) -> List[List[Transaction]]:
    """
    Split chronologically sorted transactions wherever a gap exceeds the threshold.

    Returns:
        Segments in chronological order; empty when there are no transactions
    """
    config = config or SegmentationConfig()
    if not transactions:
        return []

    threshold = gap_threshold(transactions, config)
    segments: List[List[Transaction]] = [[transactions[0]]]
    for previous, current in zip(transactions, transactions[1:]):
        if (current.date - previous.date).days > threshold:
            segments.append([])
        segments[-1].append(current)
    return segments


def most_recent_segment(
    transactions: List[Transaction],
    config: Optional[SegmentationConfig] = None
) -> Optional[List[Transaction]]:
    """The final segment of a group, or None when it is too small to matter."""
    config = config or SegmentationConfig()
    segments = segment_by_gap(transactions, config)
    if not segments or len(segments[-1]) < config.min_segment_size:
        return None
    if len(segments) > 1:
        logger.debug(
            f"Discarding {len(segments) - 1} older segment(s) "
            f"({sum(len(s) for s in segments[:-1])} transactions)"
        )
    return segments[-1]
