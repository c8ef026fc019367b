"""
Persistence of detected patterns as recurring transaction records.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from models.recurring_transaction import PatternSaveResult, RecurringPattern, RecurringTransaction
from services.recurring_transactions.collaborators import PatternStore
from services.recurring_transactions.config import TrackerConfig, DEFAULT_TRACKER_CONFIG

logger = logging.getLogger(__name__)

Identity = Tuple[str, str, str, str]


def _identity(record) -> Identity:
    return (
        record.user_id,
        str(record.merchant_group_id),
        record.frequency.value,
        record.transaction_type.value,
    )


def _already_tracked(
    pattern: RecurringPattern,
    tracked: List[RecurringTransaction],
    config: TrackerConfig
) -> bool:
    # Same amount as far as the missed-occurrence tracker would match it
    return any(
        abs(pattern.expected_amount - record.expected_amount) <= config.amount_tolerance(
            record.expected_amount, record.amount_variance, record.is_amount_variable
        )
        for record in tracked
    )


def save_detected_patterns(
    patterns: List[RecurringPattern],
    store: PatternStore,
    config: Optional[TrackerConfig] = None
) -> PatternSaveResult:
    """
    Insert a record for every pattern that is not already being tracked.

    A pattern is skipped when the user already has an active record for the
    same merchant group, frequency and transaction type whose expected
    amount is within the tracker's match tolerance of the pattern's. Two
    plans billed by one merchant at distinct amounts are tracked separately.

    Args:
        patterns: Output of a detection pass
        store: Record store
        config: Tracker config (amount tolerance, variable-amount threshold)

    Returns:
        PatternSaveResult with saved, skipped and error counts
    """
    config = config or DEFAULT_TRACKER_CONFIG
    result = PatternSaveResult()
    if not patterns:
        return result

    existing: Dict[Identity, List[RecurringTransaction]] = defaultdict(list)
    for scope in {p.account_scope for p in patterns}:
        for record in store.list_active_patterns(scope):
            existing[_identity(record)].append(record)

    for pattern in patterns:
        identity = _identity(pattern)
        if _already_tracked(pattern, existing[identity], config):
            logger.info(
                f"Skipping {pattern.merchant_name!r} ({pattern.frequency.value}, "
                f"{pattern.expected_amount}): already tracked"
            )
            result.skipped += 1
            continue

        try:
            record = RecurringTransaction.from_pattern(pattern, config.variable_amount_ratio)
            store.save_or_update_pattern(record)
            existing[identity].append(record)
            result.saved += 1
        except Exception as e:
            logger.exception(f"Failed to save pattern for {pattern.merchant_name!r}: {str(e)}")
            result.errors += 1

    logger.info(
        f"Saved {result.saved} recurring transactions, skipped {result.skipped}, errors {result.errors}"
    )
    return result
