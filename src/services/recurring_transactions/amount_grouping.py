"""
Amount grouping within a segment.

Exact-amount grouping is the primary strategy and separates merchants that
bill several subscriptions at different price points. Similar-amount
grouping is the fallback for bills that drift a little each cycle.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from models.transaction import Transaction
from services.recurring_transactions.config import AmountGroupingConfig
from services.recurring_transactions.grouping import chronological

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def group_by_exact_amount(
    segment: List[Transaction],
    config: Optional[AmountGroupingConfig] = None
) -> List[List[Transaction]]:
    """
    Bucket transactions by their amount rounded to cents.

    Buckets of min_group_size are kept. When the segment is large enough and
    holds several distinct amounts, smaller buckets (a recent price change)
    are kept down to split_min_group_size.

    Returns:
        Date-sorted groups, ordered by ascending amount
    """
    config = config or AmountGroupingConfig()
    buckets: Dict[Decimal, List[Transaction]] = {}
    for txn in segment:
        buckets.setdefault(to_cents(txn.amount), []).append(txn)

    split_mode = (
        len(segment) >= config.split_min_segment_size and
        len(buckets) >= config.split_min_distinct_amounts
    )
    min_size = config.split_min_group_size if split_mode else config.min_group_size

    groups = [
        chronological(buckets[amount])
        for amount in sorted(buckets)
        if len(buckets[amount]) >= min_size
    ]
    logger.debug(
        f"Exact grouping: {len(buckets)} distinct amounts, {len(groups)} groups "
        f"(min size {min_size})"
    )
    return groups


def group_by_similar_amount(
    segment: List[Transaction],
    config: Optional[AmountGroupingConfig] = None
) -> List[List[Transaction]]:
    """
    Cluster transactions whose amounts sit close together.

    Walks the segment in amount order; a transaction joins the open cluster
    while it is within max(similar_absolute_floor, similar_relative_tolerance
    * anchor) of the cluster's smallest amount, otherwise it starts a new one.

    Returns:
        Date-sorted clusters of at least min_group_size, ordered by ascending amount
    """
    config = config or AmountGroupingConfig()
    by_amount = sorted(segment, key=lambda t: (t.amount, t.date, str(t.transaction_id)))

    clusters: List[List[Transaction]] = []
    anchor: Optional[Decimal] = None
    for txn in by_amount:
        if anchor is not None:
            tolerance = max(config.similar_absolute_floor, float(anchor) * config.similar_relative_tolerance)
            if float(txn.amount - anchor) <= tolerance:
                clusters[-1].append(txn)
                continue
        anchor = txn.amount
        clusters.append([txn])

    groups = [chronological(c) for c in clusters if len(c) >= config.min_group_size]
    logger.debug(f"Similar grouping: {len(clusters)} clusters, {len(groups)} groups")
    return groups
