"""
Statistics primitives for recurring transaction detection.

Pure numeric helpers built on numpy. Empty inputs return 0.0 ("no data")
rather than raising, so callers can treat a missing signal as zero.
"""

from collections import Counter
from datetime import date
from typing import Hashable, Iterable, List, Optional, Sequence, TypeVar

import numpy as np

H = TypeVar('H', bound=Hashable)


def median(values: Sequence[float]) -> float:
    """Median of values; even-length inputs average the two middle values."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def median_absolute_deviation(values: Sequence[float], center: float) -> float:
    """Median of |v - center|, a robust spread measure."""
    if len(values) == 0:
        return 0.0
    deviations = np.abs(np.asarray(values, dtype=float) - center)
    return float(np.median(deviations))


def amount_variance(amounts: Sequence[float], center: float) -> float:
    """Population variance of amounts around center (mean squared deviation)."""
    if len(amounts) == 0:
        return 0.0
    deviations = np.asarray(amounts, dtype=float) - center
    return float(np.mean(deviations ** 2))


def coefficient_of_variation(amounts: Sequence[float], center: float) -> float:
    """Standard deviation around center, relative to center."""
    if center == 0:
        return 0.0
    return float(np.sqrt(amount_variance(amounts, center)) / abs(center))


def most_common(values: Iterable[H]) -> Optional[H]:
    """Mode of values; ties resolve to the value seen first."""
    counts = Counter(values)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def day_gaps(dates: Sequence[date]) -> List[int]:
    """Day differences between consecutive dates."""
    return [(later - earlier).days for earlier, later in zip(dates, dates[1:])]
