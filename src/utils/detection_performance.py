"""
Performance monitoring utilities for recurring transaction detection.

This module times detection passes and their stages (filtering, grouping,
pattern analysis) and logs the results with a level that reflects how slow
the pass was.
"""

import time
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SLOW_OPERATION_MS = 10000
VERY_SLOW_OPERATION_MS = 30000


@dataclass
class DetectionPerformanceMetrics:
    """Container for detection pass performance metrics."""
    operation_name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    elapsed_ms: Optional[float] = None
    transaction_count: int = 0
    groups_identified: int = 0
    patterns_detected: int = 0
    stage_ms: Dict[str, float] = field(default_factory=dict)

    def finish(self):
        """Mark the operation as finished and calculate elapsed time."""
        self.end_time = time.time()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation_name': self.operation_name,
            'elapsed_ms': self.elapsed_ms,
            'transaction_count': self.transaction_count,
            'groups_identified': self.groups_identified,
            'patterns_detected': self.patterns_detected,
            'stage_ms': dict(self.stage_ms),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def log_metrics(self):
        """Log the performance metrics."""
        metrics = self.to_dict()
        elapsed = self.elapsed_ms or 0.0

        if elapsed > VERY_SLOW_OPERATION_MS:
            logger.error(
                f"SLOW DETECTION OPERATION: {self.operation_name} took {elapsed:.2f}ms",
                extra={'detection_metrics': metrics}
            )
        elif elapsed > SLOW_OPERATION_MS:
            logger.warning(
                f"Slow detection operation: {self.operation_name} took {elapsed:.2f}ms",
                extra={'detection_metrics': metrics}
            )
        else:
            logger.info(
                f"Detection operation completed: {self.operation_name} in {elapsed:.2f}ms",
                extra={'detection_metrics': metrics}
            )

        if self.stage_ms:
            breakdown = ', '.join(f"{stage}: {ms:.2f}ms" for stage, ms in self.stage_ms.items())
            logger.debug(
                f"Detection breakdown for {self.operation_name}: {breakdown}",
                extra={'detection_metrics': metrics}
            )


class StageTimer:
    """Times one named stage and records it on the metrics."""

    def __init__(self, metrics: DetectionPerformanceMetrics, stage: str):
        self.metrics = metrics
        self.stage = stage
        self.start_time: float = 0.0

    def __enter__(self):
        self.start_time = time.time()
        logger.debug(f"Starting stage: {self.stage}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = (time.time() - self.start_time) * 1000
        self.metrics.stage_ms[self.stage] = elapsed_ms
        logger.debug(f"Completed stage {self.stage} in {elapsed_ms:.2f}ms")


def log_detection_statistics(
    operation_name: str,
    transaction_count: int,
    groups_identified: int,
    patterns_detected: int,
    elapsed_ms: float
):
    """
    Log detection statistics in a structured format.

    Args:
        operation_name: Name of the detection operation
        transaction_count: Number of transactions analyzed
        groups_identified: Number of candidate groups
        patterns_detected: Number of patterns detected
        elapsed_ms: Total elapsed time in milliseconds
    """
    statistics = {
        'operation': operation_name,
        'transaction_count': transaction_count,
        'groups_identified': groups_identified,
        'patterns_detected': patterns_detected,
        'elapsed_ms': elapsed_ms,
        'transactions_per_second': (transaction_count / (elapsed_ms / 1000)) if elapsed_ms > 0 else 0,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }

    logger.info(
        f"Detection statistics - {operation_name}: "
        f"{transaction_count} transactions, {groups_identified} groups, "
        f"{patterns_detected} patterns, {elapsed_ms:.2f}ms total",
        extra={'detection_statistics': statistics}
    )


class DetectionPerformanceTracker:
    """
    Context manager for detection performance tracking.

    Usage:
        with DetectionPerformanceTracker("recurring_transaction_detection") as tracker:
            tracker.set_transaction_count(len(transactions))

            with tracker.stage('grouping'):
                groups = group_candidates(transactions)
            tracker.set_groups_identified(len(groups))
    """

    def __init__(self, operation_name: str):
        self.metrics = DetectionPerformanceMetrics(operation_name=operation_name)

    def __enter__(self):
        logger.debug(f"Starting detection operation: {self.metrics.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.metrics.finish()
        self.metrics.log_metrics()

        if self.metrics.transaction_count > 0:
            log_detection_statistics(
                operation_name=self.metrics.operation_name,
                transaction_count=self.metrics.transaction_count,
                groups_identified=self.metrics.groups_identified,
                patterns_detected=self.metrics.patterns_detected,
                elapsed_ms=self.metrics.elapsed_ms or 0
            )

    def stage(self, stage_name: str) -> StageTimer:
        """Create a context manager for tracking a stage."""
        return StageTimer(self.metrics, stage_name)

    def set_transaction_count(self, count: int):
        self.metrics.transaction_count = count

    def set_groups_identified(self, count: int):
        self.metrics.groups_identified = count

    def set_patterns_detected(self, count: int):
        self.metrics.patterns_detected = count
