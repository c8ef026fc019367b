"""
Recurring Transaction Detection and Tracking Services.

This package detects recurring transactions (subscriptions, bills, salaries)
in transaction history and tracks their expected occurrences over time.

Public API:
    - RecurringTransactionDetectionService: Rule-based pattern detection
    - detect_recurring_patterns: Detection with a one-off service
    - save_detected_patterns: Persists new patterns as tracked records
    - MissedOccurrenceService: Scheduled missed-occurrence and reminder check
    - calculate_next_expected_date: Cadence step with month-end clamping
    - DetectionConfig / TrackerConfig: Configuration for both services
"""

from services.recurring_transactions.config import (
    DetectionConfig,
    TrackerConfig,
    DEFAULT_CONFIG,
    DEFAULT_TRACKER_CONFIG,
)
from services.recurring_transactions.detection_service import (
    RecurringTransactionDetectionService,
    detect_recurring_patterns,
)
from services.recurring_transactions.grouping import DataIntegrityError
from services.recurring_transactions.missed_occurrence_service import MissedOccurrenceService
from services.recurring_transactions.pattern_persistence import save_detected_patterns
from services.recurring_transactions.scheduling import calculate_next_expected_date

__all__ = [
    'DetectionConfig',
    'TrackerConfig',
    'DEFAULT_CONFIG',
    'DEFAULT_TRACKER_CONFIG',
    'RecurringTransactionDetectionService',
    'detect_recurring_patterns',
    'DataIntegrityError',
    'MissedOccurrenceService',
    'save_detected_patterns',
    'calculate_next_expected_date',
]
