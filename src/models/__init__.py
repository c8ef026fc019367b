"""
Models package for recurring transaction detection and tracking.
"""

from .transaction import (
    Transaction,
    TransactionType,
    CategoryAssignment,
)

from .recurring_transaction import (
    RecurrenceFrequency,
    StatusReason,
    NotificationKind,
    Cadence,
    RecurringPattern,
    RecurringTransaction,
    MissedOccurrenceSummary,
    PatternSaveResult,
)

from .user_preferences import (
    UserPreferences,
    RecurringTransactionPreferences,
)

__all__ = [
    'Transaction',
    'TransactionType',
    'CategoryAssignment',
    'RecurrenceFrequency',
    'StatusReason',
    'NotificationKind',
    'Cadence',
    'RecurringPattern',
    'RecurringTransaction',
    'MissedOccurrenceSummary',
    'PatternSaveResult',
    'UserPreferences',
    'RecurringTransactionPreferences',
]
