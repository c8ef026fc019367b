"""
User preferences database operations.
"""

import logging
from typing import Optional

from models.user_preferences import UserPreferences
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
)

logger = logging.getLogger(__name__)


@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_user_preferences")
def get_user_preferences(user_id: str) -> Optional[UserPreferences]:
    table = require_table(tables.user_preferences, 'user_preferences')
    response = table.get_item(Key={'userId': user_id})
    item = response.get('Item')
    if not item:
        return None
    return UserPreferences.from_dynamodb_item(item)


def get_reminder_days_before(user_id: str) -> Optional[int]:
    """
    The user's reminder lead time from preferences.recurringTransactions.

    Returns:
        Days before the due date, or None when the user has not set one
    """
    preferences = get_user_preferences(user_id)
    if preferences is None:
        return None
    return preferences.recurring_transactions.reminder_days_before


class DynamoDBPreferenceLookup:
    """Preference lookup backed by the user preferences table."""

    def get_reminder_days_before(self, user_id: str) -> Optional[int]:
        return get_reminder_days_before(user_id)
