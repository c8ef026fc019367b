"""
Database utilities for DynamoDB operations.

This module provides a clean interface for all database operations.
Imports are organized by resource type for easy navigation.
"""

# ============================================================================
# Core Infrastructure
# ============================================================================

from .base import (
    # Table management
    tables,
    DynamoDBTables,
    require_table,

    # Exceptions
    NotAuthorized,
    NotFound,
    ConflictError,

    # Decorators
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,

    # Helper functions
    check_user_owns_resource,
    is_valid_uuid,
)

from .helpers import (
    to_db_id,
    to_db_value,
    paginated_query,
    paginated_scan,
    build_update_expression,
    build_condition_expression,
    current_timestamp,
)

# ============================================================================
# Recurring Transaction Operations
# ============================================================================

from .recurring_transactions import (
    create_recurring_transaction,
    get_recurring_transaction,
    list_recurring_transactions_by_user,
    list_active_recurring_transactions,
    update_recurring_transaction,
    DynamoDBPatternStore,
)

# ============================================================================
# Transaction, Account and Preference Operations
# ============================================================================

from .transactions import (
    list_account_transactions,
    DynamoDBTransactionSource,
)

from .accounts import (
    get_account_balance,
    DynamoDBAccountBalanceLookup,
)

from .user_preferences import (
    get_user_preferences,
    get_reminder_days_before,
    DynamoDBPreferenceLookup,
)

__all__ = [
    'tables',
    'DynamoDBTables',
    'require_table',
    'NotAuthorized',
    'NotFound',
    'ConflictError',
    'dynamodb_operation',
    'retry_on_throttle',
    'monitor_performance',
    'check_user_owns_resource',
    'is_valid_uuid',
    'to_db_id',
    'to_db_value',
    'paginated_query',
    'paginated_scan',
    'build_update_expression',
    'build_condition_expression',
    'current_timestamp',
    'create_recurring_transaction',
    'get_recurring_transaction',
    'list_recurring_transactions_by_user',
    'list_active_recurring_transactions',
    'update_recurring_transaction',
    'DynamoDBPatternStore',
    'list_account_transactions',
    'DynamoDBTransactionSource',
    'get_account_balance',
    'DynamoDBAccountBalanceLookup',
    'get_user_preferences',
    'get_reminder_days_before',
    'DynamoDBPreferenceLookup',
]
