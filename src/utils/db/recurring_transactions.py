"""
Recurring transaction database operations.

Records are keyed by (userId, recurringTransactionId). Active records are
listed through the IsActiveIndex GSI, whose partition key is the 'true' /
'false' string form of isActive.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional
from boto3.dynamodb.conditions import Key, Attr
from botocore.exceptions import ClientError

from models.recurring_transaction import RecurringTransaction
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
    check_user_owns_resource,
    ConflictError,
    NotFound,
)
from .helpers import (
    build_condition_expression,
    build_update_expression,
    paginated_query,
    to_db_id,
    to_db_value,
)

logger = logging.getLogger(__name__)

TABLE_KEY = 'recurring_transactions'
ACTIVE_INDEX = 'IsActiveIndex'


def _key(recurring_transaction_id: uuid.UUID, user_id: str) -> Dict[str, str]:
    return {'userId': user_id, 'recurringTransactionId': str(recurring_transaction_id)}


def _parse_records(
    items: List[Dict[str, Any]],
    on_invalid: Optional[Callable[[Dict[str, Any]], None]] = None
) -> List[RecurringTransaction]:
    """
    Parse stored items, logging and dropping any that fail validation.

    Dropped items are also handed to on_invalid when given.
    """
    records = []
    for item in items:
        try:
            records.append(RecurringTransaction.from_dynamodb_item(item))
        except ValueError as e:
            logger.error(
                f"DB: Skipping invalid recurring transaction "
                f"{item.get('recurringTransactionId')}: {str(e)}"
            )
            if on_invalid is not None:
                on_invalid(item)
    return records


@retry_on_throttle(max_attempts=3)
@dynamodb_operation("create_recurring_transaction")
def create_recurring_transaction(record: RecurringTransaction) -> RecurringTransaction:
    """
    Persist a new recurring transaction record.

    Raises:
        ConnectionError: If the table is not configured
    """
    table = require_table(tables.recurring_transactions, TABLE_KEY)
    table.put_item(Item=record.to_dynamodb_item())
    logger.info(
        f"DB: Recurring transaction {str(record.recurring_transaction_id)} "
        f"created for user {record.user_id} ({record.merchant_name})"
    )
    return record


@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_recurring_transaction")
def get_recurring_transaction(recurring_transaction_id: uuid.UUID, user_id: str) -> RecurringTransaction:
    """
    Retrieve a record owned by user_id.

    Raises:
        NotFound: If the record doesn't exist
        NotAuthorized: If user doesn't own the record
    """
    table = require_table(tables.recurring_transactions, TABLE_KEY)
    response = table.get_item(Key=_key(recurring_transaction_id, user_id))
    item = response.get('Item')
    if not item:
        raise NotFound("Recurring transaction not found")

    record = RecurringTransaction.from_dynamodb_item(item)
    check_user_owns_resource(record.user_id, user_id)
    return record


@monitor_performance(operation_type="query", warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_recurring_transactions_by_user")
def list_recurring_transactions_by_user(
    user_id: str,
    active: Optional[bool] = None
) -> List[RecurringTransaction]:
    """
    List a user's records.

    Args:
        user_id: The user ID
        active: True for active only, False for inactive only, None for all
    """
    table = require_table(tables.recurring_transactions, TABLE_KEY)
    query_params: Dict[str, Any] = {'KeyConditionExpression': Key('userId').eq(user_id)}
    if active is not None:
        query_params['FilterExpression'] = Attr('isActive').eq(to_db_value(active))

    items, _ = paginated_query(table, query_params)
    records = _parse_records(items)
    logger.info(f"DB: Found {len(records)} recurring transactions for user {user_id}")
    return records


@monitor_performance(operation_type="query", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_active_recurring_transactions")
def list_active_recurring_transactions(
    account_scope: Optional[uuid.UUID] = None,
    on_invalid: Optional[Callable[[Dict[str, Any]], None]] = None
) -> List[RecurringTransaction]:
    """
    List active records across all users, optionally for one settlement account.

    Args:
        account_scope: accountId or creditCardId the records settle to
        on_invalid: Called with each stored item that fails validation
    """
    table = require_table(tables.recurring_transactions, TABLE_KEY)
    query_params: Dict[str, Any] = {
        'IndexName': ACTIVE_INDEX,
        'KeyConditionExpression': Key('isActive').eq('true'),
    }
    if account_scope is not None:
        scope = to_db_id(account_scope)
        query_params['FilterExpression'] = Attr('accountId').eq(scope) | Attr('creditCardId').eq(scope)

    items, _ = paginated_query(table, query_params)
    records = _parse_records(items, on_invalid)
    logger.info(f"DB: Found {len(records)} active recurring transactions")
    return records


@monitor_performance(warn_threshold_ms=300)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("update_recurring_transaction")
def update_recurring_transaction(
    recurring_transaction_id: uuid.UUID,
    user_id: str,
    updates: Dict[str, Any],
    expected: Optional[Dict[str, Any]] = None,
    remove_fields: Optional[List[str]] = None
) -> None:
    """
    Apply a partial update, optionally guarded by expected attribute values.

    Args:
        recurring_transaction_id: Record ID
        user_id: Owner of the record
        updates: Attribute name to new value; values are converted for storage
        expected: Attribute name to the value it must still hold
        remove_fields: Attributes to remove

    Raises:
        ConflictError: If an expected value no longer holds
    """
    table = require_table(tables.recurring_transactions, TABLE_KEY)
    update_expr, names, values = build_update_expression(
        {key: to_db_value(value) for key, value in updates.items()},
        remove_fields=remove_fields
    )
    params: Dict[str, Any] = {
        'Key': _key(recurring_transaction_id, user_id),
        'UpdateExpression': update_expr,
        'ExpressionAttributeNames': names,
        'ExpressionAttributeValues': values,
    }
    if expected:
        condition_expr, condition_names, condition_values = build_condition_expression(
            {key: to_db_value(value) for key, value in expected.items()}
        )
        params['ConditionExpression'] = condition_expr
        params['ExpressionAttributeNames'] = {**names, **condition_names}
        params['ExpressionAttributeValues'] = {**values, **condition_values}

    try:
        table.update_item(**params)
    except ClientError as e:
        if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
            raise ConflictError(
                f"Recurring transaction {str(recurring_transaction_id)} was modified concurrently"
            ) from e
        raise
    logger.debug(f"DB: Recurring transaction {str(recurring_transaction_id)} updated: {sorted(updates)}")


class DynamoDBPatternStore:
    """Record store backed by the recurring transactions table."""

    def save_or_update_pattern(self, record: RecurringTransaction) -> RecurringTransaction:
        return create_recurring_transaction(record)

    def list_active_patterns(
        self,
        account_scope: Optional[uuid.UUID] = None,
        on_invalid: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> List[RecurringTransaction]:
        return list_active_recurring_transactions(account_scope, on_invalid)

    def update_pattern(
        self,
        recurring_transaction_id: uuid.UUID,
        user_id: str,
        updates: Dict[str, Any],
        expected: Dict[str, Any],
        remove_fields: Optional[List[str]] = None
    ) -> None:
        update_recurring_transaction(
            recurring_transaction_id,
            user_id,
            updates,
            expected=expected,
            remove_fields=remove_fields
        )
