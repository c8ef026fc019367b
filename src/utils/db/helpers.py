"""
Helper functions for database operations.

This module provides:
- Pagination helpers
- ID and value conversion helpers
- Update and condition expression builders
"""

import logging
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional, Union, Tuple, Callable, TypeVar
from decimal import Decimal

logger = logging.getLogger(__name__)

T = TypeVar('T')


# ============================================================================
# Conversion Helpers
# ============================================================================

def to_db_id(id_value: Union[str, uuid.UUID, None]) -> Optional[str]:
    """
    Convert UUID to string for DynamoDB operations.

    Example:
        key = {'recurringTransactionId': to_db_id(recurring_transaction_id)}
    """
    if id_value is None:
        return None
    return str(id_value)


def to_db_value(value: Any) -> Any:
    """
    Convert a Python value to its stored representation.

    Dates become ISO strings, UUIDs strings, enums their values, floats
    Decimals and booleans the 'true'/'false' strings used by the GSIs.
    Lists are converted element-wise.
    """
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, list):
        return [to_db_value(item) for item in value]
    return value


# ============================================================================
# Pagination Helpers
# ============================================================================

def _paginate(
    operation: Callable[..., Dict[str, Any]],
    params: Dict[str, Any],
    max_items: Optional[int],
    transform: Optional[Callable[[Dict], T]]
) -> Tuple[List[T], Optional[Dict[str, Any]]]:
    items: List[T] = []
    current_params = params.copy()
    last_evaluated_key = None

    while True:
        response = operation(**current_params)
        batch = response.get('Items', [])
        if transform:
            batch = [transform(item) for item in batch]
        items.extend(batch)

        last_evaluated_key = response.get('LastEvaluatedKey')
        if max_items and len(items) >= max_items:
            items = items[:max_items]
            break
        if not last_evaluated_key:
            break
        current_params['ExclusiveStartKey'] = last_evaluated_key

    return items, last_evaluated_key


def paginated_query(
    table: Any,
    query_params: Dict[str, Any],
    max_items: Optional[int] = None,
    transform: Optional[Callable[[Dict], T]] = None
) -> Tuple[List[T], Optional[Dict[str, Any]]]:
    """
    Execute paginated DynamoDB query and return all items.

    Args:
        table: DynamoDB table resource
        query_params: Query parameters (KeyConditionExpression, etc.)
        max_items: Maximum items to return (None for all)
        transform: Optional function to transform each item

    Returns:
        Tuple of (items, last_evaluated_key)

    Example:
        items, _ = paginated_query(
            table=tables.transactions,
            query_params={
                'IndexName': 'AccountDateIndex',
                'KeyConditionExpression': Key('accountId').eq(str(account_id))
            },
            transform=Transaction.from_dynamodb_item
        )
    """
    items, last_evaluated_key = _paginate(table.query, query_params, max_items, transform)
    logger.debug(f"Paginated query returned {len(items)} items")
    return items, last_evaluated_key


def paginated_scan(
    table: Any,
    scan_params: Dict[str, Any],
    max_items: Optional[int] = None,
    transform: Optional[Callable[[Dict], T]] = None
) -> Tuple[List[T], Optional[Dict[str, Any]]]:
    """
    Execute paginated DynamoDB scan and return all items.

    Returns:
        Tuple of (items, last_evaluated_key)
    """
    items, last_evaluated_key = _paginate(table.scan, scan_params, max_items, transform)
    logger.debug(f"Paginated scan returned {len(items)} items")
    return items, last_evaluated_key


# ============================================================================
# Expression Builders
# ============================================================================

def _safe_name(key: str) -> str:
    return key.replace('-', '_').replace('.', '_')


def build_update_expression(
    updates: Dict[str, Any],
    timestamp_field: Optional[str] = 'updatedAt',
    remove_fields: Optional[List[str]] = None
) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """
    Build DynamoDB UpdateExpression from update dictionary.

    Args:
        updates: Dictionary of field names to new values
        timestamp_field: Name of timestamp field to auto-update (None to skip)
        remove_fields: List of field names to remove (optional)

    Returns:
        Tuple of (update_expression, expression_attribute_names, expression_attribute_values)

    Example:
        expr, names, values = build_update_expression(
            updates={'missedStreak': 1, 'lastMissedDate': '2024-03-01'},
            remove_fields=['pendingOccurrenceDate']
        )
    """
    if not updates and not remove_fields:
        raise ValueError("Either updates or remove_fields must be provided")

    set_parts: List[str] = []
    remove_parts: List[str] = []
    expr_attr_names: Dict[str, str] = {}
    expr_attr_values: Dict[str, Any] = {}

    for key, value in updates.items():
        safe_key = _safe_name(key)
        set_parts.append(f"#{safe_key} = :{safe_key}")
        expr_attr_names[f"#{safe_key}"] = key
        expr_attr_values[f":{safe_key}"] = value

    if timestamp_field:
        safe_timestamp = _safe_name(timestamp_field)
        set_parts.append(f"#{safe_timestamp} = :{safe_timestamp}")
        expr_attr_names[f"#{safe_timestamp}"] = timestamp_field
        expr_attr_values[f":{safe_timestamp}"] = current_timestamp()

    for field in remove_fields or []:
        safe_field = _safe_name(field)
        remove_parts.append(f"#{safe_field}")
        expr_attr_names[f"#{safe_field}"] = field

    expression_parts = []
    if set_parts:
        expression_parts.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expression_parts.append("REMOVE " + ", ".join(remove_parts))

    return " ".join(expression_parts), expr_attr_names, expr_attr_values


def build_condition_expression(
    conditions: Dict[str, Any],
    operator: str = "AND",
    value_prefix: str = "expected_"
) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """
    Build DynamoDB ConditionExpression for conditional writes.

    Value placeholders carry value_prefix so they never collide with the
    placeholders of an update expression on the same attributes.

    Args:
        conditions: Dictionary of field names to expected values
        operator: Logical operator to join conditions ("AND" or "OR")
        value_prefix: Prefix for value placeholders

    Returns:
        Tuple of (condition_expression, expression_attribute_names, expression_attribute_values)

    Example:
        expr, names, values = build_condition_expression(
            conditions={'missedStreak': 0, 'nextExpectedDate': '2024-03-01'}
        )
        table.update_item(
            Key=key,
            UpdateExpression=update_expr,
            ConditionExpression=expr,
            ExpressionAttributeNames={**update_names, **names},
            ExpressionAttributeValues={**update_values, **values}
        )
    """
    if not conditions:
        raise ValueError("At least one condition must be provided")

    if operator.upper() not in ("AND", "OR"):
        raise ValueError("Operator must be 'AND' or 'OR'")

    condition_parts: List[str] = []
    expr_attr_names: Dict[str, str] = {}
    expr_attr_values: Dict[str, Any] = {}

    for key, value in conditions.items():
        safe_key = _safe_name(key)
        condition_parts.append(f"#{safe_key} = :{value_prefix}{safe_key}")
        expr_attr_names[f"#{safe_key}"] = key
        expr_attr_values[f":{value_prefix}{safe_key}"] = value

    return f" {operator.upper()} ".join(condition_parts), expr_attr_names, expr_attr_values


def current_timestamp() -> int:
    """Current UTC timestamp in milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
