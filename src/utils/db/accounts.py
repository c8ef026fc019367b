"""
Account database operations.

Only balances are read, for the insufficient-funds check ahead of an
expected recurring expense.
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
)
from .helpers import to_db_id

logger = logging.getLogger(__name__)


@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_account_balance")
def get_account_balance(account_id: Union[str, uuid.UUID]) -> Optional[Decimal]:
    """
    Retrieve an account's current balance.

    Returns:
        The balance, or None when the account or its balance is missing
    """
    table = require_table(tables.accounts, 'accounts')
    response = table.get_item(Key={'accountId': to_db_id(account_id)})
    item = response.get('Item')
    if not item or item.get('balance') is None:
        logger.debug(f"DB: No balance recorded for account {to_db_id(account_id)}")
        return None

    try:
        return Decimal(str(item['balance']))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal value for balance from DB: {item['balance']}")


class DynamoDBAccountBalanceLookup:
    """Balance lookup backed by the accounts table."""

    def get_account_balance(self, account_id: uuid.UUID) -> Optional[Decimal]:
        return get_account_balance(account_id)
