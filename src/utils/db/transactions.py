"""
Transaction database operations.

Transactions are read-only here: they are listed per settlement account
for detection and for matching expected occurrences.
"""

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import List, Dict, Optional, Union
from boto3.dynamodb.conditions import Key

from models.transaction import Transaction
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    require_table,
)
from .helpers import paginated_query, to_db_id

logger = logging.getLogger(__name__)

TABLE_KEY = 'transactions'

# GSIs keyed by settlement account with the epoch-millisecond date as sort key
SCOPE_INDEXES = {
    'accountId': 'AccountDateIndex',
    'creditCardId': 'CreditCardDateIndex',
}


def _day_start_ms(d: date) -> int:
    return int(datetime.combine(d, time.min, tzinfo=timezone.utc).timestamp() * 1000)


def _day_end_ms(d: date) -> int:
    return int(datetime.combine(d, time.max, tzinfo=timezone.utc).timestamp() * 1000)


@monitor_performance(operation_type="query", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_account_transactions")
def list_account_transactions(
    account_scope: Union[str, uuid.UUID],
    start: date,
    end: date
) -> List[Transaction]:
    """
    List transactions settled to an account or credit card between two dates.

    Note: This function requires the AccountDateIndex and CreditCardDateIndex
    GSIs, each with the settlement id as partition key and date as sort key.

    Args:
        account_scope: accountId or creditCardId
        start: First day included
        end: Last day included

    Returns:
        Transactions sorted by date (ascending)
    """
    table = require_table(tables.transactions, TABLE_KEY)
    scope = to_db_id(account_scope)
    found: Dict[uuid.UUID, Transaction] = {}

    for attribute, index_name in SCOPE_INDEXES.items():
        items, _ = paginated_query(table, {
            'IndexName': index_name,
            'KeyConditionExpression': (
                Key(attribute).eq(scope) & Key('date').between(_day_start_ms(start), _day_end_ms(end))
            ),
            'ScanIndexForward': True
        })
        for item in items:
            try:
                transaction = Transaction.from_dynamodb_item(item)
            except ValueError as e:
                logger.warning(f"Skipping unreadable transaction {item.get('transactionId')}: {str(e)}")
                continue
            found[transaction.transaction_id] = transaction

    transactions = sorted(found.values(), key=lambda t: (t.date, str(t.transaction_id)))
    logger.info(f"DB: Found {len(transactions)} transactions for {scope} between {start} and {end}")
    return transactions


class DynamoDBTransactionSource:
    """Transaction source backed by the transactions table."""

    def get_transactions(
        self,
        account_scope: Optional[uuid.UUID],
        lookback_months: int,
        now: date
    ) -> List[Transaction]:
        if account_scope is None:
            logger.warning("No account scope given; transactions are only listed per account")
            return []
        # Import here to avoid circular dependency
        from services.recurring_transactions.scheduling import add_months

        return list_account_transactions(account_scope, add_months(now, -lookback_months), now)
