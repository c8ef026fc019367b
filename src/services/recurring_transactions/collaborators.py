"""
Interfaces the recurring transaction services depend on.

Detection itself is pure; persistence, balances, preferences and delivery of
notifications are supplied by these collaborators. The production
implementations are backed by DynamoDB and EventBridge.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from typing_extensions import Protocol

from models.transaction import Transaction
from models.recurring_transaction import NotificationKind, RecurringTransaction


class TransactionSource(Protocol):
    def get_transactions(
        self,
        account_scope: Optional[uuid.UUID],
        lookback_months: int,
        now: date
    ) -> List[Transaction]:
        """Transactions settled to account_scope within the lookback window."""
        ...


class PatternStore(Protocol):
    def save_or_update_pattern(self, record: RecurringTransaction) -> RecurringTransaction:
        ...

    def list_active_patterns(
        self,
        account_scope: Optional[uuid.UUID] = None,
        on_invalid: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> List[RecurringTransaction]:
        """
        Active records, optionally restricted to one settlement account.

        Stored items that cannot be read are dropped and passed to on_invalid.
        """
        ...

    def update_pattern(
        self,
        recurring_transaction_id: uuid.UUID,
        user_id: str,
        updates: Dict[str, Any],
        expected: Dict[str, Any],
        remove_fields: Optional[List[str]] = None
    ) -> None:
        """
        Apply updates only while the stored record still matches expected.

        Raises:
            ConflictError: If the record changed since it was read
        """
        ...


class AccountBalanceLookup(Protocol):
    def get_account_balance(self, account_id: uuid.UUID) -> Optional[Decimal]:
        ...


class NotificationSink(Protocol):
    def notify(
        self,
        user_id: str,
        account_scope: Optional[uuid.UUID],
        pattern_id: uuid.UUID,
        kind: NotificationKind,
        payload: Dict[str, Any]
    ) -> None:
        ...


class PreferenceLookup(Protocol):
    def get_reminder_days_before(self, user_id: str) -> Optional[int]:
        """Configured reminder lead time in days, or None when unset."""
        ...
