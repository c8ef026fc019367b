"""
Missed-occurrence tracker.

A scheduled batch job that keeps persisted recurring transactions in step
with reality:

- Overdue records are matched against real transactions. A match confirms
  the occurrence and resets the missed streak; no match extends the streak,
  and a streak of deactivate_after_misses deactivates the record.
- Records coming due are evaluated for "upcoming" and "insufficient funds"
  reminders, then advanced one cadence step. The reminded date is kept as
  the pending occurrence so that it is still confirmed once it has passed.

Every write is conditional on the missedStreak and nextExpectedDate that
were read, so overlapping runs cannot lose each other's updates. Failures
are isolated per record and reported in the run summary.
"""

import logging
import time
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from models.transaction import Transaction, TransactionType
from models.recurring_transaction import (
    MissedOccurrenceSummary,
    NotificationKind,
    RecurringTransaction,
    StatusReason,
)
from services.recurring_transactions.collaborators import (
    AccountBalanceLookup,
    NotificationSink,
    PatternStore,
    PreferenceLookup,
    TransactionSource,
)
from services.recurring_transactions.config import TrackerConfig, DEFAULT_TRACKER_CONFIG
from services.recurring_transactions.grouping import DataIntegrityError
from services.recurring_transactions.scheduling import calculate_next_expected_date
from utils.db.base import ConflictError

logger = logging.getLogger(__name__)

Notification = Tuple[NotificationKind, Dict[str, Any]]


class MissedOccurrenceService:
    """
    Runs the missed-occurrence check over all active recurring transactions.
    """

    def __init__(
        self,
        store: PatternStore,
        transaction_source: TransactionSource,
        balance_lookup: AccountBalanceLookup,
        notification_sink: NotificationSink,
        preference_lookup: PreferenceLookup,
        config: Optional[TrackerConfig] = None
    ):
        self.store = store
        self.transaction_source = transaction_source
        self.balance_lookup = balance_lookup
        self.notification_sink = notification_sink
        self.preference_lookup = preference_lookup
        self.config = config or DEFAULT_TRACKER_CONFIG

        # Per-run caches, reset by run_missed_occurrence_check
        self._transactions_by_scope: Dict[Optional[uuid.UUID], List[Transaction]] = {}
        self._reminder_days_by_user: Dict[str, int] = {}

    def run_missed_occurrence_check(self, now: Optional[date] = None) -> MissedOccurrenceSummary:
        """
        Process active records, oldest awaiting occurrence first.

        Args:
            now: Reference date (defaults to today, UTC)

        Returns:
            Counts of processed, deactivated, notified, failed, conflicting
            and deferred records
        """
        now = now or datetime.now(timezone.utc).date()
        summary = MissedOccurrenceSummary()
        self._transactions_by_scope = {}
        self._reminder_days_by_user = {}

        unreadable: List[Dict[str, Any]] = []
        records = [r for r in self.store.list_active_patterns(None, on_invalid=unreadable.append) if r.is_active]
        if unreadable:
            logger.error(f"Skipped {len(unreadable)} unreadable recurring transactions")
            summary.errors += len(unreadable)
        records.sort(key=lambda r: (r.awaiting_date, str(r.recurring_transaction_id)))
        logger.info(f"Missed-occurrence check for {now}: {len(records)} active recurring transactions")

        started = time.monotonic()
        for index, record in enumerate(records):
            if self._budget_exhausted(index, started):
                summary.deferred = len(records) - index
                logger.warning(f"Run cap reached; deferring {summary.deferred} records to the next run")
                break

            try:
                self._check_integrity(record)
                self.process_record(record, now, summary)
                summary.processed += 1
            except ConflictError as e:
                logger.warning(
                    f"Conflict on recurring transaction {record.recurring_transaction_id} "
                    f"({record.merchant_name}): {str(e)}"
                )
                summary.conflicts += 1
            except DataIntegrityError as e:
                logger.error(
                    f"Skipping recurring transaction {record.recurring_transaction_id} "
                    f"({record.merchant_name}): {str(e)}"
                )
                summary.errors += 1
            except Exception as e:
                logger.exception(
                    f"Error processing recurring transaction {record.recurring_transaction_id} "
                    f"({record.merchant_name}): {str(e)}"
                )
                summary.errors += 1

        logger.info(f"Missed-occurrence check complete: {summary.model_dump()}")
        return summary

    def _budget_exhausted(self, index: int, started: float) -> bool:
        if self.config.max_records_per_run is not None and index >= self.config.max_records_per_run:
            return True
        if self.config.max_run_seconds is not None and time.monotonic() - started >= self.config.max_run_seconds:
            return True
        return False

    def _check_integrity(self, record: RecurringTransaction) -> None:
        if record.account_id is not None and record.credit_card_id is not None:
            raise DataIntegrityError("both accountId and creditCardId are set")

    def process_record(self, record: RecurringTransaction, now: date, summary: MissedOccurrenceSummary) -> None:
        """Run the overdue or upcoming branch for one record."""
        reference = record.awaiting_date
        if (now - reference).days >= self.config.grace_window_days:
            self._handle_overdue(record, reference, now, summary)
            return

        if record.pending_occurrence_date is None:
            days_until_due = (record.next_expected_date - now).days
            if 0 <= days_until_due <= self.config.reminder_lookahead_days:
                self._handle_upcoming(record, days_until_due, summary)

    # ------------------------------------------------------------------
    # Overdue branch
    # ------------------------------------------------------------------

    def _handle_overdue(
        self,
        record: RecurringTransaction,
        reference: date,
        now: date,
        summary: MissedOccurrenceSummary
    ) -> None:
        match = self.find_matching_transaction(record, reference, now)
        if match is not None:
            self._write(record, {
                'missedStreak': 0,
                'lastOccurrenceDate': match.date,
                'occurrenceCount': record.occurrence_count + 1,
                'nextExpectedDate': self._next_after(record, match.date),
                'transactionIds': record.transaction_ids + [match.transaction_id],
            }, remove_fields=['lastMissedDate', 'pendingOccurrenceDate'])
            logger.info(
                f"Confirmed {record.merchant_name} occurrence on {match.date} "
                f"(expected {reference})"
            )
            return

        streak = record.missed_streak + 1
        updates: Dict[str, Any] = {'missedStreak': streak, 'lastMissedDate': reference}
        deactivate = streak >= self.config.deactivate_after_misses
        if deactivate:
            updates['isActive'] = False
            updates['statusReason'] = StatusReason.MISSED_TWICE
        self._write(record, updates)

        if deactivate:
            summary.deactivated += 1
            logger.info(f"Deactivated {record.merchant_name} after {streak} missed occurrences")
        if record.missed_streak == 0:
            self._send(record, [(NotificationKind.MISSED, {
                'merchantName': record.merchant_name,
                'expectedAmount': str(record.expected_amount),
                'expectedDate': reference.isoformat(),
                'missedStreak': streak,
            })], summary)

    def find_matching_transaction(
        self,
        record: RecurringTransaction,
        reference: date,
        now: date
    ) -> Optional[Transaction]:
        """
        The real transaction confirming the occurrence expected on reference.

        Candidates share the record's merchant, direction and settlement
        account, land within match_window_days of reference, fall within the
        amount tolerance and postdate the last confirmed occurrence. The
        closest date wins, then the closest amount.
        """
        tolerance = self.amount_tolerance(record)
        candidates = []
        for txn in self._transactions_for(record.account_scope, now):
            if txn.merchant_group_id != record.merchant_group_id:
                continue
            if txn.transaction_type != record.transaction_type:
                continue
            if txn.settlement_account_id != record.account_scope:
                continue
            if abs((txn.date - reference).days) > self.config.match_window_days:
                continue
            if record.last_occurrence_date is not None and txn.date <= record.last_occurrence_date:
                continue
            if abs(txn.amount - record.expected_amount) > tolerance:
                continue
            candidates.append(txn)

        if not candidates:
            return None
        return min(candidates, key=lambda t: (
            abs((t.date - reference).days),
            abs(t.amount - record.expected_amount),
            str(t.transaction_id),
        ))

    def amount_tolerance(self, record: RecurringTransaction) -> Decimal:
        return self.config.amount_tolerance(
            record.expected_amount, record.amount_variance, record.is_amount_variable
        )

    def _transactions_for(self, account_scope: Optional[uuid.UUID], now: date) -> List[Transaction]:
        if account_scope not in self._transactions_by_scope:
            self._transactions_by_scope[account_scope] = self.transaction_source.get_transactions(
                account_scope, self.config.match_lookback_months, now
            )
        return self._transactions_by_scope[account_scope]

    # ------------------------------------------------------------------
    # Upcoming branch
    # ------------------------------------------------------------------

    def _handle_upcoming(
        self,
        record: RecurringTransaction,
        days_until_due: int,
        summary: MissedOccurrenceSummary
    ) -> None:
        reminder_days = self.reminder_days_before(record.user_id)
        if days_until_due > min(reminder_days, self.config.reminder_lookahead_days):
            return

        notifications: List[Notification] = []
        if days_until_due == reminder_days and record.reminder_enabled:
            notifications = self._reminder_notifications(record, days_until_due)

        self._write(record, {
            'nextExpectedDate': self._next_after(record, record.next_expected_date),
            'pendingOccurrenceDate': record.next_expected_date,
        })
        self._send(record, notifications, summary)

    def reminder_days_before(self, user_id: str) -> int:
        if user_id not in self._reminder_days_by_user:
            days = self.preference_lookup.get_reminder_days_before(user_id)
            self._reminder_days_by_user[user_id] = (
                days if days is not None else self.config.default_reminder_days_before
            )
        return self._reminder_days_by_user[user_id]

    def _reminder_notifications(self, record: RecurringTransaction, days_until_due: int) -> List[Notification]:
        notifications: List[Notification] = [(NotificationKind.UPCOMING, {
            'merchantName': record.merchant_name,
            'expectedAmount': str(record.expected_amount),
            'dueDate': record.next_expected_date.isoformat(),
            'daysUntilDue': days_until_due,
        })]

        if record.transaction_type == TransactionType.EXPENSE and record.account_id is not None:
            balance = self.balance_lookup.get_account_balance(record.account_id)
            if balance is not None and balance < record.expected_amount:
                notifications.append((NotificationKind.INSUFFICIENT_FUNDS, {
                    'merchantName': record.merchant_name,
                    'expectedAmount': str(record.expected_amount),
                    'currentBalance': str(balance),
                    'shortfall': str(record.expected_amount - balance),
                }))
        return notifications

    # ------------------------------------------------------------------
    # Writes and notifications
    # ------------------------------------------------------------------

    def _next_after(self, record: RecurringTransaction, last_date: date) -> date:
        return calculate_next_expected_date(
            last_date, record.frequency, record.interval, record.day_of_month, record.day_of_week
        )

    def _write(
        self,
        record: RecurringTransaction,
        updates: Dict[str, Any],
        remove_fields: Optional[List[str]] = None
    ) -> None:
        self.store.update_pattern(
            record.recurring_transaction_id,
            record.user_id,
            updates,
            expected={
                'missedStreak': record.missed_streak,
                'nextExpectedDate': record.next_expected_date,
            },
            remove_fields=remove_fields,
        )

    def _send(
        self,
        record: RecurringTransaction,
        notifications: List[Notification],
        summary: MissedOccurrenceSummary
    ) -> None:
        for kind, payload in notifications:
            try:
                self.notification_sink.notify(
                    record.user_id, record.account_scope, record.recurring_transaction_id, kind, payload
                )
                summary.notifications_sent += 1
            except Exception as e:
                logger.exception(
                    f"Failed to send {kind.value} notification for {record.recurring_transaction_id} "
                    f"({record.merchant_name}): {str(e)}"
                )
                summary.errors += 1
