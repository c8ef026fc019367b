"""
Unit tests for MissedOccurrenceService.

Collaborators are MagicMocks; every test runs the check against the fixed
reference date 2024-06-20.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from models.transaction import TransactionType
from models.recurring_transaction import NotificationKind, RecurrenceFrequency, StatusReason
from services.recurring_transactions import MissedOccurrenceService
from services.recurring_transactions.config import TrackerConfig
from utils.db.base import ConflictError
from tests.fixtures.recurring_transaction_fixtures import (
    REFERENCE_DATE,
    create_record,
    matching_transaction,
)


@pytest.fixture
def store():
    mock = MagicMock()
    mock.list_active_patterns.return_value = []
    return mock


@pytest.fixture
def transaction_source():
    mock = MagicMock()
    mock.get_transactions.return_value = []
    return mock


@pytest.fixture
def balance_lookup():
    mock = MagicMock()
    mock.get_account_balance.return_value = Decimal("1000.00")
    return mock


@pytest.fixture
def notification_sink():
    return MagicMock()


@pytest.fixture
def preference_lookup():
    mock = MagicMock()
    mock.get_reminder_days_before.return_value = None
    return mock


@pytest.fixture
def service(store, transaction_source, balance_lookup, notification_sink, preference_lookup):
    return MissedOccurrenceService(
        store=store,
        transaction_source=transaction_source,
        balance_lookup=balance_lookup,
        notification_sink=notification_sink,
        preference_lookup=preference_lookup,
    )


def _update(store, index=0):
    """(updates, expected, remove_fields) of the index-th update_pattern call."""
    call = store.update_pattern.call_args_list[index]
    return call.args[2], call.kwargs['expected'], call.kwargs.get('remove_fields')


def _kinds(notification_sink):
    return [call.args[3] for call in notification_sink.notify.call_args_list]


class TestOverdueOccurrences:
    """Test cases for records whose expected date has passed the grace window."""

    def test_confirmed_occurrence(self, service, store, transaction_source, notification_sink):
        """Test that a matching charge confirms the occurrence and reschedules from it."""
        record = create_record(date(2024, 6, 15), occurrenceCount=6, transactionIds=[uuid.uuid4()])
        charge = matching_transaction(record, date(2024, 6, 16))
        store.list_active_patterns.return_value = [record]
        transaction_source.get_transactions.return_value = [charge]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, remove_fields = _update(store)
        assert updates == {
            'missedStreak': 0,
            'lastOccurrenceDate': date(2024, 6, 16),
            'occurrenceCount': 7,
            'nextExpectedDate': date(2024, 7, 15),
            'transactionIds': record.transaction_ids + [charge.transaction_id],
        }
        assert expected == {'missedStreak': 0, 'nextExpectedDate': date(2024, 6, 15)}
        assert set(remove_fields) == {'lastMissedDate', 'pendingOccurrenceDate'}
        assert store.update_pattern.call_args.args[:2] == (record.recurring_transaction_id, record.user_id)
        notification_sink.notify.assert_not_called()
        assert summary.processed == 1
        assert summary.deactivated == 0

    def test_first_miss(self, service, store, notification_sink):
        """Test that the first miss starts a streak and notifies once."""
        record = create_record(date(2024, 6, 15))
        store.list_active_patterns.return_value = [record]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, _ = _update(store)
        assert updates == {'missedStreak': 1, 'lastMissedDate': date(2024, 6, 15)}
        assert expected == {'missedStreak': 0, 'nextExpectedDate': date(2024, 6, 15)}
        assert _kinds(notification_sink) == [NotificationKind.MISSED]
        payload = notification_sink.notify.call_args.args[4]
        assert payload == {
            'merchantName': "Netflix",
            'expectedAmount': "15.99",
            'expectedDate': "2024-06-15",
            'missedStreak': 1,
        }
        assert summary.notifications_sent == 1
        assert summary.deactivated == 0

    def test_second_miss_deactivates(self, service, store, notification_sink):
        """Test that a second consecutive miss deactivates without notifying again."""
        record = create_record(date(2024, 6, 15), missedStreak=1, lastMissedDate=date(2024, 5, 15))
        store.list_active_patterns.return_value = [record]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, _ = _update(store)
        assert updates == {
            'missedStreak': 2,
            'lastMissedDate': date(2024, 6, 15),
            'isActive': False,
            'statusReason': StatusReason.MISSED_TWICE,
        }
        assert expected['missedStreak'] == 1
        notification_sink.notify.assert_not_called()
        assert summary.deactivated == 1
        assert summary.processed == 1

    def test_confirmation_resets_streak(self, service, store, transaction_source):
        record = create_record(date(2024, 6, 15), missedStreak=1, lastMissedDate=date(2024, 5, 15))
        store.list_active_patterns.return_value = [record]
        transaction_source.get_transactions.return_value = [matching_transaction(record, date(2024, 6, 14))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, remove_fields = _update(store)
        assert updates['missedStreak'] == 0
        assert expected['missedStreak'] == 1
        assert 'lastMissedDate' in remove_fields

    def test_within_grace_window_is_left_alone(self, service, store, notification_sink):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 18))]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        store.update_pattern.assert_not_called()
        notification_sink.notify.assert_not_called()
        assert summary.processed == 1

    def test_pending_occurrence_is_confirmed(self, service, store, transaction_source):
        """Test that a reminded occurrence is still matched after the schedule moved on."""
        record = create_record(date(2024, 7, 15), pendingOccurrenceDate=date(2024, 6, 15))
        store.list_active_patterns.return_value = [record]
        transaction_source.get_transactions.return_value = [matching_transaction(record, date(2024, 6, 15))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, remove_fields = _update(store)
        assert updates['lastOccurrenceDate'] == date(2024, 6, 15)
        assert updates['nextExpectedDate'] == date(2024, 7, 15)
        assert expected == {'missedStreak': 0, 'nextExpectedDate': date(2024, 7, 15)}
        assert 'pendingOccurrenceDate' in remove_fields

    def test_missed_pending_occurrence(self, service, store):
        record = create_record(date(2024, 7, 15), pendingOccurrenceDate=date(2024, 6, 15))
        store.list_active_patterns.return_value = [record]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, _, _ = _update(store)
        assert updates == {'missedStreak': 1, 'lastMissedDate': date(2024, 6, 15)}


class TestTransactionMatching:
    """Test cases for find_matching_transaction."""

    @pytest.fixture
    def record(self):
        return create_record(date(2024, 6, 15), lastOccurrenceDate=date(2024, 5, 15))

    def _match(self, service, transaction_source, record, candidates):
        transaction_source.get_transactions.return_value = candidates
        return service.find_matching_transaction(record, record.awaiting_date, REFERENCE_DATE)

    def test_closest_date_wins(self, service, transaction_source, record):
        near = matching_transaction(record, date(2024, 6, 16))
        far = matching_transaction(record, date(2024, 6, 13))
        assert self._match(service, transaction_source, record, [far, near]) == near

    def test_closest_amount_breaks_date_ties(self, service, transaction_source, record):
        exact = matching_transaction(record, date(2024, 6, 14))
        off = matching_transaction(record, date(2024, 6, 16), amount="17.99")
        assert self._match(service, transaction_source, record, [off, exact]) == exact

    def test_outside_date_window(self, service, transaction_source, record):
        late = matching_transaction(record, date(2024, 6, 19))
        assert self._match(service, transaction_source, record, [late]) is None

    def test_outside_amount_tolerance(self, service, transaction_source, record):
        assert self._match(service, transaction_source, record, [
            matching_transaction(record, date(2024, 6, 15), amount="21.00")
        ]) is None
        assert self._match(service, transaction_source, record, [
            matching_transaction(record, date(2024, 6, 15), amount="20.99")
        ]) is not None

    def test_must_postdate_last_occurrence(self, service, transaction_source):
        record = create_record(date(2024, 6, 15), lastOccurrenceDate=date(2024, 6, 13))
        already_counted = matching_transaction(record, date(2024, 6, 13))
        assert self._match(service, transaction_source, record, [already_counted]) is None

    def test_other_merchant_direction_or_account(self, service, transaction_source, record):
        other_merchant = matching_transaction(record, date(2024, 6, 15))
        other_merchant = other_merchant.model_copy(update={'merchant_group_id': uuid.uuid4()})
        refund = matching_transaction(record, date(2024, 6, 15))
        refund = refund.model_copy(update={'transaction_type': TransactionType.INCOME})
        other_account = matching_transaction(record, date(2024, 6, 15))
        other_account = other_account.model_copy(update={'account_id': uuid.uuid4()})

        assert self._match(service, transaction_source, record, [other_merchant, refund, other_account]) is None

    def test_amount_tolerance(self, service):
        assert service.amount_tolerance(create_record(date(2024, 6, 15), "15.99")) == Decimal("5")
        assert service.amount_tolerance(create_record(date(2024, 6, 15), "200.00")) == Decimal("10.0000")
        variable = create_record(
            date(2024, 6, 15), "91.50", isAmountVariable=True, amountVariance=Decimal("400")
        )
        assert service.amount_tolerance(variable) == Decimal("40")


class TestUpcomingOccurrences:
    """Test cases for reminders ahead of the next expected date."""

    def test_reminder_on_lead_day(self, service, store, notification_sink, balance_lookup):
        """Test that the upcoming reminder fires on the lead day and the schedule advances."""
        record = create_record(date(2024, 6, 22))
        store.list_active_patterns.return_value = [record]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        updates, expected, _ = _update(store)
        assert updates == {
            'nextExpectedDate': date(2024, 7, 22),
            'pendingOccurrenceDate': date(2024, 6, 22),
        }
        assert expected == {'missedStreak': 0, 'nextExpectedDate': date(2024, 6, 22)}
        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]
        assert notification_sink.notify.call_args.args[4] == {
            'merchantName': "Netflix",
            'expectedAmount': "15.99",
            'dueDate': "2024-06-22",
            'daysUntilDue': 2,
        }
        balance_lookup.get_account_balance.assert_called_once_with(record.account_id)
        assert summary.notifications_sent == 1

    def test_insufficient_funds(self, service, store, notification_sink, balance_lookup):
        record = create_record(date(2024, 6, 22), "120.00")
        store.list_active_patterns.return_value = [record]
        balance_lookup.get_account_balance.return_value = Decimal("100.00")

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _kinds(notification_sink) == [NotificationKind.UPCOMING, NotificationKind.INSUFFICIENT_FUNDS]
        assert notification_sink.notify.call_args.args[4] == {
            'merchantName': "Netflix",
            'expectedAmount': "120.00",
            'currentBalance': "100.00",
            'shortfall': "20.00",
        }
        assert summary.notifications_sent == 2

    def test_notifications_follow_the_write(self, service, store, notification_sink, balance_lookup):
        order = []
        store.update_pattern.side_effect = lambda *args, **kwargs: order.append('update')
        notification_sink.notify.side_effect = lambda *args, **kwargs: order.append('notify')
        balance_lookup.get_account_balance.return_value = Decimal("0")
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 22))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert order == ['update', 'notify', 'notify']

    def test_income_skips_balance_check(self, service, store, notification_sink, balance_lookup):
        record = create_record(date(2024, 6, 22), "2500.00", transaction_type=TransactionType.INCOME)
        store.list_active_patterns.return_value = [record]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        balance_lookup.get_account_balance.assert_not_called()
        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]

    def test_credit_card_skips_balance_check(self, service, store, notification_sink, balance_lookup):
        record = create_record(date(2024, 6, 22), creditCardId=uuid.uuid4())
        store.list_active_patterns.return_value = [record]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        balance_lookup.get_account_balance.assert_not_called()
        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]

    def test_unknown_balance(self, service, store, notification_sink, balance_lookup):
        balance_lookup.get_account_balance.return_value = None
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 22))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]

    def test_not_advanced_before_lead_day(self, service, store, notification_sink):
        """Test that a record due in five days waits for its reminder day."""
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 25))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        store.update_pattern.assert_not_called()
        notification_sink.notify.assert_not_called()

    def test_user_lead_time(self, service, store, notification_sink, preference_lookup):
        preference_lookup.get_reminder_days_before.return_value = 5
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 25))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]
        assert _update(store)[0]['pendingOccurrenceDate'] == date(2024, 6, 25)

    def test_missed_lead_day_advances_silently(self, service, store, notification_sink):
        """Test that a record already past its lead day is advanced without a late reminder."""
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 21))]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _update(store)[0]['nextExpectedDate'] == date(2024, 7, 21)
        notification_sink.notify.assert_not_called()

    def test_due_today(self, service, store, preference_lookup, notification_sink):
        preference_lookup.get_reminder_days_before.return_value = 0
        store.list_active_patterns.return_value = [create_record(REFERENCE_DATE)]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _update(store)[0]['pendingOccurrenceDate'] == REFERENCE_DATE
        assert _kinds(notification_sink) == [NotificationKind.UPCOMING]

    def test_reminders_disabled(self, service, store, notification_sink):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 22), reminderEnabled=False)]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _update(store)[0]['nextExpectedDate'] == date(2024, 7, 22)
        notification_sink.notify.assert_not_called()

    def test_pending_record_is_not_advanced_again(self, service, store):
        record = create_record(date(2024, 7, 20), pendingOccurrenceDate=date(2024, 6, 20))
        store.list_active_patterns.return_value = [record]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        store.update_pattern.assert_not_called()

    def test_weekly_record_advances_one_week(self, service, store):
        # 2024-06-22 is a Saturday
        record = create_record(date(2024, 6, 22), frequency=RecurrenceFrequency.WEEKLY, dayOfWeek=5)
        store.list_active_patterns.return_value = [record]

        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert _update(store)[0]['nextExpectedDate'] == date(2024, 6, 29)


class TestRunBehaviour:
    """Test cases for error isolation, caps and caching across a run."""

    def test_conflict_is_counted_and_not_notified(self, service, store, notification_sink):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 15))]
        store.update_pattern.side_effect = ConflictError("modified concurrently")

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert summary.conflicts == 1
        assert summary.processed == 0
        assert summary.errors == 0
        notification_sink.notify.assert_not_called()

    def test_failure_is_isolated_per_record(self, service, store, transaction_source):
        broken = create_record(date(2024, 6, 14))
        healthy = create_record(date(2024, 6, 15))
        store.list_active_patterns.return_value = [healthy, broken]

        def get_transactions(account_scope, lookback_months, now):
            if account_scope == broken.account_id:
                raise RuntimeError("transactions table unavailable")
            return []
        transaction_source.get_transactions.side_effect = get_transactions

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert summary.errors == 1
        assert summary.processed == 1
        assert store.update_pattern.call_count == 1
        assert store.update_pattern.call_args.args[0] == healthy.recurring_transaction_id

    def test_notification_failure_is_counted(self, service, store, notification_sink):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 15))]
        notification_sink.notify.side_effect = RuntimeError("event bus down")

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert store.update_pattern.call_count == 1
        assert summary.errors == 1
        assert summary.notifications_sent == 0
        assert summary.processed == 1

    def test_integrity_violations_are_skipped(self, service, store):
        both = create_record(date(2024, 6, 15)).model_copy(update={'credit_card_id': uuid.uuid4()})
        store.list_active_patterns.return_value = [both]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        store.update_pattern.assert_not_called()
        assert summary.errors == 1
        assert summary.processed == 0

    def test_unreadable_records_count_as_errors(self, service, store):
        """Test that stored items with negative counters are skipped and counted."""
        valid = create_record(date(2024, 6, 25))

        def list_active(account_scope=None, on_invalid=None):
            on_invalid({'recurringTransactionId': str(uuid.uuid4()), 'missedStreak': -1})
            return [valid]

        store.list_active_patterns.side_effect = list_active

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert summary.errors == 1
        assert summary.processed == 1

    def test_inactive_records_are_ignored(self, service, store):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 15), isActive=False)]

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        store.update_pattern.assert_not_called()
        assert summary.processed == 0

    def test_record_cap_defers_latest(self, store, transaction_source, balance_lookup,
                                      notification_sink, preference_lookup):
        records = [create_record(date(2024, 6, day)) for day in (15, 5, 10)]
        store.list_active_patterns.return_value = records
        service = MissedOccurrenceService(
            store, transaction_source, balance_lookup, notification_sink, preference_lookup,
            config=TrackerConfig(max_records_per_run=2),
        )

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert summary.processed == 2
        assert summary.deferred == 1
        processed_ids = [call.args[0] for call in store.update_pattern.call_args_list]
        assert processed_ids == [records[1].recurring_transaction_id, records[2].recurring_transaction_id]

    def test_time_budget(self, store, transaction_source, balance_lookup, notification_sink, preference_lookup):
        store.list_active_patterns.return_value = [create_record(date(2024, 6, 15)) for _ in range(3)]
        service = MissedOccurrenceService(
            store, transaction_source, balance_lookup, notification_sink, preference_lookup,
            config=TrackerConfig(max_run_seconds=0),
        )

        summary = service.run_missed_occurrence_check(REFERENCE_DATE)

        assert summary.deferred == 3
        assert summary.processed == 0

    def test_lookups_are_cached_per_run(self, service, store, transaction_source, preference_lookup):
        account_id = uuid.uuid4()
        store.list_active_patterns.return_value = [
            create_record(date(2024, 6, 15), account_id=account_id),
            create_record(date(2024, 6, 14), account_id=account_id),
            create_record(date(2024, 6, 21), account_id=account_id),
            create_record(date(2024, 6, 22), account_id=account_id),
        ]

        service.run_missed_occurrence_check(REFERENCE_DATE)
        service.run_missed_occurrence_check(REFERENCE_DATE)

        assert transaction_source.get_transactions.call_count == 2
        transaction_source.get_transactions.assert_called_with(account_id, 3, REFERENCE_DATE)
        assert preference_lookup.get_reminder_days_before.call_count == 2

    def test_lists_all_active_records(self, service, store):
        service.run_missed_occurrence_check(REFERENCE_DATE)
        store.list_active_patterns.assert_called_once()
        assert store.list_active_patterns.call_args.args == (None,)
