"""
Unit tests for recurring transaction models.
"""
import uuid
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from models.transaction import TransactionType
from models.recurring_transaction import (
    Cadence,
    MissedOccurrenceSummary,
    NotificationKind,
    RecurrenceFrequency,
    RecurringPattern,
    RecurringTransaction,
    StatusReason,
)
from tests.fixtures.recurring_transaction_fixtures import create_record


def _pattern(**overrides) -> RecurringPattern:
    data = {
        'userId': "user-1",
        'merchantGroupId': uuid.uuid4(),
        'merchantName': "Netflix",
        'frequency': RecurrenceFrequency.MONTHLY,
        'expectedAmount': Decimal("15.99"),
        'amountVariance': Decimal("0"),
        'transactionType': TransactionType.EXPENSE,
        'accountId': uuid.uuid4(),
        'confidenceScore': 0.92,
        'occurrenceCount': 6,
        'lastOccurrenceDate': date(2024, 6, 15),
        'nextExpectedDate': date(2024, 7, 15),
        'transactionIds': [uuid.uuid4(), uuid.uuid4()],
        'dayOfMonth': 15,
        'medianInterval': 30.5,
    }
    data.update(overrides)
    return RecurringPattern(**data)


class TestRecurrenceFrequency:
    """Test cases for frequency helpers."""

    def test_monthly_or_longer(self):
        assert RecurrenceFrequency.MONTHLY.is_monthly_or_longer
        assert RecurrenceFrequency.YEARLY.is_monthly_or_longer
        assert not RecurrenceFrequency.BIWEEKLY.is_monthly_or_longer
        assert not RecurrenceFrequency.CUSTOM.is_monthly_or_longer

    def test_weekly_anchored(self):
        assert RecurrenceFrequency.WEEKLY.is_weekly_anchored
        assert RecurrenceFrequency.BIWEEKLY.is_weekly_anchored
        assert not RecurrenceFrequency.DAILY.is_weekly_anchored

    def test_notification_type(self):
        assert NotificationKind.INSUFFICIENT_FUNDS.notification_type == "recurring_transaction_insufficient_funds"


class TestCadence:
    """Test cases for the Cadence model."""

    def test_jitter(self):
        cadence = Cadence(frequency=RecurrenceFrequency.WEEKLY, medianInterval=7, mad=1.4, dayOfWeek=0)
        assert cadence.jitter == pytest.approx(0.2)

    def test_rejects_invalid_anchor(self):
        with pytest.raises(ValidationError):
            Cadence(frequency=RecurrenceFrequency.WEEKLY, medianInterval=7, mad=0, dayOfWeek=7)

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValidationError):
            Cadence(frequency=RecurrenceFrequency.MONTHLY, medianInterval=0, mad=0)


class TestRecurringPattern:
    """Test cases for the RecurringPattern model."""

    def test_account_scope(self):
        card_id = uuid.uuid4()
        assert _pattern(accountId=None, creditCardId=card_id).account_scope == card_id

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            _pattern(confidenceScore=1.5)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            _pattern(expectedAmount=Decimal("-1"))


class TestRecurringTransaction:
    """Test cases for the persisted RecurringTransaction record."""

    def test_from_pattern(self):
        """Test that a fresh record copies the pattern and starts active."""
        pattern = _pattern()
        record = RecurringTransaction.from_pattern(pattern)

        assert record.user_id == pattern.user_id
        assert record.merchant_group_id == pattern.merchant_group_id
        assert record.expected_amount == Decimal("15.99")
        assert record.day_of_month == 15
        assert record.is_active is True
        assert record.missed_streak == 0
        assert record.occurrence_count == 6
        assert record.detected_occurrence_count == 6
        assert record.last_occurrence_date == date(2024, 6, 15)
        assert record.next_expected_date == date(2024, 7, 15)
        assert record.pending_occurrence_date is None
        assert record.transaction_ids == pattern.transaction_ids
        assert record.is_amount_variable is False

    def test_from_pattern_flags_variable_amounts(self):
        """Test that a spread above the variable-amount ratio flags the record."""
        # std 10 against an expected 91.50 is above 10%
        pattern = _pattern(expectedAmount=Decimal("91.50"), amountVariance=Decimal("100"))
        assert RecurringTransaction.from_pattern(pattern).is_amount_variable is True
        assert RecurringTransaction.from_pattern(pattern, variable_amount_ratio=0.2).is_amount_variable is False

    def test_awaiting_date(self):
        """Test that a pending occurrence takes precedence over the next expected date."""
        record = create_record(date(2024, 7, 15))
        assert record.awaiting_date == date(2024, 7, 15)

        pending = create_record(date(2024, 7, 15), pendingOccurrenceDate=date(2024, 6, 15))
        assert pending.awaiting_date == date(2024, 6, 15)

    def test_rejects_negative_counters(self):
        with pytest.raises(ValidationError):
            create_record(date(2024, 7, 15), missedStreak=-1)

    def test_rejects_invalid_day_of_month(self):
        with pytest.raises(ValidationError):
            create_record(date(2024, 7, 15), dayOfMonth=32)


class TestRecurringTransactionDynamoDBConversion:
    """Test cases for DynamoDB conversion of records."""

    def test_to_dynamodb_item(self):
        """Test that booleans become GSI strings and dates become ISO strings."""
        record = create_record(
            date(2024, 7, 15),
            lastOccurrenceDate=date(2024, 6, 15),
            confidenceScore=0.87,
        )
        item = record.to_dynamodb_item()

        assert item['isActive'] == 'true'
        assert item['reminderEnabled'] == 'true'
        assert item['isAmountVariable'] == 'false'
        assert item['nextExpectedDate'] == '2024-07-15'
        assert item['lastOccurrenceDate'] == '2024-06-15'
        assert item['frequency'] == 'monthly'
        assert item['transactionType'] == 'expense'
        assert item['confidenceScore'] == Decimal("0.87")
        assert item['recurringTransactionId'] == str(record.recurring_transaction_id)
        assert 'pendingOccurrenceDate' not in item
        assert 'creditCardId' not in item

    def test_dynamodb_round_trip(self):
        """Test that a stored record reads back unchanged."""
        record = create_record(
            date(2024, 7, 15),
            missedStreak=1,
            lastMissedDate=date(2024, 6, 15),
            pendingOccurrenceDate=date(2024, 6, 15),
            isActive=False,
            statusReason=StatusReason.MISSED_TWICE,
            transactionIds=[uuid.uuid4()],
        )
        item = record.to_dynamodb_item()
        item['missedStreak'] = Decimal(item['missedStreak'])
        item['occurrenceCount'] = Decimal(item['occurrenceCount'])

        assert RecurringTransaction.from_dynamodb_item(item).model_dump() == record.model_dump()

    def test_invalid_status_reason_is_dropped(self):
        item = create_record(date(2024, 7, 15)).to_dynamodb_item()
        item['statusReason'] = "cancelled_by_user"
        assert RecurringTransaction.from_dynamodb_item(item).status_reason is None


class TestMissedOccurrenceSummary:

    def test_serializes_with_aliases(self):
        summary = MissedOccurrenceSummary(processed=3, notifications_sent=2)
        assert summary.model_dump(by_alias=True) == {
            'processed': 3,
            'deactivated': 0,
            'notificationsSent': 2,
            'errors': 0,
            'conflicts': 0,
            'deferred': 0,
        }
