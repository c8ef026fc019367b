"""
Recurring Transaction Models.

This module provides Pydantic models for recurring transaction detection
and tracking: the inferred cadence, the detection-time pattern, the
persisted record mutated by the missed-occurrence tracker, and the
summaries returned by the batch operations.
"""

import uuid
import logging
from typing import Optional, List, Dict, Any
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing_extensions import Self

from models.transaction import TransactionType, coerce_calendar_date

logger = logging.getLogger(__name__)

# Constants
DAY_OF_WEEK_ERROR_MESSAGE = "day_of_week must be between 0 (Monday) and 6 (Sunday)"
DAY_OF_MONTH_ERROR_MESSAGE = "day_of_month must be between 1 and 31"
TIMESTAMP_ERROR_MESSAGE = "Timestamp must be a positive integer representing milliseconds since epoch"


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class RecurrenceFrequency(str, Enum):
    """Discrete cadence of a recurring transaction."""
    DAILY = "daily"           # ~1 day intervals
    WEEKLY = "weekly"         # ~7 day intervals
    BIWEEKLY = "biweekly"     # ~14 day intervals
    MONTHLY = "monthly"       # ~30 day intervals
    BIMONTHLY = "bimonthly"   # ~60 day intervals
    QUARTERLY = "quarterly"   # ~90 day intervals
    YEARLY = "yearly"         # ~365 day intervals
    CUSTOM = "custom"         # Fixed day count that fits no bucket

    @property
    def is_monthly_or_longer(self) -> bool:
        return self in MONTHLY_OR_LONGER

    @property
    def is_weekly_anchored(self) -> bool:
        return self in WEEKLY_ANCHORED


MONTHLY_OR_LONGER = frozenset({
    RecurrenceFrequency.MONTHLY,
    RecurrenceFrequency.BIMONTHLY,
    RecurrenceFrequency.QUARTERLY,
    RecurrenceFrequency.YEARLY,
})

WEEKLY_ANCHORED = frozenset({
    RecurrenceFrequency.WEEKLY,
    RecurrenceFrequency.BIWEEKLY,
})


class StatusReason(str, Enum):
    """Why a persisted recurring transaction changed state."""
    MISSED_TWICE = "missed_twice"


class NotificationKind(str, Enum):
    """Notification requests emitted by the missed-occurrence tracker."""
    UPCOMING = "upcoming"
    MISSED = "missed"
    INSUFFICIENT_FUNDS = "insufficient_funds"

    @property
    def notification_type(self) -> str:
        return f"recurring_transaction_{self.value}"


class Cadence(BaseModel):
    """
    Inferred cadence of an amount group.

    medianInterval and mad are in days. dayOfMonth is set for monthly and
    longer cadences, dayOfWeek (0=Monday) for weekly and biweekly ones.
    """
    frequency: RecurrenceFrequency
    median_interval: float = Field(alias="medianInterval", gt=0)
    mad: float = Field(ge=0)
    day_of_month: Optional[int] = Field(default=None, alias="dayOfMonth", ge=1, le=31)
    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek", ge=0, le=6)
    evidence_pool: str = Field(default="group", alias="evidencePool")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def jitter(self) -> float:
        """Interval noise relative to the median interval."""
        return self.mad / self.median_interval


class RecurringPattern(BaseModel):
    """
    A recurring transaction detected in a snapshot of transaction history.

    Patterns are produced fresh on every detection run; lifecycle state is
    owned by the persisted RecurringTransaction record.
    """
    user_id: str = Field(alias="userId")
    merchant_group_id: uuid.UUID = Field(alias="merchantGroupId")
    merchant_name: str = Field(alias="merchantName")
    frequency: RecurrenceFrequency
    expected_amount: Decimal = Field(alias="expectedAmount", ge=0)
    amount_variance: Decimal = Field(default=Decimal("0"), alias="amountVariance", ge=0)
    transaction_type: TransactionType = Field(alias="transactionType")
    category_id: Optional[uuid.UUID] = Field(default=None, alias="categoryId")
    account_id: Optional[uuid.UUID] = Field(default=None, alias="accountId")
    credit_card_id: Optional[uuid.UUID] = Field(default=None, alias="creditCardId")
    confidence_score: float = Field(alias="confidenceScore", ge=0.0, le=1.0)
    occurrence_count: int = Field(alias="occurrenceCount", ge=0)
    last_occurrence_date: date = Field(alias="lastOccurrenceDate")
    next_expected_date: date = Field(alias="nextExpectedDate")
    transaction_ids: List[uuid.UUID] = Field(default_factory=list, alias="transactionIds")

    # Cadence details carried through to persistence
    day_of_month: Optional[int] = Field(default=None, alias="dayOfMonth", ge=1, le=31)
    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek", ge=0, le=6)
    interval: int = Field(default=1, ge=1)
    median_interval: float = Field(alias="medianInterval", gt=0)
    is_amount_variable: bool = Field(default=False, alias="isAmountVariable")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @property
    def account_scope(self) -> Optional[uuid.UUID]:
        return self.account_id or self.credit_card_id


class RecurringTransaction(BaseModel):
    """
    Persisted recurring transaction record.

    Carries every RecurringPattern field plus the lifecycle state maintained
    by the missed-occurrence tracker. occurrence_count here is cumulative and
    independent of the count seen at detection time (detected_occurrence_count).
    """
    recurring_transaction_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="recurringTransactionId")
    user_id: str = Field(alias="userId")

    merchant_group_id: uuid.UUID = Field(alias="merchantGroupId")
    merchant_name: str = Field(alias="merchantName")
    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    day_of_month: Optional[int] = Field(default=None, alias="dayOfMonth")
    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek")
    expected_amount: Decimal = Field(alias="expectedAmount", ge=0)
    amount_variance: Decimal = Field(default=Decimal("0"), alias="amountVariance", ge=0)
    is_amount_variable: bool = Field(default=False, alias="isAmountVariable")
    transaction_type: TransactionType = Field(alias="transactionType")
    category_id: Optional[uuid.UUID] = Field(default=None, alias="categoryId")
    account_id: Optional[uuid.UUID] = Field(default=None, alias="accountId")
    credit_card_id: Optional[uuid.UUID] = Field(default=None, alias="creditCardId")
    confidence_score: float = Field(default=0.0, alias="confidenceScore", ge=0.0, le=1.0)
    detected_occurrence_count: int = Field(default=0, alias="detectedOccurrenceCount", ge=0)
    transaction_ids: List[uuid.UUID] = Field(default_factory=list, alias="transactionIds")

    # Lifecycle state
    is_active: bool = Field(default=True, alias="isActive")
    missed_streak: int = Field(default=0, alias="missedStreak", ge=0)
    last_missed_date: Optional[date] = Field(default=None, alias="lastMissedDate")
    occurrence_count: int = Field(default=0, alias="occurrenceCount", ge=0)
    last_occurrence_date: Optional[date] = Field(default=None, alias="lastOccurrenceDate")
    next_expected_date: date = Field(alias="nextExpectedDate")
    pending_occurrence_date: Optional[date] = Field(default=None, alias="pendingOccurrenceDate")
    reminder_enabled: bool = Field(default=True, alias="reminderEnabled")
    status_reason: Optional[StatusReason] = Field(default=None, alias="statusReason")

    created_at: int = Field(default_factory=_now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=_now_ms, alias="updatedAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @field_validator('last_missed_date', 'last_occurrence_date', 'next_expected_date',
                     'pending_occurrence_date', mode='before')
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return coerce_calendar_date(v)

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not (0 <= v <= 6):
            raise ValueError(DAY_OF_WEEK_ERROR_MESSAGE)
        return v

    @field_validator('day_of_month')
    @classmethod
    def validate_day_of_month(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not (1 <= v <= 31):
            raise ValueError(DAY_OF_MONTH_ERROR_MESSAGE)
        return v

    @field_validator('created_at', 'updated_at')
    @classmethod
    def check_positive_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError(TIMESTAMP_ERROR_MESSAGE)
        return v

    @property
    def account_scope(self) -> Optional[uuid.UUID]:
        return self.account_id or self.credit_card_id

    @property
    def awaiting_date(self) -> date:
        """The occurrence date that still needs confirming by a real transaction."""
        return self.pending_occurrence_date or self.next_expected_date

    @classmethod
    def from_pattern(cls, pattern: RecurringPattern, variable_amount_ratio: float = 0.10) -> Self:
        """
        Build a fresh, active record from a detected pattern.

        The amount is flagged variable when its standard deviation exceeds
        variable_amount_ratio of the expected amount.
        """
        std = float(pattern.amount_variance) ** 0.5
        is_variable = pattern.is_amount_variable or std > float(pattern.expected_amount) * variable_amount_ratio
        return cls(
            userId=pattern.user_id,
            merchantGroupId=pattern.merchant_group_id,
            merchantName=pattern.merchant_name,
            frequency=pattern.frequency,
            interval=pattern.interval,
            dayOfMonth=pattern.day_of_month,
            dayOfWeek=pattern.day_of_week,
            expectedAmount=pattern.expected_amount,
            amountVariance=pattern.amount_variance,
            isAmountVariable=is_variable,
            transactionType=pattern.transaction_type,
            categoryId=pattern.category_id,
            accountId=pattern.account_id,
            creditCardId=pattern.credit_card_id,
            confidenceScore=pattern.confidence_score,
            detectedOccurrenceCount=pattern.occurrence_count,
            transactionIds=pattern.transaction_ids,
            occurrenceCount=pattern.occurrence_count,
            lastOccurrenceDate=pattern.last_occurrence_date,
            nextExpectedDate=pattern.next_expected_date,
        )

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        data = self.model_dump(by_alias=True, exclude_none=True)

        for key, value in data.items():
            if isinstance(value, uuid.UUID):
                data[key] = str(value)
            elif isinstance(value, date):
                data[key] = value.isoformat()
            elif isinstance(value, Enum):
                data[key] = value.value
            elif isinstance(value, float):
                data[key] = Decimal(str(value))

        data['transactionIds'] = [str(tid) for tid in self.transaction_ids]

        # DynamoDB GSIs require string types for boolean attributes
        data['isActive'] = 'true' if self.is_active else 'false'
        data['reminderEnabled'] = 'true' if self.reminder_enabled else 'false'
        data['isAmountVariable'] = 'true' if self.is_amount_variable else 'false'

        return data

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        int_fields = ['interval', 'dayOfMonth', 'dayOfWeek', 'detectedOccurrenceCount',
                      'missedStreak', 'occurrenceCount', 'createdAt', 'updatedAt']
        for field in int_fields:
            if field in converted_data and isinstance(converted_data[field], Decimal):
                converted_data[field] = int(converted_data[field])

        if 'confidenceScore' in converted_data and isinstance(converted_data['confidenceScore'], Decimal):
            converted_data['confidenceScore'] = float(converted_data['confidenceScore'])

        uuid_fields = ['recurringTransactionId', 'merchantGroupId', 'categoryId', 'accountId', 'creditCardId']
        for field in uuid_fields:
            if field in converted_data and isinstance(converted_data[field], str):
                try:
                    converted_data[field] = uuid.UUID(converted_data[field])
                except ValueError:
                    pass

        if converted_data.get('transactionIds'):
            converted_ids = []
            for tid in converted_data['transactionIds']:
                try:
                    converted_ids.append(uuid.UUID(str(tid)))
                except ValueError:
                    logger.warning(f"Dropping invalid transaction id {tid}")
            converted_data['transactionIds'] = converted_ids

        if 'statusReason' in converted_data and isinstance(converted_data['statusReason'], str):
            try:
                converted_data['statusReason'] = StatusReason(converted_data['statusReason'])
            except ValueError:
                logger.warning(f"Invalid StatusReason value: {converted_data['statusReason']}")
                converted_data['statusReason'] = None

        for field in ('isActive', 'reminderEnabled', 'isAmountVariable'):
            if field in converted_data and isinstance(converted_data[field], str):
                converted_data[field] = converted_data[field].lower() == 'true'

        return cls.model_validate(converted_data)


class MissedOccurrenceSummary(BaseModel):
    """Result of one run of the missed-occurrence tracker."""
    processed: int = 0
    deactivated: int = 0
    notifications_sent: int = Field(default=0, alias="notificationsSent")
    errors: int = 0
    conflicts: int = 0
    deferred: int = 0

    model_config = ConfigDict(populate_by_name=True)


class PatternSaveResult(BaseModel):
    """Result of persisting a batch of detected patterns."""
    saved: int = 0
    skipped: int = 0
    errors: int = 0
