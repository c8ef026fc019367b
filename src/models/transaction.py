"""
Transaction input model for recurring transaction detection.

Transactions are supplied by the storage layer and are read-only to the
detector. Dates are calendar dates; the transaction table stores them as
epoch milliseconds, which the validators accept as well as ISO strings.
"""
import uuid
import logging
from typing import Dict, Any, Optional, List
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing_extensions import Self

logger = logging.getLogger(__name__)


class TransactionType(str, Enum):
    """Direction of money movement."""
    INCOME = "income"
    EXPENSE = "expense"


class CategoryAssignment(BaseModel):
    """
    Link between a transaction and a category.

    System and buffer categories represent internal movements (transfers,
    envelope buffers) rather than real spending or income.
    """
    category_id: uuid.UUID = Field(alias="categoryId")
    is_system_category: bool = Field(default=False, alias="isSystemCategory")
    is_buffer_category: bool = Field(default=False, alias="isBufferCategory")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_budget_category(self) -> bool:
        return not (self.is_system_category or self.is_buffer_category)


def coerce_calendar_date(v: Any) -> Any:
    """Accept epoch milliseconds, datetimes and ISO strings as calendar dates."""
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, Decimal)):
        return datetime.fromtimestamp(int(v) / 1000, tz=timezone.utc).date()
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str) and "T" in v:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
    return v


class Transaction(BaseModel):
    """
    A single posted transaction as seen by the detector.
    """
    transaction_id: uuid.UUID = Field(default_factory=uuid.uuid4, alias="transactionId")
    user_id: str = Field(alias="userId")
    date: date
    total_amount: Decimal = Field(alias="totalAmount")
    transaction_type: TransactionType = Field(alias="transactionType")
    merchant_group_id: Optional[uuid.UUID] = Field(default=None, alias="merchantGroupId")
    account_id: Optional[uuid.UUID] = Field(default=None, alias="accountId")
    credit_card_id: Optional[uuid.UUID] = Field(default=None, alias="creditCardId")
    merchant_display_name: Optional[str] = Field(default=None, alias="merchantDisplayName", max_length=1000)
    category_assignments: List[CategoryAssignment] = Field(default_factory=list, alias="categoryAssignments")

    model_config = ConfigDict(
        populate_by_name=True,
        json_encoders={
            Decimal: str,
            uuid.UUID: str
        },
        use_enum_values=False
    )

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, v: Any) -> Any:
        return coerce_calendar_date(v)

    @property
    def amount(self) -> Decimal:
        """Magnitude of the transaction; direction is carried by transaction_type."""
        return abs(self.total_amount)

    @property
    def settlement_account_id(self) -> Optional[uuid.UUID]:
        return self.account_id or self.credit_card_id

    @property
    def has_conflicting_settlement(self) -> bool:
        return self.account_id is not None and self.credit_card_id is not None

    @property
    def budget_category_ids(self) -> List[uuid.UUID]:
        return [a.category_id for a in self.category_assignments if a.is_budget_category]

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        """Create from DynamoDB item data."""
        converted_data = data.copy()

        uuid_fields = ['transactionId', 'merchantGroupId', 'accountId', 'creditCardId']
        for field in uuid_fields:
            if field in converted_data and isinstance(converted_data[field], str):
                try:
                    converted_data[field] = uuid.UUID(converted_data[field])
                except ValueError:
                    logger.warning(f"Invalid UUID in {field}: {converted_data[field]}")
                    converted_data[field] = None

        if 'transactionType' in converted_data and isinstance(converted_data['transactionType'], str):
            converted_data['transactionType'] = converted_data['transactionType'].lower()

        return cls.model_validate(converted_data)
