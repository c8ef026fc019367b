"""
User preferences models.

Only the recurring transaction section of the preferences document is
modelled; other sections are carried through untouched.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from typing_extensions import Self

logger = logging.getLogger(__name__)

RECURRING_TRANSACTIONS_SECTION = "recurringTransactions"


class RecurringTransactionPreferences(BaseModel):
    """Recurring transaction reminder settings."""
    reminder_days_before: Optional[int] = Field(default=None, alias="reminderDaysBefore", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class UserPreferences(BaseModel):
    """
    Represents user preferences in the system using Pydantic.
    """
    user_id: str = Field(alias="userId")
    preferences: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000), alias="createdAt")
    updated_at: int = Field(default_factory=lambda: int(datetime.now(timezone.utc).timestamp() * 1000), alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def recurring_transactions(self) -> RecurringTransactionPreferences:
        """The recurring transaction section, empty when absent or unreadable."""
        section = self.preferences.get(RECURRING_TRANSACTIONS_SECTION) or {}
        if not isinstance(section, dict):
            logger.warning(f"Ignoring malformed {RECURRING_TRANSACTIONS_SECTION} preferences for {self.user_id}")
            return RecurringTransactionPreferences()
        value = section.get("reminderDaysBefore")
        if isinstance(value, Decimal):
            value = int(value)
        try:
            return RecurringTransactionPreferences(reminderDaysBefore=value)
        except ValueError:
            logger.warning(f"Ignoring invalid reminderDaysBefore {value!r} for {self.user_id}")
            return RecurringTransactionPreferences()

    @classmethod
    def from_dynamodb_item(cls, data: Dict[str, Any]) -> Self:
        converted_data = data.copy()
        for field in ('createdAt', 'updatedAt'):
            if isinstance(converted_data.get(field), Decimal):
                converted_data[field] = int(converted_data[field])
        return cls.model_validate(converted_data)
