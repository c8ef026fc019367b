"""
Recurring Transaction Detection Consumer Lambda.

This Lambda function consumes events from EventBridge that request recurring
transaction detection for one account and processes them asynchronously.

Event Types Processed:
- recurring_transaction.detection.requested: Run a detection pass

The consumer fetches the account's transaction history, runs the detection
service, persists newly detected patterns and publishes a
recurring_transaction.detection.completed event.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from consumers.base_consumer import BaseEventConsumer, EventProcessingError
from models.events import BaseEvent, RecurringTransactionsDetectedEvent
from services.event_service import EventService
from services.recurring_transactions import RecurringTransactionDetectionService, save_detected_patterns
from services.recurring_transactions.collaborators import PatternStore, TransactionSource
from utils.db.recurring_transactions import DynamoDBPatternStore
from utils.db.transactions import DynamoDBTransactionSource

logger = logging.getLogger()
logger.setLevel(logging.INFO)

DEFAULT_LOOKBACK_MONTHS = 12
MAX_LOOKBACK_MONTHS = 60


class RecurringTransactionDetectionConsumer(BaseEventConsumer):
    """Consumer for recurring transaction detection requests"""

    DETECTION_EVENT_TYPES = {
        "recurring_transaction.detection.requested",
    }

    def __init__(
        self,
        transaction_source: Optional[TransactionSource] = None,
        store: Optional[PatternStore] = None,
        event_service: Optional[EventService] = None,
        detection_service: Optional[RecurringTransactionDetectionService] = None
    ):
        super().__init__("recurring_transaction_detection_consumer")
        self.transaction_source = transaction_source or DynamoDBTransactionSource()
        self.store = store or DynamoDBPatternStore()
        self.event_service = event_service or EventService()
        self.detection_service = detection_service or RecurringTransactionDetectionService()

    def should_process_event(self, event: BaseEvent) -> bool:
        return event.event_type in self.DETECTION_EVENT_TYPES

    def process_event(self, event: BaseEvent) -> None:
        """
        Process a detection request.

        This method:
        1. Validates the account and lookback parameters
        2. Fetches the account's transactions in the lookback window
        3. Runs pattern detection
        4. Saves patterns that are not already tracked
        5. Publishes a detection completed event
        """
        data = event.data or {}
        account_id = self._parse_account_id(data.get("accountId"), event.event_id)
        lookback_months = data.get("lookbackMonths")
        if lookback_months is None:
            lookback_months = DEFAULT_LOOKBACK_MONTHS
        valid = isinstance(lookback_months, int) and not isinstance(lookback_months, bool)
        if not valid or not 1 <= lookback_months <= MAX_LOOKBACK_MONTHS:
            raise EventProcessingError(
                f"lookbackMonths must be an integer between 1 and {MAX_LOOKBACK_MONTHS}",
                event_id=event.event_id,
                permanent=True
            )

        now = datetime.now(timezone.utc).date()
        logger.info(
            f"Detection requested by {event.user_id} for account {account_id}, "
            f"lookback {lookback_months} months"
        )

        transactions = [
            t for t in self.transaction_source.get_transactions(account_id, lookback_months, now)
            if t.user_id == event.user_id
        ]
        patterns = self.detection_service.detect_recurring_patterns(
            transactions, lookback_months=lookback_months, now=now
        )
        result = save_detected_patterns(patterns, self.store)

        completed = RecurringTransactionsDetectedEvent(
            user_id=event.user_id,
            account_id=str(account_id),
            patterns_detected=len(patterns),
            patterns_saved=result.saved,
            patterns_skipped=result.skipped,
            transactions_analyzed=len(transactions),
            causation_id=event.event_id,
        )
        if not self.event_service.publish_event(completed):
            logger.warning(f"Detection completed event for {event.event_id} was not published")

        logger.info(
            f"Detection completed: {len(patterns)} patterns, {result.saved} saved, "
            f"{result.skipped} already tracked, {result.errors} errors, "
            f"{len(transactions)} transactions analyzed"
        )

    @staticmethod
    def _parse_account_id(value: Any, event_id: str) -> uuid.UUID:
        if not value:
            raise EventProcessingError("accountId is required", event_id=event_id, permanent=True)
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise EventProcessingError(f"Invalid accountId: {value}", event_id=event_id, permanent=True)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for recurring transaction detection events from EventBridge.

    Expected event format from EventBridge:
    {
        "version": "0",
        "id": "event-id",
        "detail-type": "recurring_transaction.detection.requested",
        "source": "recurring_transaction.service",
        "detail": {
            "eventId": "...",
            "userId": "...",
            "data": {
                "accountId": "account-id",
                "lookbackMonths": 12
            }
        }
    }
    """
    try:
        logger.info(f"Recurring transaction detection consumer received event: {json.dumps(event, default=str)}")
        consumer = RecurringTransactionDetectionConsumer()
        return consumer.handle_eventbridge_event(event, context)

    except Exception as e:
        logger.exception(f"Recurring transaction detection consumer failed: {str(e)}")
        return {
            "statusCode": 500,
            "body": json.dumps({
                "error": "Recurring transaction detection consumer failed",
                "message": str(e),
            }),
        }
