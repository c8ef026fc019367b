"""
Notification delivery through the event bus.

The tracker only requests notifications; a downstream consumer of
recurring_transaction.notification events owns delivery to the user.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from models.events import RecurringTransactionNotificationEvent
from models.recurring_transaction import NotificationKind
from services.event_service import EventService

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised when a notification request could not be published."""
    pass


class EventNotificationSink:
    """Publishes notification requests as EventBridge events."""

    def __init__(self, event_service: Optional[EventService] = None, max_retries: int = 2):
        self.event_service = event_service or EventService()
        self.max_retries = max_retries

    def notify(
        self,
        user_id: str,
        account_scope: Optional[uuid.UUID],
        pattern_id: uuid.UUID,
        kind: NotificationKind,
        payload: Dict[str, Any]
    ) -> None:
        event = RecurringTransactionNotificationEvent(
            user_id=user_id,
            recurring_transaction_id=str(pattern_id),
            notification_type=kind.notification_type,
            account_scope=str(account_scope) if account_scope else None,
            payload=payload,
        )
        if not self.event_service.publish_event_with_retry(event, max_retries=self.max_retries):
            raise NotificationDeliveryError(
                f"Could not publish {kind.value} notification for recurring transaction {pattern_id}"
            )
        logger.info(f"Requested {kind.value} notification for recurring transaction {pattern_id}")
