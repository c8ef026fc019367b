"""
Event models for the event-driven architecture.
Contains the base event structure and the recurring transaction events.
"""
from dataclasses import dataclass
from typing import Dict, Any, Optional
from datetime import datetime
import uuid
import json


@dataclass
class BaseEvent:
    """Base event structure for all events in the system"""
    event_id: str
    event_type: str
    event_version: str
    timestamp: int  # Unix timestamp in milliseconds
    source: str
    user_id: str
    correlation_id: Optional[str] = None
    causation_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_eventbridge_format(self) -> Dict[str, Any]:
        """Convert to EventBridge event format"""
        return {
            'Source': self.source,
            'DetailType': self.event_type,
            'Detail': json.dumps({
                'eventId': self.event_id,
                'eventVersion': self.event_version,
                'timestamp': self.timestamp,
                'userId': self.user_id,
                'correlationId': self.correlation_id,
                'causationId': self.causation_id,
                'data': self.data or {},
                'metadata': self.metadata or {}
            }, default=str)
        }


RECURRING_TRANSACTION_SOURCE = 'recurring_transaction.service'


def _timestamp_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


# =============================================================================
# RECURRING TRANSACTION EVENTS
# =============================================================================

@dataclass
class RecurringTransactionNotificationEvent(BaseEvent):
    """Published when the tracker requests a user notification"""

    def __init__(self, user_id: str, recurring_transaction_id: str, notification_type: str,
                 account_scope: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(
            event_id=str(uuid.uuid4()),
            event_type='recurring_transaction.notification',
            event_version='1.0',
            timestamp=_timestamp_ms(),
            source=RECURRING_TRANSACTION_SOURCE,
            user_id=user_id,
            data={
                'notificationType': notification_type,
                'recurringTransactionId': recurring_transaction_id,
                'accountScope': account_scope,
                **(payload or {})
            }
        )


@dataclass
class RecurringTransactionDetectionRequestedEvent(BaseEvent):
    """Published to request a detection pass over an account's history"""

    def __init__(self, user_id: str, account_id: Optional[str] = None, lookback_months: int = 12,
                 correlation_id: Optional[str] = None):
        super().__init__(
            event_id=str(uuid.uuid4()),
            event_type='recurring_transaction.detection.requested',
            event_version='1.0',
            timestamp=_timestamp_ms(),
            source=RECURRING_TRANSACTION_SOURCE,
            user_id=user_id,
            correlation_id=correlation_id,
            data={
                'accountId': account_id,
                'lookbackMonths': lookback_months
            }
        )


@dataclass
class RecurringTransactionsDetectedEvent(BaseEvent):
    """Published after detected patterns have been persisted"""

    def __init__(self, user_id: str, account_id: Optional[str], patterns_detected: int,
                 patterns_saved: int, patterns_skipped: int, transactions_analyzed: int,
                 causation_id: Optional[str] = None):
        super().__init__(
            event_id=str(uuid.uuid4()),
            event_type='recurring_transaction.detection.completed',
            event_version='1.0',
            timestamp=_timestamp_ms(),
            source=RECURRING_TRANSACTION_SOURCE,
            user_id=user_id,
            causation_id=causation_id,
            data={
                'accountId': account_id,
                'patternsDetected': patterns_detected,
                'patternsSaved': patterns_saved,
                'patternsSkipped': patterns_skipped,
                'transactionsAnalyzed': transactions_analyzed
            }
        )
