"""
Missed Occurrence Consumer Lambda.

Invoked on a schedule by an EventBridge rule. Runs the missed-occurrence
check over all active recurring transactions: confirms or misses overdue
occurrences, deactivates records missed twice and requests reminder and
insufficient-funds notifications.

Environment:
- MAX_RECORDS_PER_RUN: overrides the per-invocation record cap
- MAX_RUN_SECONDS: optional wall-clock budget per invocation
"""

import json
import logging
import os
from dataclasses import replace
from typing import Dict, Any, Optional

from services.recurring_transactions import MissedOccurrenceService, TrackerConfig, DEFAULT_TRACKER_CONFIG
from services.recurring_transactions.notifications import EventNotificationSink
from utils.db.accounts import DynamoDBAccountBalanceLookup
from utils.db.recurring_transactions import DynamoDBPatternStore
from utils.db.transactions import DynamoDBTransactionSource
from utils.db.user_preferences import DynamoDBPreferenceLookup

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def tracker_config_from_env(base: Optional[TrackerConfig] = None) -> TrackerConfig:
    """Apply MAX_RECORDS_PER_RUN and MAX_RUN_SECONDS overrides to the tracker config."""
    config = base or DEFAULT_TRACKER_CONFIG
    overrides: Dict[str, Any] = {}

    max_records = os.environ.get('MAX_RECORDS_PER_RUN')
    if max_records:
        overrides['max_records_per_run'] = int(max_records)

    max_seconds = os.environ.get('MAX_RUN_SECONDS')
    if max_seconds:
        overrides['max_run_seconds'] = float(max_seconds)

    return replace(config, **overrides) if overrides else config


def create_service(config: Optional[TrackerConfig] = None) -> MissedOccurrenceService:
    return MissedOccurrenceService(
        store=DynamoDBPatternStore(),
        transaction_source=DynamoDBTransactionSource(),
        balance_lookup=DynamoDBAccountBalanceLookup(),
        notification_sink=EventNotificationSink(),
        preference_lookup=DynamoDBPreferenceLookup(),
        config=config,
    )


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for the scheduled missed-occurrence check.

    Returns:
        statusCode 200 with the run summary, or 500 on an unexpected failure
    """
    try:
        logger.info(f"Missed occurrence check triggered: {json.dumps(event, default=str)}")
        service = create_service(tracker_config_from_env())
        summary = service.run_missed_occurrence_check()

        return {
            "statusCode": 200,
            "message": (
                f"Processed {summary.processed} recurring transactions, "
                f"sent {summary.notifications_sent} notifications"
            ),
            **summary.model_dump(by_alias=True),
        }

    except Exception as e:
        logger.exception(f"Missed occurrence check failed: {str(e)}")
        return {
            "statusCode": 500,
            "message": "Missed occurrence check failed",
            "error": str(e),
        }
