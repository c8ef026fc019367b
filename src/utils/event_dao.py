"""
Event Data Access Object for handling EventBridge operations.
"""
import logging
import os
import boto3
from typing import Dict, Any
from botocore.exceptions import ClientError, BotoCoreError

logger = logging.getLogger(__name__)

DEFAULT_REGION = 'eu-west-2'


def get_eventbridge_client():
    """Get EventBridge client with region configuration"""
    return boto3.client('events', region_name=os.environ.get('AWS_REGION', DEFAULT_REGION))


def get_event_bus_name() -> str:
    """Get the event bus name from environment variables"""
    return (
        os.environ.get('EVENT_BUS_NAME') or
        os.environ.get('EVENTBRIDGE_BUS_NAME') or
        f"recurring-transactions-{os.environ.get('ENVIRONMENT', 'dev')}-events"
    )


def publish_event_to_eventbridge(event_entry: Dict[str, Any]) -> bool:
    """
    Publish a single event to EventBridge.

    Args:
        event_entry: The EventBridge-formatted event entry

    Returns:
        bool: True if successful, False otherwise
    """
    try:
        client = get_eventbridge_client()
        eventbridge_entry = {
            **event_entry,
            'EventBusName': get_event_bus_name()
        }

        logger.debug(
            f"Publishing event to EventBridge: {eventbridge_entry.get('Source', 'unknown')} - "
            f"{eventbridge_entry.get('DetailType', 'unknown')}"
        )
        response = client.put_events(Entries=[eventbridge_entry])

        if response.get('FailedEntryCount', 0) > 0:
            failed_entries = [
                entry for entry in response.get('Entries', [])
                if entry.get('ErrorCode')
            ]
            logger.error(f"Failed to publish event: {failed_entries}")
            return False

        return True

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'UnknownError')
        error_message = e.response.get('Error', {}).get('Message', 'Unknown error message')
        logger.error(f"AWS ClientError publishing event: {error_code} - {error_message}")
        return False

    except BotoCoreError as e:
        logger.error(f"BotoCoreError publishing event: {str(e)}")
        return False
