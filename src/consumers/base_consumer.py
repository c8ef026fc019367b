"""
Base consumer framework for event-driven architecture.
Provides common functionality for all event consumers including event parsing,
error handling, metrics, and Lambda integration.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from datetime import datetime
from models.events import BaseEvent

logger = logging.getLogger(__name__)

MAX_REMEMBERED_EVENTS = 1000


class EventProcessingError(Exception):
    """Custom exception for event processing errors"""
    def __init__(self, message: str, event_id: Optional[str] = None, permanent: bool = False):
        super().__init__(message)
        self.event_id = event_id
        self.permanent = permanent


class BaseEventConsumer(ABC):
    """
    Base class for all event consumers.

    Provides common functionality including:
    - Event parsing from EventBridge/SQS format
    - Error handling and classification
    - Basic in-memory idempotency
    """

    def __init__(self, consumer_name: str):
        self.consumer_name = consumer_name
        self.processed_events: Dict[str, None] = {}
        self._lambda_context: Optional[Any] = None
        logger.info(f"Initializing {consumer_name} consumer")

    def handle_eventbridge_event(self, event: Dict[str, Any], context: Any) -> Dict[str, Any]:
        """
        Main handler for EventBridge events.

        Args:
            event: EventBridge event payload
            context: Lambda context object

        Returns:
            dict: Processing results and metrics
        """
        self._lambda_context = context
        start_time = datetime.now()
        stats: Dict[str, Any] = {
            'consumer': self.consumer_name,
            'processed_count': 0,
            'failed_count': 0,
            'skipped_count': 0,
            'errors': []
        }

        try:
            records = self._extract_records(event)
            if not records:
                logger.warning("No records found in event payload")
                return self._create_response(stats, start_time)

            logger.info(f"{self.consumer_name} processing {len(records)} records")

            for record in records:
                parsed_event: Optional[BaseEvent] = None
                try:
                    parsed_event = self._parse_event_record(record)

                    if not self.should_process_event(parsed_event):
                        logger.debug(f"Skipping event {parsed_event.event_id} - doesn't match criteria")
                        stats['skipped_count'] += 1
                        continue

                    if self._is_duplicate_event(parsed_event):
                        logger.info(f"Skipping duplicate event {parsed_event.event_id}")
                        stats['skipped_count'] += 1
                        continue

                    self.validate_event(parsed_event)
                    self.process_event(parsed_event)
                    self._mark_event_processed(parsed_event)
                    stats['processed_count'] += 1

                except EventProcessingError as e:
                    logger.error(f"EventProcessingError: {str(e)}")
                    stats['failed_count'] += 1
                    stats['errors'].append({
                        'event_id': e.event_id or (parsed_event.event_id if parsed_event else 'unknown'),
                        'error': str(e),
                        'permanent': e.permanent
                    })
                    if e.permanent:
                        raise

                except Exception as e:
                    logger.exception(f"Unexpected error processing record: {str(e)}")
                    permanent = self.is_permanent_failure(e)
                    stats['failed_count'] += 1
                    stats['errors'].append({
                        'event_id': parsed_event.event_id if parsed_event else 'unknown',
                        'error': str(e),
                        'permanent': permanent
                    })
                    if permanent:
                        raise

            total_events = stats['processed_count'] + stats['failed_count'] + stats['skipped_count']
            logger.info(f"{self.consumer_name} processing complete: "
                        f"{stats['processed_count']}/{total_events} processed, "
                        f"{stats['failed_count']} failed, "
                        f"{stats['skipped_count']} skipped")

            return self._create_response(stats, start_time)

        except Exception as e:
            logger.exception(f"{self.consumer_name} failed with critical error: {str(e)}")
            stats['errors'].append({
                'error': str(e),
                'critical': True
            })
            return self._create_response(stats, start_time, status_code=500)

    def _extract_records(self, event: Any) -> List[Dict[str, Any]]:
        """Extract records from different event formats"""
        if isinstance(event, list):
            return event
        if 'source' in event and 'detail-type' in event:
            return [event]
        if 'Records' in event:
            return event['Records']
        return [event]

    def _parse_event_record(self, record: Dict[str, Any]) -> BaseEvent:
        """Parse an EventBridge record, possibly wrapped in SQS, into a BaseEvent"""
        try:
            if 'detail' in record and 'source' in record:
                detail = record['detail']
                if isinstance(detail, str):
                    detail = json.loads(detail)
                return self._event_from_detail(detail, record.get('detail-type', ''), record.get('source', ''))

            if 'body' in record:
                body = json.loads(record['body'])
                if 'detail' in body and 'source' in body:
                    return self._parse_event_record(body)
                return self._event_from_detail(body, body.get('eventType', ''), body.get('source', ''))

        except json.JSONDecodeError as e:
            raise EventProcessingError(
                f"Failed to parse JSON in event record: {str(e)}",
                permanent=True
            )

        raise EventProcessingError(
            f"Unknown event record format: {list(record.keys())}",
            permanent=True
        )

    @staticmethod
    def _event_from_detail(detail: Dict[str, Any], event_type: str, source: str) -> BaseEvent:
        return BaseEvent(
            event_id=detail.get('eventId', ''),
            event_type=event_type,
            event_version=detail.get('eventVersion', '1.0'),
            timestamp=detail.get('timestamp', 0),
            source=source,
            user_id=detail.get('userId', ''),
            correlation_id=detail.get('correlationId'),
            causation_id=detail.get('causationId'),
            data=detail.get('data', {}),
            metadata=detail.get('metadata', {})
        )

    def _is_duplicate_event(self, event: BaseEvent) -> bool:
        return event.event_id in self.processed_events

    def _mark_event_processed(self, event: BaseEvent) -> None:
        self.processed_events[event.event_id] = None
        # Bound memory in long-running containers; dicts keep insertion order
        while len(self.processed_events) > MAX_REMEMBERED_EVENTS:
            del self.processed_events[next(iter(self.processed_events))]

    def _create_response(self, stats: Dict[str, Any], start_time: datetime, status_code: int = 200) -> Dict[str, Any]:
        """Create standardized response with metrics"""
        processing_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        response = {
            'statusCode': status_code,
            'consumer': self.consumer_name,
            'processingTimeMs': round(processing_time_ms, 2),
            'timestamp': int(datetime.now().timestamp() * 1000),
            **stats
        }
        if self._lambda_context is not None:
            response['requestId'] = getattr(self._lambda_context, 'aws_request_id', None)
        return response

    # =============================================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =============================================================================

    @abstractmethod
    def should_process_event(self, event: BaseEvent) -> bool:
        """Determine if this consumer should process the event."""
        pass

    @abstractmethod
    def process_event(self, event: BaseEvent) -> None:
        """
        Process the event. This is where the main business logic goes.

        Raises:
            EventProcessingError: For application-specific errors
            Exception: For unexpected errors
        """
        pass

    # =============================================================================
    # OPTIONAL METHODS - Can be overridden by subclasses
    # =============================================================================

    def is_permanent_failure(self, error: Exception) -> bool:
        """Determine if error is permanent (for DLQ routing)."""
        permanent_error_types = (
            ValueError,
            TypeError,
            KeyError,
            AttributeError,
        )
        return isinstance(error, permanent_error_types)

    def validate_event(self, event: BaseEvent) -> None:
        """
        Validate event data before processing.

        Raises:
            EventProcessingError: If validation fails
        """
        if not event.event_id:
            raise EventProcessingError("Event ID is required", permanent=True)
        if not event.event_type:
            raise EventProcessingError("Event type is required", event_id=event.event_id, permanent=True)
        if not event.user_id:
            raise EventProcessingError("User ID is required", event_id=event.event_id, permanent=True)
