"""
Event publishing service for the event-driven architecture.
Handles publishing events with error handling and retry logic.
"""
import logging
import time

from models.events import BaseEvent
from utils.event_dao import publish_event_to_eventbridge, get_event_bus_name

logger = logging.getLogger(__name__)


class EventService:
    """Service for publishing events with retry logic"""

    def __init__(self):
        self.event_bus_name = get_event_bus_name()
        logger.debug(f"EventService initialized with bus: {self.event_bus_name}")

    def publish_event(self, event: BaseEvent) -> bool:
        """
        Publish a single event.

        Returns:
            bool: True if successful, False otherwise
        """
        eventbridge_entry = event.to_eventbridge_format()
        logger.debug(f"Publishing event {event.event_id} of type {event.event_type}")

        success = publish_event_to_eventbridge(eventbridge_entry)
        if success:
            logger.info(f"Successfully published event {event.event_id} of type {event.event_type}")
        else:
            logger.error(f"Failed to publish event {event.event_id} of type {event.event_type}")
        return success

    def publish_event_with_retry(self, event: BaseEvent, max_retries: int = 3, base_delay: float = 1.0) -> bool:
        """
        Publish an event with exponential backoff retry logic.

        Args:
            event: The event to publish
            max_retries: Maximum number of retry attempts
            base_delay: Seconds to wait before the first retry; doubles each attempt

        Returns:
            bool: True if successful, False if all retries failed
        """
        for attempt in range(max_retries + 1):
            if self.publish_event(event):
                if attempt > 0:
                    logger.info(f"Event {event.event_id} published successfully on attempt {attempt + 1}")
                return True

            if attempt == max_retries:
                break

            wait_time = base_delay * (2 ** attempt)
            logger.warning(f"Event {event.event_id} publish attempt {attempt + 1} failed, retrying in {wait_time}s")
            time.sleep(wait_time)

        logger.error(f"Failed to publish event {event.event_id} after {max_retries + 1} attempts")
        return False
