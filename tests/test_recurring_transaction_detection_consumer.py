"""
Unit tests for the recurring transaction detection consumer.
"""

import json
import uuid
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from consumers.base_consumer import EventProcessingError
from consumers.recurring_transaction_detection_consumer import (
    RecurringTransactionDetectionConsumer,
    handler,
)
from models.events import BaseEvent, RecurringTransactionsDetectedEvent
from services.recurring_transactions import detect_recurring_patterns
from tests.fixtures.recurring_transaction_fixtures import (
    REFERENCE_DATE,
    TEST_USER_ID,
    create_test_scenario,
    create_transaction,
)


def _create_test_event(account_id=None, lookback_months=None, user_id=TEST_USER_ID):
    """Helper to create a detection request event"""
    data = {"accountId": str(account_id or uuid.uuid4())}
    if lookback_months is not None:
        data["lookbackMonths"] = lookback_months
    return BaseEvent(
        event_id=str(uuid.uuid4()),
        event_type="recurring_transaction.detection.requested",
        event_version="1.0",
        timestamp=int(datetime.now().timestamp() * 1000),
        source="recurring_transaction.service",
        user_id=user_id,
        data=data,
    )


def _eventbridge_payload(event: BaseEvent) -> dict:
    return {
        "version": "0",
        "id": "eb-1",
        "source": event.source,
        "detail-type": event.event_type,
        "detail": json.loads(event.to_eventbridge_format()["Detail"]),
    }


@pytest.fixture
def transaction_source():
    mock = MagicMock()
    mock.get_transactions.return_value = []
    return mock


@pytest.fixture
def store():
    mock = MagicMock()
    mock.list_active_patterns.return_value = []
    return mock


@pytest.fixture
def event_service():
    mock = MagicMock()
    mock.publish_event.return_value = True
    return mock


@pytest.fixture
def detection_service():
    mock = MagicMock()
    mock.detect_recurring_patterns.return_value = []
    return mock


@pytest.fixture
def consumer(transaction_source, store, event_service, detection_service):
    return RecurringTransactionDetectionConsumer(
        transaction_source=transaction_source,
        store=store,
        event_service=event_service,
        detection_service=detection_service,
    )


# ==============================================================================
# Event filtering and validation
# ==============================================================================


def test_should_process_detection_requests_only(consumer):
    assert consumer.should_process_event(_create_test_event())
    other = _create_test_event()
    other.event_type = "recurring_transaction.detection.completed"
    assert not consumer.should_process_event(other)


@pytest.mark.parametrize("account_id", [None, "", "not-a-uuid"])
def test_invalid_account_is_permanent(consumer, account_id):
    event = _create_test_event()
    event.data["accountId"] = account_id

    with pytest.raises(EventProcessingError) as exc_info:
        consumer.process_event(event)
    assert exc_info.value.permanent


@pytest.mark.parametrize("lookback_months", [0, 61, "12", 6.5, True])
def test_invalid_lookback_is_permanent(consumer, detection_service, lookback_months):
    with pytest.raises(EventProcessingError) as exc_info:
        consumer.process_event(_create_test_event(lookback_months=lookback_months))

    assert exc_info.value.permanent
    detection_service.detect_recurring_patterns.assert_not_called()


# ==============================================================================
# Processing
# ==============================================================================


def test_process_event_runs_detection(consumer, transaction_source, detection_service, store):
    """Test that the account history is fetched, filtered to the user and analysed"""
    account_id = uuid.uuid4()
    own = create_transaction(REFERENCE_DATE, "9.99", uuid.uuid4(), account_id=account_id)
    foreign = create_transaction(REFERENCE_DATE, "9.99", uuid.uuid4(), account_id=account_id, user_id="other-user")
    transaction_source.get_transactions.return_value = [own, foreign]

    consumer.process_event(_create_test_event(account_id=account_id, lookback_months=6))

    scope, lookback, _ = transaction_source.get_transactions.call_args.args
    assert scope == account_id
    assert lookback == 6
    analysed = detection_service.detect_recurring_patterns.call_args.args[0]
    assert analysed == [own]
    assert detection_service.detect_recurring_patterns.call_args.kwargs["lookback_months"] == 6
    store.save_or_update_pattern.assert_not_called()


def test_default_lookback(consumer, transaction_source):
    consumer.process_event(_create_test_event())
    assert transaction_source.get_transactions.call_args.args[1] == 12


def test_new_patterns_are_saved_and_announced(consumer, detection_service, store, event_service):
    patterns = detect_recurring_patterns(
        create_test_scenario("streaming_subscription") + create_test_scenario("utility_bill"),
        now=REFERENCE_DATE,
    )
    detection_service.detect_recurring_patterns.return_value = patterns
    event = _create_test_event()

    consumer.process_event(event)

    assert store.save_or_update_pattern.call_count == 2
    completed = event_service.publish_event.call_args.args[0]
    assert isinstance(completed, RecurringTransactionsDetectedEvent)
    assert completed.causation_id == event.event_id
    assert completed.data["patternsDetected"] == 2
    assert completed.data["patternsSaved"] == 2
    assert completed.data["patternsSkipped"] == 0
    assert completed.data["accountId"] == event.data["accountId"]


def test_publish_failure_does_not_fail_processing(consumer, event_service):
    event_service.publish_event.return_value = False
    consumer.process_event(_create_test_event())
    event_service.publish_event.assert_called_once()


# ==============================================================================
# EventBridge handling
# ==============================================================================


def test_handle_eventbridge_event(consumer, transaction_source):
    event = _create_test_event()

    response = consumer.handle_eventbridge_event(_eventbridge_payload(event), None)

    assert response["statusCode"] == 200
    assert response["processed_count"] == 1
    assert response["failed_count"] == 0
    assert transaction_source.get_transactions.call_args.args[0] == uuid.UUID(event.data["accountId"])


def test_duplicate_events_are_skipped(consumer, detection_service):
    payload = _eventbridge_payload(_create_test_event())

    consumer.handle_eventbridge_event(payload, None)
    response = consumer.handle_eventbridge_event(payload, None)

    assert response["skipped_count"] == 1
    assert detection_service.detect_recurring_patterns.call_count == 1


def test_sqs_wrapped_event(consumer):
    payload = {"Records": [{"body": json.dumps(_eventbridge_payload(_create_test_event()))}]}

    response = consumer.handle_eventbridge_event(payload, None)

    assert response["processed_count"] == 1


def test_permanent_failure_returns_500(consumer):
    event = _create_test_event()
    event.data["accountId"] = "not-a-uuid"

    response = consumer.handle_eventbridge_event(_eventbridge_payload(event), None)

    assert response["statusCode"] == 500
    assert response["failed_count"] == 1
    assert response["errors"][0]["permanent"] is True


def test_transient_failure_is_recorded(consumer, transaction_source):
    transaction_source.get_transactions.side_effect = ConnectionError("throttled")

    response = consumer.handle_eventbridge_event(_eventbridge_payload(_create_test_event()), None)

    assert response["statusCode"] == 200
    assert response["failed_count"] == 1
    assert response["errors"][0]["permanent"] is False


def test_handler_reports_construction_failure():
    with patch(
        "consumers.recurring_transaction_detection_consumer.RecurringTransactionDetectionConsumer",
        side_effect=RuntimeError("no table"),
    ):
        response = handler({}, None)

    assert response["statusCode"] == 500
    assert json.loads(response["body"])["message"] == "no table"
