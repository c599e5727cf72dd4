"""
Tests for the envelope, routing tables and publish outcomes.
"""

import json
import re
import uuid

import pytest
from pydantic import ValidationError as PydanticValidationError

from message_publisher.domain.schema import (
    ENVELOPE_SOURCE,
    DeliveryStatus,
    DestinationName,
    DestinationResult,
    Envelope,
    KafkaReceipt,
    MessageType,
    OutcomeStatus,
    PublishOutcome,
    Route,
    SnsReceipt,
    SqsReceipt,
    utc_timestamp,
)


TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def make_outcome(route: Route, *results: DestinationResult) -> PublishOutcome:
    envelope = Envelope.create("hello", route.message_type)
    return PublishOutcome(
        request_id=envelope.id,
        route=route,
        envelope=envelope,
        results=list(results),
    )


class TestEnvelope:

    def test_create_fills_generated_fields(self):
        envelope = Envelope.create("hello", MessageType.KAFKA_ONLY)

        assert str(uuid.UUID(envelope.id)) == envelope.id
        assert envelope.content == "hello"
        assert envelope.metadata == {}
        assert envelope.type is MessageType.KAFKA_ONLY
        assert envelope.source == ENVELOPE_SOURCE
        assert TIMESTAMP_PATTERN.match(envelope.timestamp)

    def test_ids_are_unique(self):
        first = Envelope.create("a", MessageType.SNS_ONLY)
        second = Envelope.create("a", MessageType.SNS_ONLY)

        assert first.id != second.id

    def test_content_is_kept_verbatim(self):
        envelope = Envelope.create("  spaced \n text  ", MessageType.SQS_ONLY)

        assert envelope.content == "  spaced \n text  "

    def test_json_has_exactly_six_keys(self):
        envelope = Envelope.create("hello", MessageType.KAFKA_SNS, {"priority": "high"})

        data = json.loads(envelope.to_json())

        assert set(data) == {"id", "content", "metadata", "timestamp", "type", "source"}
        assert data["type"] == "kafka-sns"
        assert data["metadata"] == {"priority": "high"}
        assert data["source"] == "message-publisher-api"

    def test_json_round_trip(self):
        envelope = Envelope.create("hello", MessageType.SNS_SQS, {"n": 1})

        assert Envelope.model_validate_json(envelope.to_json()) == envelope

    def test_envelope_is_immutable(self):
        envelope = Envelope.create("hello", MessageType.KAFKA_ONLY)

        with pytest.raises(PydanticValidationError):
            envelope.content = "changed"

    def test_metadata_is_copied(self):
        metadata = {"priority": "high"}
        envelope = Envelope.create("hello", MessageType.KAFKA_ONLY, metadata)

        metadata["priority"] = "low"

        assert envelope.metadata == {"priority": "high"}

    def test_unknown_type_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            Envelope.model_validate({
                "id": "1",
                "content": "x",
                "type": "carrier-pigeon",
            })


class TestRoutes:

    @pytest.mark.parametrize("route, message_type, destinations", [
        (Route.KAFKA_SNS, MessageType.KAFKA_SNS, (DestinationName.KAFKA, DestinationName.SNS)),
        (Route.SNS_SQS, MessageType.SNS_SQS, (DestinationName.SNS, DestinationName.SQS)),
        (Route.KAFKA, MessageType.KAFKA_ONLY, (DestinationName.KAFKA,)),
        (Route.SNS, MessageType.SNS_ONLY, (DestinationName.SNS,)),
        (Route.SQS, MessageType.SQS_ONLY, (DestinationName.SQS,)),
    ])
    def test_route_table(self, route, message_type, destinations):
        assert route.message_type is message_type
        assert route.destinations == destinations
        assert route.is_fan_out == (len(destinations) == 2)

    def test_destination_labels(self):
        assert DestinationName.KAFKA.label == "Kafka"
        assert DestinationName.SNS.label == "SNS"
        assert DestinationName.SQS.label == "SQS"


class TestReceipts:

    def test_kafka_receipt_uses_camel_case(self):
        receipt = KafkaReceipt(topic="messages", partition=2, offset=10, message_id="abc")

        data = receipt.model_dump(by_alias=True)

        assert data["messageId"] == "abc"
        assert data["success"] is True
        assert data["topic"] == "messages"
        assert data["partition"] == 2
        assert data["offset"] == 10
        assert TIMESTAMP_PATTERN.match(data["timestamp"])

    def test_sqs_receipt_omits_unset_delay(self):
        receipt = SqsReceipt(message_id="m-1", queue_url="https://queue", md5_of_body="d41d8")

        data = receipt.model_dump(by_alias=True, exclude_none=True)

        assert data["queueUrl"] == "https://queue"
        assert data["md5OfBody"] == "d41d8"
        assert "delaySeconds" not in data


class TestDestinationResult:

    def test_success_response_flattens_receipt(self):
        receipt = SnsReceipt(message_id="sns-1", topic_arn="arn:topic")
        result = DestinationResult.ok(DestinationName.SNS, receipt)

        response = result.to_response()

        assert result.succeeded
        assert response["status"] == "success"
        assert response["messageId"] == "sns-1"
        assert response["topicArn"] == "arn:topic"

    def test_failed_response_carries_error(self):
        result = DestinationResult.failed(DestinationName.KAFKA, "Kafka publish failed: down")

        assert not result.succeeded
        assert result.status is DeliveryStatus.FAILED
        assert result.to_response() == {"status": "failed", "error": "Kafka publish failed: down"}


class TestPublishOutcome:

    def _ok(self, destination: DestinationName) -> DestinationResult:
        return DestinationResult.ok(
            destination,
            SnsReceipt(message_id="id", topic_arn="arn:topic")
        )

    def _failed(self, destination: DestinationName) -> DestinationResult:
        return DestinationResult.failed(destination, "failed")

    def test_all_succeeded(self):
        outcome = make_outcome(
            Route.KAFKA_SNS,
            self._ok(DestinationName.KAFKA),
            self._ok(DestinationName.SNS)
        )

        assert outcome.success
        assert outcome.status is OutcomeStatus.SUCCESS

    def test_one_failed_is_partial(self):
        outcome = make_outcome(
            Route.KAFKA_SNS,
            self._ok(DestinationName.KAFKA),
            self._failed(DestinationName.SNS)
        )

        assert not outcome.success
        assert outcome.status is OutcomeStatus.PARTIAL

    def test_all_failed(self):
        outcome = make_outcome(
            Route.SNS_SQS,
            self._failed(DestinationName.SNS),
            self._failed(DestinationName.SQS)
        )

        assert not outcome.success
        assert outcome.status is OutcomeStatus.FAILED

    def test_single_failure_is_failed_not_partial(self):
        outcome = make_outcome(Route.KAFKA, self._failed(DestinationName.KAFKA))

        assert outcome.status is OutcomeStatus.FAILED

    def test_result_for(self):
        outcome = make_outcome(Route.SNS, self._ok(DestinationName.SNS))

        assert outcome.result_for(DestinationName.SNS).succeeded
        with pytest.raises(KeyError):
            outcome.result_for(DestinationName.SQS)


def test_utc_timestamp_format():
    assert TIMESTAMP_PATTERN.match(utc_timestamp())
