"""
Tests for the worker handler table.
"""

import pytest

from message_publisher.domain.ports import ConfigurationError
from message_publisher.domain.schema import Envelope, MessageType
from message_publisher.telemetry.logger import correlation_id_var
from message_publisher.workers.handlers import (
    GENERIC_HANDLER,
    HandlerOutcome,
    MessageHandlers,
    ProcessingStatus,
    logging_handler,
)


def test_incomplete_table_is_rejected():
    handlers = {MessageType.KAFKA_SNS: logging_handler("test", "kafka-sns")}

    with pytest.raises(ConfigurationError, match="sns-sqs"):
        MessageHandlers("test_worker", handlers)


@pytest.mark.asyncio
async def test_build_uses_specific_and_generic_handlers():
    handlers = MessageHandlers.build("kafka_worker", [MessageType.KAFKA_SNS, MessageType.KAFKA_ONLY])

    kafka_outcome = await handlers.dispatch(Envelope.create("a", MessageType.KAFKA_ONLY))
    sqs_outcome = await handlers.dispatch(Envelope.create("b", MessageType.SQS_ONLY))

    assert kafka_outcome.handler == "kafka-only"
    assert sqs_outcome.handler == GENERIC_HANDLER
    assert kafka_outcome.status is ProcessingStatus.COMPLETED


@pytest.mark.asyncio
async def test_dispatch_is_repeatable():
    handlers = MessageHandlers.build("sqs_worker", [MessageType.SQS_ONLY])
    envelope = Envelope.create("again", MessageType.SQS_ONLY)

    first = await handlers.dispatch(envelope)
    second = await handlers.dispatch(envelope)

    assert first == second
    assert first.message_id == envelope.id
    assert first.to_dict() == {
        "message_id": envelope.id,
        "message_type": "sqs-only",
        "handler": "sqs-only",
        "status": "completed"
    }


@pytest.mark.asyncio
async def test_dispatch_binds_correlation_id():
    seen = []

    async def capture(envelope: Envelope) -> HandlerOutcome:
        seen.append(correlation_id_var.get())
        return HandlerOutcome(envelope.id, envelope.type, "capture", ProcessingStatus.COMPLETED)

    handlers = MessageHandlers("test_worker", {message_type: capture for message_type in MessageType})
    envelope = Envelope.create("hello", MessageType.SNS_ONLY)

    await handlers.dispatch(envelope)

    assert seen == [envelope.id]
    assert correlation_id_var.get() is None
