"""
Tests for the Kafka publisher with a patched aiokafka producer.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from message_publisher.config import KafkaConfig
from message_publisher.domain.ports import DestinationError
from message_publisher.domain.schema import Envelope, MessageType
from message_publisher.infra.kafka_publisher import KafkaPublisher, build_connection_kwargs


def make_producer(partition: int = 1, offset: int = 7) -> MagicMock:
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    producer.send_and_wait = AsyncMock(return_value=MagicMock(partition=partition, offset=offset))
    return producer


def make_admin(existing_topics) -> MagicMock:
    admin = MagicMock()
    admin.start = AsyncMock()
    admin.close = AsyncMock()
    admin.list_topics = AsyncMock(return_value=list(existing_topics))
    admin.create_topics = AsyncMock()
    return admin


@pytest.fixture
def envelope():
    return Envelope.create("hello", MessageType.KAFKA_ONLY, {"priority": "high"})


@pytest.fixture
def kafka_config():
    return KafkaConfig(brokers=["kafka-1:9092"], topic="messages")


@pytest.mark.asyncio
async def test_send_publishes_json_envelope(kafka_config, envelope):
    producer = make_producer()
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer) as producer_cls:
        publisher = KafkaPublisher(kafka_config)
        receipt = await publisher.send(envelope)

    producer_cls.assert_called_once()
    kwargs = producer_cls.call_args.kwargs
    assert kwargs["bootstrap_servers"] == ["kafka-1:9092"]
    assert kwargs["client_id"] == "message-publisher-api"
    assert kwargs["acks"] == "all"
    assert kwargs["enable_idempotence"] is True
    assert "security_protocol" not in kwargs

    args, send_kwargs = producer.send_and_wait.call_args
    assert args == ("messages",)
    assert send_kwargs["key"] == f"msg-{envelope.id}".encode("utf-8")
    assert json.loads(send_kwargs["value"]) == json.loads(envelope.to_json())
    assert ("message-type", b"kafka-only") in send_kwargs["headers"]
    assert ("content-type", b"application/json") in send_kwargs["headers"]
    assert ("source", b"message-publisher-api") in send_kwargs["headers"]
    assert isinstance(send_kwargs["timestamp_ms"], int)

    assert receipt.topic == "messages"
    assert receipt.partition == 1
    assert receipt.offset == 7
    assert receipt.message_id == envelope.id
    assert publisher.is_connected


@pytest.mark.asyncio
async def test_producer_is_created_once(kafka_config, envelope):
    producer = make_producer()
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer) as producer_cls:
        publisher = KafkaPublisher(kafka_config)
        await asyncio.gather(publisher.send(envelope), publisher.send(envelope))
        await publisher.send(envelope)

    producer_cls.assert_called_once()
    producer.start.assert_awaited_once()
    assert producer.send_and_wait.await_count == 3


@pytest.mark.asyncio
async def test_connection_failure_is_wrapped(kafka_config, envelope):
    producer = make_producer()
    producer.start.side_effect = ConnectionError("no brokers")
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer):
        publisher = KafkaPublisher(kafka_config)
        with pytest.raises(DestinationError) as exc_info:
            await publisher.send(envelope)

    assert str(exc_info.value).startswith("Kafka publish failed: Kafka connection failed: no brokers")
    assert not publisher.is_connected
    assert await publisher.check_health() == "not connected"


@pytest.mark.asyncio
async def test_send_failure_is_wrapped(kafka_config, envelope):
    producer = make_producer()
    producer.send_and_wait.side_effect = RuntimeError("message too large")
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer):
        publisher = KafkaPublisher(kafka_config)
        with pytest.raises(DestinationError, match="Kafka publish failed: message too large"):
            await publisher.send(envelope)


@pytest.mark.asyncio
async def test_close_stops_producer(kafka_config, envelope):
    producer = make_producer()
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer):
        publisher = KafkaPublisher(kafka_config)
        await publisher.send(envelope)
        assert await publisher.check_health() == "connected"

        await publisher.close()
        await publisher.close()

    producer.stop.assert_awaited_once()
    assert await publisher.check_health() == "not connected"


@pytest.mark.asyncio
async def test_ensure_topic_creates_missing_topic(kafka_config):
    admin = make_admin(["other-topic"])
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaAdminClient", return_value=admin):
        publisher = KafkaPublisher(kafka_config)
        result = await publisher.ensure_topic(partitions=6, replication_factor=2)

    assert result == {"success": True, "topic": "messages", "created": True}
    new_topic = admin.create_topics.call_args.args[0][0]
    assert new_topic.name == "messages"
    assert new_topic.num_partitions == 6
    assert new_topic.replication_factor == 2
    admin.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_ensure_topic_keeps_existing_topic(kafka_config):
    admin = make_admin(["messages"])
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaAdminClient", return_value=admin):
        publisher = KafkaPublisher(kafka_config)
        result = await publisher.ensure_topic()

    assert result["created"] is False
    admin.create_topics.assert_not_awaited()
    admin.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_ensure_topic_failure(kafka_config):
    admin = make_admin([])
    admin.start.side_effect = ConnectionError("unreachable")
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaAdminClient", return_value=admin):
        publisher = KafkaPublisher(kafka_config)
        with pytest.raises(DestinationError, match="Failed to create topic"):
            await publisher.ensure_topic("audit")

    admin.close.assert_awaited_once()


def test_sasl_connection_settings():
    config = KafkaConfig(sasl_username="user", sasl_password="secret")

    kwargs = build_connection_kwargs(config, "client-1")

    assert kwargs["security_protocol"] == "SASL_SSL"
    assert kwargs["sasl_mechanism"] == "PLAIN"
    assert kwargs["sasl_plain_username"] == "user"
    assert kwargs["sasl_plain_password"] == "secret"
    assert kwargs["ssl_context"] is not None
    assert kwargs["client_id"] == "client-1"


@pytest.mark.asyncio
async def test_unset_brokers_fall_back_to_localhost(envelope):
    producer = make_producer()
    with patch("message_publisher.infra.kafka_publisher.AIOKafkaProducer", return_value=producer) as producer_cls:
        publisher = KafkaPublisher(KafkaConfig())
        await publisher.send(envelope)

    assert not publisher.is_configured()
    assert producer_cls.call_args.kwargs["bootstrap_servers"] == ["localhost:9092"]
