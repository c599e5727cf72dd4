"""
Tests for composing the publisher service.
"""

from unittest.mock import AsyncMock, patch

import pytest

from message_publisher.api import PublisherAPI
from message_publisher.app import PublisherService
from message_publisher.domain.ports import DestinationError
from message_publisher.domain.schema import DestinationName
from message_publisher.infra import KafkaPublisher, SnsTopic, SqsQueue


@pytest.mark.asyncio
async def test_setup_builds_gateway_and_api(app_config):
    service = PublisherService(app_config)

    await service.setup()

    assert isinstance(service.api, PublisherAPI)
    destinations = service.gateway.destinations
    assert isinstance(destinations[DestinationName.KAFKA], KafkaPublisher)
    assert isinstance(destinations[DestinationName.SNS], SnsTopic)
    assert isinstance(destinations[DestinationName.SQS], SqsQueue)
    assert service.sns_topic.topic_arn == app_config.sns.topic_arn

    await service.cleanup()


@pytest.mark.asyncio
async def test_auto_create_topic(app_config):
    config = app_config.model_copy(update={
        "kafka": app_config.kafka.model_copy(update={"auto_create_topic": True, "topic_partitions": 6})
    })
    ensure_topic = AsyncMock(return_value={"success": True, "topic": "messages", "created": True})

    with patch.object(KafkaPublisher, "ensure_topic", ensure_topic):
        service = PublisherService(config)
        await service.setup()

    ensure_topic.assert_awaited_once_with(partitions=6, replication_factor=1)
    assert service.gateway is not None


@pytest.mark.asyncio
async def test_unreachable_broker_does_not_block_startup(app_config):
    config = app_config.model_copy(update={
        "kafka": app_config.kafka.model_copy(update={"auto_create_topic": True})
    })
    ensure_topic = AsyncMock(side_effect=DestinationError("Failed to create topic: unreachable"))

    with patch.object(KafkaPublisher, "ensure_topic", ensure_topic):
        service = PublisherService(config)
        await service.setup()

    assert service.api is not None


@pytest.mark.asyncio
async def test_cleanup_closes_destinations(app_config):
    service = PublisherService(app_config)
    await service.setup()

    with patch.object(KafkaPublisher, "close", AsyncMock()) as kafka_close, \
            patch.object(SnsTopic, "close", AsyncMock()) as sns_close, \
            patch.object(SqsQueue, "close", AsyncMock(side_effect=RuntimeError("boom"))) as sqs_close:
        await service.cleanup()

    kafka_close.assert_awaited_once()
    sns_close.assert_awaited_once()
    sqs_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_requires_setup(app_config):
    with pytest.raises(RuntimeError, match="setup"):
        await PublisherService(app_config).run()
