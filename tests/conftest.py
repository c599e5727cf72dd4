"""
Shared fixtures for message-publisher tests.
"""

from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from message_publisher.config import AppConfig, ENV_MAPPINGS
from message_publisher.domain.ports import Destination
from message_publisher.domain.schema import (
    DeliveryReceipt,
    DestinationName,
    Envelope,
    KafkaReceipt,
    SnsReceipt,
    SqsReceipt,
)
from message_publisher.services.publish_gateway import PublishGateway


TOPIC_ARN = "arn:aws:sns:ap-southeast-1:123456789012:messages"
QUEUE_URL = "https://sqs.ap-southeast-1.amazonaws.com/123456789012/messages"


class FakeDestination(Destination):
    """In-memory destination recording every envelope it receives."""

    def __init__(
        self,
        name: DestinationName,
        error: Optional[Exception] = None,
        configured: bool = True,
        health: str = "ok"
    ):
        self.name = name
        self.error = error
        self.configured = configured
        self.health = health
        self.sent: List[Envelope] = []
        self.closed = False

    async def send(self, envelope: Envelope) -> DeliveryReceipt:
        self.sent.append(envelope)
        if self.error is not None:
            raise self.error

        if self.name is DestinationName.KAFKA:
            return KafkaReceipt(topic="messages", partition=0, offset=42, message_id=envelope.id)
        if self.name is DestinationName.SNS:
            return SnsReceipt(message_id="sns-message-1", topic_arn=TOPIC_ARN)
        return SqsReceipt(message_id="sqs-message-1", queue_url=QUEUE_URL, md5_of_body="5d41402a")

    def is_configured(self) -> bool:
        return self.configured

    async def check_health(self) -> str:
        return self.health

    async def close(self) -> None:
        self.closed = True


def make_aws_session(client: MagicMock) -> MagicMock:
    """aioboto3-like session whose client() context yields `client`."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.client.return_value = context
    return session


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the config loader reads."""
    for env_var in list(ENV_MAPPINGS) + ["CONFIG_PATH"]:
        monkeypatch.delenv(env_var, raising=False)
    return monkeypatch


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        app={"environment": "development"},
        kafka={"brokers": "kafka-1:9092"},
        sns={"topic_arn": TOPIC_ARN},
        sqs={"queue_url": QUEUE_URL},
        workers={"status_interval_seconds": 0},
    )


@pytest.fixture
def destinations():
    return {
        DestinationName.KAFKA: FakeDestination(DestinationName.KAFKA),
        DestinationName.SNS: FakeDestination(DestinationName.SNS),
        DestinationName.SQS: FakeDestination(DestinationName.SQS),
    }


@pytest.fixture
def metrics():
    return MagicMock()


@pytest.fixture
def gateway(destinations, metrics) -> PublishGateway:
    return PublishGateway(destinations, metrics=metrics)
