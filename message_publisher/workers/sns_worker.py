"""
SNS consumer worker.

SNS pushes to subscribers, so the worker reads notifications from an SQS
queue subscribed to the topic. Without such a queue it only monitors the
topic.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from ..config import SNSConfig, WorkersConfig
from ..domain.ports import DestinationError
from ..domain.schema import Envelope, MessageType
from ..infra.sns_topic import SnsTopic
from ..infra.sqs_queue import ReceivedMessage, SqsQueue
from ..telemetry.logger import MetricsLogger
from .base import BaseWorker
from .handlers import HandlerOutcome, MessageHandlers


logger = logging.getLogger(__name__)

SNS_HANDLED_TYPES = (MessageType.KAFKA_SNS, MessageType.SNS_ONLY, MessageType.SNS_SQS)


def _envelope_from_attributes(
    content: str,
    attributes: Dict[str, Any],
    value_key: str,
    fallback_timestamp: Optional[str] = None
) -> Optional[Envelope]:
    """Rebuild an envelope from publisher message attributes, if they are present."""
    def attribute(name: str) -> Optional[str]:
        entry = attributes.get(name)
        return entry.get(value_key) if isinstance(entry, dict) else None

    message_type = attribute("message-type")
    message_id = attribute("message-id")
    if not message_type or not message_id:
        return None

    fields = {
        "id": message_id,
        "content": content,
        "type": MessageType(message_type),
        "source": attribute("source") or "unknown",
    }
    timestamp = attribute("timestamp") or fallback_timestamp
    if timestamp:
        fields["timestamp"] = timestamp
    return Envelope(**fields)


def envelope_from_notification(message: ReceivedMessage) -> Envelope:
    """
    Recover the envelope carried by an SNS delivery to SQS.

    Handles the standard notification JSON (content in `Message`, envelope
    fields in its message attributes), raw message delivery (content as the
    body, envelope fields as SQS message attributes) and bodies that already
    hold a JSON envelope.

    Raises:
        ValueError: If no envelope can be recovered
    """
    try:
        body = json.loads(message.body)
    except json.JSONDecodeError:
        body = None

    if isinstance(body, dict) and body.get("Type") == "Notification" and "Message" in body:
        envelope = _envelope_from_attributes(
            body["Message"],
            body.get("MessageAttributes") or {},
            value_key="Value",
            fallback_timestamp=body.get("Timestamp")
        )
        if envelope is not None:
            return envelope
        return Envelope.model_validate_json(body["Message"])

    envelope = _envelope_from_attributes(message.body, message.attributes, value_key="StringValue")
    if envelope is not None:
        return envelope

    if isinstance(body, dict):
        return Envelope.model_validate(body)

    raise ValueError("Message does not carry an envelope")


class SnsWorker(BaseWorker):
    """
    Checks the topic each cycle and handles notifications delivered to the
    subscription queue.
    """

    name = "sns_worker"

    def __init__(
        self,
        topic: SnsTopic,
        config: SNSConfig,
        subscription_queue: Optional[SqsQueue] = None,
        workers_config: Optional[WorkersConfig] = None,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize SNS worker.

        Args:
            topic: Topic adapter used for monitoring
            config: SNS settings
            subscription_queue: Queue subscribed to the topic, optional
            workers_config: Shared worker settings
            metrics: Metrics logger
        """
        workers_config = workers_config or WorkersConfig()
        super().__init__(
            handlers=MessageHandlers.build(self.name, SNS_HANDLED_TYPES),
            poll_interval_seconds=config.poll_interval_ms / 1000,
            status_interval_seconds=workers_config.status_interval_seconds,
            history_size=workers_config.history_size,
            metrics=metrics
        )
        self.topic = topic
        self.config = config
        self.subscription_queue = subscription_queue
        self.topic_attributes: Dict[str, Any] = {}

    @property
    def monitoring_only(self) -> bool:
        return self.subscription_queue is None or not self.subscription_queue.is_configured()

    async def on_start(self) -> None:
        logger.info(
            f"Topic ARN: {self.topic.topic_arn or 'Not configured'}",
            extra={"component": self.name, "poll_interval_ms": self.config.poll_interval_ms}
        )

        if not self.topic.is_configured():
            logger.warning(
                "SNS_TOPIC_ARN is not set, topic checks are disabled",
                extra={"component": self.name}
            )
        else:
            subscriptions = await self.topic.list_subscriptions()
            logger.info(
                f"SNS topic has {len(subscriptions)} subscriptions",
                extra={
                    "component": self.name,
                    "protocols": sorted({s.get("Protocol", "unknown") for s in subscriptions})
                }
            )

        if self.monitoring_only:
            logger.info(
                "No subscription queue configured, running in monitoring mode only",
                extra={"component": self.name}
            )

    async def check_topic_status(self) -> None:
        if not self.topic.is_configured():
            return

        try:
            self.topic_attributes = await self.topic.get_topic_attributes()
        except DestinationError as e:
            logger.warning(f"Error checking topic status: {e}", extra={"component": self.name})
            return

        logger.debug(
            "SNS topic status",
            extra={
                "component": self.name,
                "subscriptions_confirmed": self.topic_attributes.get("SubscriptionsConfirmed"),
                "subscriptions_pending": self.topic_attributes.get("SubscriptionsPending")
            }
        )

    async def poll(self) -> List[Any]:
        await self.check_topic_status()

        if self.monitoring_only:
            return []

        return await self.subscription_queue.receive()

    async def process_batch(self, batch: List[Any]) -> None:
        await asyncio.gather(*[self.process_item(message) for message in batch])

    async def handle(self, message: ReceivedMessage) -> Optional[HandlerOutcome]:
        try:
            envelope = envelope_from_notification(message)
        except Exception:
            logger.error(
                "Failed to unwrap SNS notification, leaving it on the queue",
                extra={
                    "component": self.name,
                    "sqs_message_id": message.message_id,
                    "body": message.body[:500]
                }
            )
            raise

        logger.info(
            "Processing SNS notification",
            extra={
                "component": self.name,
                "message_id": envelope.id,
                "message_type": envelope.type.value
            }
        )

        outcome = await self.handlers.dispatch(envelope)
        await self.subscription_queue.delete(message.receipt_handle)
        return outcome

    def describe_item(self, message: ReceivedMessage) -> str:
        return message.message_id

    async def status_details(self) -> Dict[str, Any]:
        return {
            "topic_arn": self.topic.topic_arn,
            "monitoring_only": self.monitoring_only,
            "subscriptions_confirmed": self.topic_attributes.get("SubscriptionsConfirmed", "unknown"),
            "subscriptions_pending": self.topic_attributes.get("SubscriptionsPending", "unknown")
        }

    async def on_stop(self) -> None:
        await self.topic.close()
        if self.subscription_queue is not None:
            await self.subscription_queue.close()
