"""
SQS consumer worker.
Long polls the queue and deletes each message once its handler succeeded.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..config import SQSConfig, WorkersConfig
from ..domain.ports import ConfigurationError
from ..domain.schema import Envelope, MessageType
from ..infra.sqs_queue import ReceivedMessage, SqsQueue
from ..telemetry.logger import MetricsLogger
from .base import BaseWorker
from .handlers import HandlerOutcome, MessageHandlers


logger = logging.getLogger(__name__)

SQS_HANDLED_TYPES = (MessageType.SNS_SQS, MessageType.SQS_ONLY)


class SqsWorker(BaseWorker):
    """
    Processes a received batch concurrently.

    A message whose handling fails is not deleted and becomes visible
    again after the queue's visibility timeout.
    """

    name = "sqs_worker"

    def __init__(
        self,
        queue: SqsQueue,
        config: SQSConfig,
        workers_config: Optional[WorkersConfig] = None,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize SQS worker.

        Args:
            queue: Queue adapter to receive from
            config: SQS polling settings
            workers_config: Shared worker settings
            metrics: Metrics logger
        """
        workers_config = workers_config or WorkersConfig()
        super().__init__(
            handlers=MessageHandlers.build(self.name, SQS_HANDLED_TYPES),
            poll_interval_seconds=config.poll_interval_ms / 1000,
            status_interval_seconds=workers_config.status_interval_seconds,
            history_size=workers_config.history_size,
            metrics=metrics
        )
        self.queue = queue
        self.config = config

    async def on_start(self) -> None:
        """
        Raises:
            ConfigurationError: If no queue URL is configured
        """
        if not self.queue.is_configured():
            raise ConfigurationError("SQS_QUEUE_URL environment variable is not set")

        logger.info(
            f"Polling SQS queue: {self.queue.queue_url}",
            extra={
                "component": self.name,
                "queue_url": self.queue.queue_url,
                "poll_interval_ms": self.config.poll_interval_ms
            }
        )

    async def poll(self) -> List[Any]:
        return await self.queue.receive(
            max_messages=self.config.max_messages,
            wait_time_seconds=self.config.wait_time_seconds
        )

    async def process_batch(self, batch: List[Any]) -> None:
        await asyncio.gather(*[self.process_item(message) for message in batch])

    async def handle(self, message: ReceivedMessage) -> Optional[HandlerOutcome]:
        try:
            envelope = Envelope.model_validate_json(message.body)
        except Exception:
            logger.error(
                "Failed to parse SQS message, leaving it on the queue",
                extra={
                    "component": self.name,
                    "sqs_message_id": message.message_id,
                    "body": message.body[:500]
                }
            )
            raise

        logger.info(
            "Processing SQS message",
            extra={
                "component": self.name,
                "sqs_message_id": message.message_id,
                "message_id": envelope.id,
                "message_type": envelope.type.value
            }
        )

        outcome = await self.handlers.dispatch(envelope)
        await self.queue.delete(message.receipt_handle)

        logger.info(
            f"Successfully processed and deleted message: {message.message_id}",
            extra={"component": self.name, "message_id": envelope.id}
        )
        return outcome

    def describe_item(self, message: ReceivedMessage) -> str:
        return message.message_id

    async def status_details(self) -> Dict[str, Any]:
        attributes = await self.queue.get_queue_attributes()
        return {
            "queue_url": self.queue.queue_url,
            "messages_available": attributes.get("ApproximateNumberOfMessages", "unknown"),
            "messages_in_flight": attributes.get("ApproximateNumberOfMessagesNotVisible", "unknown"),
            "queue_arn": attributes.get("QueueArn")
        }

    async def on_stop(self) -> None:
        await self.queue.close()
