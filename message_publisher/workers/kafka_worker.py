"""
Kafka consumer worker.
Reads envelopes from the publish topic and dispatches them by type.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, List, Optional

from aiokafka import AIOKafkaConsumer

from ..config import KafkaConfig, WorkersConfig
from ..domain.schema import Envelope, MessageType
from ..infra.kafka_publisher import build_connection_kwargs
from ..telemetry.logger import MetricsLogger
from .base import BaseWorker
from .handlers import HandlerOutcome, MessageHandlers


logger = logging.getLogger(__name__)

KAFKA_HANDLED_TYPES = (MessageType.KAFKA_SNS, MessageType.KAFKA_ONLY)


def _decode(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    return value.decode("utf-8", errors="replace")


class KafkaWorker(BaseWorker):
    """
    Consumes the publish topic as part of a consumer group.

    Records of one partition are handled in offset order; different
    partitions of a batch are handled concurrently.
    """

    name = "kafka_worker"

    def __init__(
        self,
        config: KafkaConfig,
        workers_config: Optional[WorkersConfig] = None,
        consumer: Optional[AIOKafkaConsumer] = None,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize Kafka worker.

        Args:
            config: Kafka configuration
            workers_config: Shared worker settings
            consumer: Pre-built consumer, created from config when omitted
            metrics: Metrics logger
        """
        workers_config = workers_config or WorkersConfig()
        super().__init__(
            handlers=MessageHandlers.build(self.name, KAFKA_HANDLED_TYPES),
            poll_interval_seconds=0,
            status_interval_seconds=workers_config.status_interval_seconds,
            history_size=workers_config.history_size,
            metrics=metrics
        )
        self.config = config
        self.topic = config.topic
        self._consumer = consumer

    def _create_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            self.topic,
            **build_connection_kwargs(self.config, self.config.worker_client_id),
            group_id=self.config.consumer_group,
            auto_offset_reset="latest",
            enable_auto_commit=True,
            session_timeout_ms=self.config.session_timeout_ms,
            heartbeat_interval_ms=self.config.heartbeat_interval_ms,
        )

    async def on_start(self) -> None:
        if self._consumer is None:
            self._consumer = self._create_consumer()

        await self._consumer.start()
        logger.info(
            f"Kafka consumer connected, subscribed to topic: {self.topic}",
            extra={
                "component": self.name,
                "topic": self.topic,
                "consumer_group": self.config.consumer_group
            }
        )

    async def poll(self) -> List[Any]:
        batches = await self._consumer.getmany(
            timeout_ms=self.config.poll_timeout_ms,
            max_records=self.config.batch_size
        )
        return [record for records in batches.values() for record in records]

    async def process_batch(self, batch: List[Any]) -> None:
        partitions: "OrderedDict[tuple, list]" = OrderedDict()
        for record in batch:
            partitions.setdefault((record.topic, record.partition), []).append(record)

        if len(partitions) > 1:
            logger.debug(
                f"Processing {len(batch)} records from {len(partitions)} partitions",
                extra={"component": self.name}
            )

        await asyncio.gather(*[
            self._process_partition(records) for records in partitions.values()
        ])

    async def _process_partition(self, records: list) -> None:
        for record in records:
            await self.process_item(record)

    async def handle(self, record: Any) -> Optional[HandlerOutcome]:
        value = _decode(record.value)
        if not value:
            logger.warning(
                "Received empty message",
                extra={
                    "component": self.name,
                    "topic": record.topic,
                    "partition": record.partition,
                    "offset": record.offset
                }
            )
            return None

        try:
            envelope = Envelope.model_validate_json(value)
        except Exception as e:
            logger.error(
                f"Failed to parse Kafka message: {e}",
                extra={
                    "component": self.name,
                    "topic": record.topic,
                    "partition": record.partition,
                    "offset": record.offset,
                    "key": _decode(record.key),
                    "value": value[:500]
                }
            )
            raise

        logger.info(
            "Processing Kafka message",
            extra={
                "component": self.name,
                "topic": record.topic,
                "partition": record.partition,
                "offset": record.offset,
                "key": _decode(record.key),
                "message_id": envelope.id,
                "message_type": envelope.type.value
            }
        )
        return await self.handlers.dispatch(envelope)

    def describe_item(self, record: Any) -> str:
        return f"{record.topic}:{record.partition}:{record.offset}"

    async def status_details(self) -> dict:
        return {
            "topic": self.topic,
            "consumer_group": self.config.consumer_group
        }

    async def on_stop(self) -> None:
        if self._consumer is not None:
            await self._consumer.stop()
            logger.info("Kafka consumer disconnected", extra={"component": self.name})
