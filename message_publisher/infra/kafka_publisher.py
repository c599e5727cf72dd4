"""
Kafka implementation of the Destination interface.
Publishes envelopes to a topic through an idempotent aiokafka producer.
"""

import asyncio
import logging
import time
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.helpers import create_ssl_context

from ..config import KafkaConfig
from ..domain.ports import Destination, DestinationError
from ..domain.schema import DestinationName, Envelope, KafkaReceipt


logger = logging.getLogger(__name__)


def build_connection_kwargs(config: KafkaConfig, client_id: str) -> dict:
    """
    Common aiokafka connection settings.

    SASL PLAIN over SSL is enabled when both credentials are present.
    """
    kwargs = {
        "bootstrap_servers": config.bootstrap_servers,
        "client_id": client_id,
    }
    if config.uses_sasl:
        kwargs.update({
            "security_protocol": "SASL_SSL",
            "sasl_mechanism": "PLAIN",
            "sasl_plain_username": config.sasl_username,
            "sasl_plain_password": config.sasl_password,
            "ssl_context": create_ssl_context(),
        })
    return kwargs


class KafkaPublisher(Destination):
    """
    Publishes envelopes to a Kafka topic.

    The producer is started on the first send and reused afterwards.
    Concurrent first sends wait on the same connection attempt.
    """

    name = DestinationName.KAFKA

    def __init__(self, config: KafkaConfig):
        """
        Initialize Kafka publisher.

        Args:
            config: Kafka configuration
        """
        self.config = config
        self.topic = config.topic
        self._producer: Optional[AIOKafkaProducer] = None
        self._connected = False
        self._connect_lock = asyncio.Lock()

        if not self.config.brokers:
            logger.warning(
                f"Kafka brokers are not configured (KAFKA_BROKERS), using {','.join(self.config.bootstrap_servers)}",
                extra={"component": "kafka_publisher"}
            )

    def is_configured(self) -> bool:
        return bool(self.config.brokers and self.topic)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Start the producer if it is not running yet.

        Raises:
            DestinationError: If the broker cannot be reached
        """
        if self._connected:
            return

        async with self._connect_lock:
            if self._connected:
                return

            producer = AIOKafkaProducer(
                **build_connection_kwargs(self.config, self.config.client_id),
                acks="all",
                enable_idempotence=True,
            )
            try:
                await producer.start()
            except Exception as e:
                logger.error(
                    f"Failed to connect Kafka producer: {e}",
                    extra={"component": "kafka_publisher", "brokers": self.config.bootstrap_servers}
                )
                try:
                    await producer.stop()
                except Exception:
                    logger.debug("Ignoring error while stopping a producer that never started")
                raise DestinationError(f"Kafka connection failed: {e}", self.name) from e

            self._producer = producer
            self._connected = True
            logger.info(
                "Kafka producer connected successfully",
                extra={"component": "kafka_publisher", "brokers": self.config.bootstrap_servers}
            )

    async def send(self, envelope: Envelope) -> KafkaReceipt:
        """
        Publish an envelope as JSON, keyed by its id.

        Raises:
            DestinationError: "Kafka publish failed: <reason>"
        """
        message_key = f"msg-{envelope.id}"
        try:
            await self.connect()

            headers = [
                ("content-type", b"application/json"),
                ("message-type", envelope.type.value.encode("utf-8")),
                ("source", (envelope.source or "unknown").encode("utf-8")),
            ]

            logger.info(
                f"Publishing to Kafka topic: {self.topic}, key: {message_key}",
                extra={"component": "kafka_publisher", "message_id": envelope.id}
            )

            metadata = await self._producer.send_and_wait(
                self.topic,
                value=envelope.to_json().encode("utf-8"),
                key=message_key.encode("utf-8"),
                headers=headers,
                timestamp_ms=int(time.time() * 1000),
            )

        except Exception as e:
            logger.error(
                f"Error publishing message to Kafka: {e}",
                extra={
                    "component": "kafka_publisher",
                    "message_id": envelope.id,
                    "topic": self.topic,
                    "error": str(e)
                }
            )
            raise DestinationError(f"Kafka publish failed: {e}", self.name) from e

        receipt = KafkaReceipt(
            topic=self.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            message_id=envelope.id,
        )
        logger.info(
            "Message published to Kafka",
            extra={
                "component": "kafka_publisher",
                "message_id": envelope.id,
                "topic": self.topic,
                "partition": receipt.partition,
                "offset": receipt.offset
            }
        )
        return receipt

    async def ensure_topic(
        self,
        topic_name: Optional[str] = None,
        partitions: int = 3,
        replication_factor: int = 1
    ) -> dict:
        """
        Create a topic when it does not exist.

        Returns:
            {"success": True, "topic": name, "created": bool}

        Raises:
            DestinationError: If the admin client fails
        """
        topic_name = topic_name or self.topic
        admin = AIOKafkaAdminClient(
            **build_connection_kwargs(self.config, f"{self.config.client_id}-admin")
        )
        try:
            await admin.start()
            existing = await admin.list_topics()
            created = topic_name not in existing

            if created:
                await admin.create_topics([
                    NewTopic(
                        name=topic_name,
                        num_partitions=partitions,
                        replication_factor=replication_factor
                    )
                ])
                logger.info(f"Kafka topic '{topic_name}' created successfully")
            else:
                logger.info(f"Kafka topic '{topic_name}' already exists")

            return {"success": True, "topic": topic_name, "created": created}

        except Exception as e:
            logger.error(f"Error creating Kafka topic: {e}")
            raise DestinationError(f"Failed to create topic: {e}", self.name) from e

        finally:
            await admin.close()

    async def check_health(self) -> str:
        return "connected" if self._connected else "not connected"

    async def close(self) -> None:
        """Stop the producer, flushing pending sends."""
        if not self._connected or self._producer is None:
            return

        try:
            await self._producer.stop()
            logger.info("Kafka producer disconnected")
        except Exception as e:
            logger.error(f"Error disconnecting Kafka producer: {e}")
        finally:
            self._producer = None
            self._connected = False
