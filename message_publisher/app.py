"""
Main application module for the message-publisher API.
Composes configuration, destination adapters, the publish gateway and the
HTTP server.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn

from . import __version__
from .config import load_config, AppConfig
from .domain.ports import DestinationError
from .domain.schema import DestinationName
from .telemetry.logger import setup_logging, MetricsLogger
from .infra.aws_client import create_session
from .infra.kafka_publisher import KafkaPublisher
from .infra.sns_topic import SnsTopic
from .infra.sqs_queue import SqsQueue
from .services.publish_gateway import PublishGateway
from .api.http_server import PublisherAPI


logger = logging.getLogger(__name__)


class PublisherService:
    """
    Owns the adapters and the API for the lifetime of the process.
    Adapters are built once here and shared by every request.
    """

    def __init__(self, config: AppConfig):
        """
        Initialize service with configuration.

        Args:
            config: Application configuration
        """
        self.config = config

        # Dependencies (will be initialized in setup)
        self.kafka_publisher: Optional[KafkaPublisher] = None
        self.sns_topic: Optional[SnsTopic] = None
        self.sqs_queue: Optional[SqsQueue] = None
        self.gateway: Optional[PublishGateway] = None
        self.api: Optional[PublisherAPI] = None

    async def setup(self) -> None:
        """
        Setup all service dependencies.

        Raises:
            Exception: If setup fails
        """
        try:
            logger.info("Setting up message-publisher service")

            missing = self.config.missing_required()
            if missing:
                logger.warning(
                    f"Required settings missing: {', '.join(missing)}",
                    extra={"component": "app"}
                )

            session = create_session(self.config.aws)

            self.kafka_publisher = KafkaPublisher(self.config.kafka)
            self.sns_topic = SnsTopic(self.config.sns.topic_arn, self.config.aws, session)
            self.sqs_queue = SqsQueue(self.config.sqs.queue_url, self.config.aws, session)

            if self.config.kafka.auto_create_topic:
                await self._ensure_topic()

            self.gateway = PublishGateway(
                destinations={
                    DestinationName.KAFKA: self.kafka_publisher,
                    DestinationName.SNS: self.sns_topic,
                    DestinationName.SQS: self.sqs_queue,
                },
                metrics=MetricsLogger()
            )

            self.api = PublisherAPI(
                gateway=self.gateway,
                config=self.config,
                title=self.config.app.service_name,
                version=__version__
            )

            logger.info("Service setup completed successfully")

        except Exception as e:
            logger.error(f"Service setup failed: {e}")
            await self.cleanup()
            raise

    async def _ensure_topic(self) -> None:
        """Create the Kafka topic; a broker that is down is not fatal at startup."""
        try:
            await self.kafka_publisher.ensure_topic(
                partitions=self.config.kafka.topic_partitions,
                replication_factor=self.config.kafka.topic_replication_factor
            )
        except DestinationError as e:
            logger.warning(f"Could not ensure Kafka topic: {e}", extra={"component": "app"})

    async def cleanup(self) -> None:
        """Cleanup service resources."""
        logger.info("Cleaning up service resources")

        for destination in (self.kafka_publisher, self.sns_topic, self.sqs_queue):
            if destination is None:
                continue
            try:
                await destination.close()
            except Exception as e:
                logger.error(f"Error during cleanup of {destination.name.value}: {e}")

        logger.info("Service cleanup completed")

    async def run(self) -> None:
        """
        Run the HTTP server until it is asked to exit.
        """
        if not self.api:
            raise RuntimeError("Service not setup. Call setup() first.")

        logger.info(
            f"Message Publisher API is running on {self.config.server.host}:{self.config.server.port}",
            extra={"component": "app", "environment": self.config.app.environment}
        )

        server_config = uvicorn.Config(
            app=self.api.app,
            host=self.config.server.host,
            port=self.config.server.port,
            log_level=self.config.server.log_level,
            access_log=False
        )
        server = uvicorn.Server(server_config)

        try:
            await server.serve()
        except Exception as e:
            logger.error(f"Server error: {e}")
            raise

    @asynccontextmanager
    async def lifespan(self):
        """
        Context manager for service lifecycle.

        Handles setup and cleanup automatically.
        """
        try:
            await self.setup()
            yield self
        finally:
            await self.cleanup()


async def main() -> None:
    """
    Main entry point for the API.
    """
    config = load_config()
    setup_logging(
        level=config.logging.level,
        service_name="message-publisher-api",
        enable_json=config.logging.json_format,
        enable_correlation=config.logging.enable_correlation
    )

    try:
        async with PublisherService(config).lifespan() as service:
            await service.run()

    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
