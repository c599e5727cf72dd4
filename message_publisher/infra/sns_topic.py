"""
SNS implementation of the Destination interface.
"""

import asyncio
import logging
from typing import List, Optional

import aioboto3

from ..config import AWSConfig
from ..domain.ports import Destination, DestinationError, ConfigurationError
from ..domain.schema import DestinationName, Envelope, SnsReceipt
from .aws_client import AwsServiceClient


logger = logging.getLogger(__name__)


def _string_attribute(value: str) -> dict:
    return {"DataType": "String", "StringValue": value}


class SnsTopic(Destination):
    """
    Publishes envelopes to an SNS topic.

    Only the envelope content travels as the SNS message body; the id,
    type, timestamp and source ride along as message attributes.
    """

    name = DestinationName.SNS

    def __init__(
        self,
        topic_arn: Optional[str],
        aws_config: AWSConfig,
        session: Optional[aioboto3.Session] = None
    ):
        """
        Initialize SNS topic adapter.

        Args:
            topic_arn: Topic to publish to; a warning is logged when missing
            aws_config: AWS session configuration
            session: Optional pre-built aioboto3 session
        """
        self.topic_arn = topic_arn
        self._aws = AwsServiceClient("sns", aws_config, session)

        if not self.topic_arn:
            logger.warning(
                "SNS topic ARN is not configured (SNS_TOPIC_ARN)",
                extra={"component": "sns_topic"}
            )

    def is_configured(self) -> bool:
        return bool(self.topic_arn)

    def _require_topic(self) -> str:
        if not self.topic_arn:
            raise ConfigurationError("SNS topic ARN is not configured")
        return self.topic_arn

    @staticmethod
    def _publish_params(topic_arn: str, envelope: Envelope) -> dict:
        return {
            "TopicArn": topic_arn,
            "Message": envelope.content,
            "Subject": f"Message from Publisher: {envelope.type.value}",
            "MessageAttributes": {
                "message-type": _string_attribute(envelope.type.value),
                "message-id": _string_attribute(envelope.id),
                "timestamp": _string_attribute(envelope.timestamp),
                "source": _string_attribute(envelope.source or "unknown"),
            },
        }

    async def send(self, envelope: Envelope) -> SnsReceipt:
        """
        Publish one envelope.

        Raises:
            DestinationError: "SNS publish failed: <reason>"
        """
        try:
            topic_arn = self._require_topic()
            client = await self._aws.get_client()

            logger.info(
                f"Publishing to SNS topic: {topic_arn}",
                extra={"component": "sns_topic", "message_id": envelope.id}
            )
            result = await client.publish(**self._publish_params(topic_arn, envelope))

        except Exception as e:
            logger.error(
                f"Error publishing message to SNS: {e}",
                extra={"component": "sns_topic", "message_id": envelope.id, "error": str(e)}
            )
            raise DestinationError(f"SNS publish failed: {e}", self.name) from e

        receipt = SnsReceipt(message_id=result["MessageId"], topic_arn=topic_arn)
        logger.info(
            "Message published to SNS",
            extra={
                "component": "sns_topic",
                "message_id": envelope.id,
                "sns_message_id": receipt.message_id
            }
        )
        return receipt

    async def publish_many(self, envelopes: List[Envelope]) -> List[SnsReceipt]:
        """
        Publish several envelopes concurrently.

        Raises:
            DestinationError: "SNS batch publish failed: <reason>" if any publish fails
        """
        try:
            topic_arn = self._require_topic()
            client = await self._aws.get_client()

            logger.info(f"Publishing {len(envelopes)} messages to SNS")
            results = await asyncio.gather(*[
                client.publish(**self._publish_params(topic_arn, envelope))
                for envelope in envelopes
            ])

        except Exception as e:
            logger.error(f"Error publishing messages to SNS: {e}")
            raise DestinationError(f"SNS batch publish failed: {e}", self.name) from e

        receipts = [
            SnsReceipt(message_id=result["MessageId"], topic_arn=topic_arn)
            for result in results
        ]
        logger.info(f"{len(receipts)} messages published to SNS")
        return receipts

    async def get_topic_attributes(self) -> dict:
        """
        Raises:
            DestinationError: If the attributes cannot be read
        """
        try:
            topic_arn = self._require_topic()
            client = await self._aws.get_client()
            result = await client.get_topic_attributes(TopicArn=topic_arn)
            return result.get("Attributes", {})
        except Exception as e:
            logger.error(f"Error getting topic attributes: {e}")
            raise DestinationError(f"Failed to get topic attributes: {e}", self.name) from e

    async def list_subscriptions(self) -> List[dict]:
        """Subscriptions of the topic, empty when unavailable."""
        if not self.topic_arn:
            return []

        try:
            client = await self._aws.get_client()
            result = await client.list_subscriptions_by_topic(TopicArn=self.topic_arn)
            return result.get("Subscriptions", [])
        except Exception as e:
            logger.error(f"Error listing subscriptions: {e}")
            return []

    async def check_health(self) -> str:
        if not self.topic_arn:
            return "not configured"

        try:
            await self.get_topic_attributes()
            return "ok"
        except DestinationError as e:
            return f"error: {e}"

    async def close(self) -> None:
        await self._aws.close()
