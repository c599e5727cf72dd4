"""
SQS implementation of the Destination interface.
Also provides the receive/delete operations used by the consumer workers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aioboto3

from ..config import AWSConfig
from ..domain.ports import Destination, DestinationError, ConfigurationError, ValidationError
from ..domain.schema import DestinationName, Envelope, SqsReceipt
from .aws_client import AwsServiceClient


logger = logging.getLogger(__name__)

SQS_MAX_BATCH = 10
SQS_MAX_DELAY_SECONDS = 900


@dataclass(frozen=True)
class ReceivedMessage:
    """A message pulled from the queue, not yet deleted."""
    message_id: str
    body: str
    receipt_handle: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, message: dict) -> "ReceivedMessage":
        return cls(
            message_id=message.get("MessageId", ""),
            body=message.get("Body", ""),
            receipt_handle=message.get("ReceiptHandle", ""),
            attributes=message.get("MessageAttributes") or {},
        )


def _string_attribute(value: str) -> dict:
    return {"DataType": "String", "StringValue": value}


class SqsQueue(Destination):
    """
    Sends envelopes to an SQS queue as JSON bodies.
    """

    name = DestinationName.SQS

    def __init__(
        self,
        queue_url: Optional[str],
        aws_config: AWSConfig,
        session: Optional[aioboto3.Session] = None
    ):
        """
        Initialize SQS queue adapter.

        Args:
            queue_url: Queue to use; a warning is logged when missing
            aws_config: AWS session configuration
            session: Optional pre-built aioboto3 session
        """
        self.queue_url = queue_url
        self._aws = AwsServiceClient("sqs", aws_config, session)

        if not self.queue_url:
            logger.warning(
                "SQS queue URL is not configured (SQS_QUEUE_URL)",
                extra={"component": "sqs_queue"}
            )

    def is_configured(self) -> bool:
        return bool(self.queue_url)

    def _require_queue(self) -> str:
        if not self.queue_url:
            raise ConfigurationError("SQS queue URL is not configured")
        return self.queue_url

    @staticmethod
    def _message_attributes(envelope: Envelope) -> dict:
        return {
            "message-type": _string_attribute(envelope.type.value),
            "message-id": _string_attribute(envelope.id),
            "timestamp": _string_attribute(envelope.timestamp),
            "source": _string_attribute(envelope.source or "unknown"),
            "content-type": _string_attribute("application/json"),
        }

    async def send(self, envelope: Envelope) -> SqsReceipt:
        """
        Send one envelope with no delay.

        Raises:
            DestinationError: "SQS send failed: <reason>"
        """
        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()

            logger.info(
                f"Sending message to SQS queue: {queue_url}",
                extra={"component": "sqs_queue", "message_id": envelope.id}
            )
            result = await client.send_message(
                QueueUrl=queue_url,
                MessageBody=envelope.to_json(),
                MessageAttributes=self._message_attributes(envelope),
                DelaySeconds=0,
            )

        except Exception as e:
            logger.error(
                f"Error sending message to SQS: {e}",
                extra={"component": "sqs_queue", "message_id": envelope.id, "error": str(e)}
            )
            raise DestinationError(f"SQS send failed: {e}", self.name) from e

        receipt = SqsReceipt(
            message_id=result["MessageId"],
            queue_url=queue_url,
            md5_of_body=result.get("MD5OfMessageBody"),
        )
        logger.info(
            "Message sent to SQS",
            extra={
                "component": "sqs_queue",
                "message_id": envelope.id,
                "sqs_message_id": receipt.message_id
            }
        )
        return receipt

    async def send_delayed(self, envelope: Envelope, delay_seconds: int) -> SqsReceipt:
        """
        Send one envelope that becomes visible after delay_seconds.

        Raises:
            ValidationError: If delay_seconds is outside 0..900
            DestinationError: "SQS delayed send failed: <reason>"
        """
        if delay_seconds < 0 or delay_seconds > SQS_MAX_DELAY_SECONDS:
            raise ValidationError(f"DelaySeconds must be between 0 and {SQS_MAX_DELAY_SECONDS}")

        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()

            attributes = self._message_attributes(envelope)
            attributes["delayed"] = _string_attribute("true")

            logger.info(f"Sending delayed message to SQS ({delay_seconds}s delay)")
            result = await client.send_message(
                QueueUrl=queue_url,
                MessageBody=envelope.to_json(),
                MessageAttributes=attributes,
                DelaySeconds=delay_seconds,
            )

        except Exception as e:
            logger.error(f"Error sending delayed message to SQS: {e}")
            raise DestinationError(f"SQS delayed send failed: {e}", self.name) from e

        return SqsReceipt(
            message_id=result["MessageId"],
            queue_url=queue_url,
            md5_of_body=result.get("MD5OfMessageBody"),
            delay_seconds=delay_seconds,
        )

    async def send_batch(self, envelopes: List[Envelope]) -> List[SqsReceipt]:
        """
        Send envelopes in SendMessageBatch calls of at most ten entries.

        Entries SQS reports as failed are logged and left out of the result.

        Raises:
            DestinationError: "SQS batch send failed: <reason>"
        """
        receipts: List[SqsReceipt] = []
        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()

            for start in range(0, len(envelopes), SQS_MAX_BATCH):
                chunk = envelopes[start:start + SQS_MAX_BATCH]
                entries = [
                    {
                        "Id": f"msg-{index}",
                        "MessageBody": envelope.to_json(),
                        "MessageAttributes": self._message_attributes(envelope),
                    }
                    for index, envelope in enumerate(chunk)
                ]

                logger.info(f"Sending batch of {len(entries)} messages to SQS")
                result = await client.send_message_batch(QueueUrl=queue_url, Entries=entries)

                for success in result.get("Successful", []):
                    receipts.append(SqsReceipt(
                        message_id=success["MessageId"],
                        queue_url=queue_url,
                        md5_of_body=success.get("MD5OfMessageBody"),
                    ))

                for failure in result.get("Failed", []):
                    logger.warning(
                        f"SQS rejected batch entry {failure.get('Id')}: {failure.get('Message')}",
                        extra={"component": "sqs_queue", "code": failure.get("Code")}
                    )

        except Exception as e:
            logger.error(f"Error sending batch messages to SQS: {e}")
            raise DestinationError(f"SQS batch send failed: {e}", self.name) from e

        logger.info(f"{len(receipts)} messages sent to SQS")
        return receipts

    async def receive(
        self,
        max_messages: int = 10,
        wait_time_seconds: int = 10
    ) -> List[ReceivedMessage]:
        """
        Long poll for up to max_messages messages.

        Raises:
            DestinationError: "SQS receive failed: <reason>"
        """
        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()
            result = await client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_time_seconds,
                MessageAttributeNames=["All"],
                AttributeNames=["All"],
            )
        except Exception as e:
            logger.error(f"Error receiving messages from SQS: {e}")
            raise DestinationError(f"SQS receive failed: {e}", self.name) from e

        return [ReceivedMessage.from_response(message) for message in result.get("Messages", [])]

    async def delete(self, receipt_handle: str) -> None:
        """
        Raises:
            DestinationError: "SQS delete failed: <reason>"
        """
        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()
            await client.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except Exception as e:
            logger.error(f"Error deleting message from SQS: {e}")
            raise DestinationError(f"SQS delete failed: {e}", self.name) from e

    async def get_queue_attributes(self) -> dict:
        """
        Raises:
            DestinationError: "SQS get attributes failed: <reason>"
        """
        try:
            queue_url = self._require_queue()
            client = await self._aws.get_client()
            result = await client.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["All"])
            return result.get("Attributes", {})
        except Exception as e:
            logger.error(f"Error getting SQS queue attributes: {e}")
            raise DestinationError(f"SQS get attributes failed: {e}", self.name) from e

    async def check_health(self) -> str:
        if not self.queue_url:
            return "not configured"

        try:
            await self.get_queue_attributes()
            return "ok"
        except DestinationError as e:
            return f"error: {e}"

    async def close(self) -> None:
        await self._aws.close()
