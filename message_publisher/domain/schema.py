"""
Domain schemas for message-publisher.
Defines the message envelope and the results reported by destinations.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


ENVELOPE_SOURCE = "message-publisher-api"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class MessageType(Enum):
    """Type tag carried by every envelope"""
    KAFKA_SNS = "kafka-sns"
    SNS_SQS = "sns-sqs"
    KAFKA_ONLY = "kafka-only"
    SNS_ONLY = "sns-only"
    SQS_ONLY = "sqs-only"


class DestinationName(Enum):
    """External messaging services"""
    KAFKA = "kafka"
    SNS = "sns"
    SQS = "sqs"

    @property
    def label(self) -> str:
        return self.value.upper() if self is not DestinationName.KAFKA else "Kafka"


class Route(Enum):
    """Publish routes exposed over HTTP"""
    KAFKA_SNS = "kafka-sns"
    SNS_SQS = "sns-sqs"
    KAFKA = "kafka"
    SNS = "sns"
    SQS = "sqs"

    @property
    def message_type(self) -> MessageType:
        return _ROUTE_TYPES[self]

    @property
    def destinations(self) -> Tuple[DestinationName, ...]:
        return _ROUTE_DESTINATIONS[self]

    @property
    def is_fan_out(self) -> bool:
        return len(self.destinations) > 1


_ROUTE_TYPES = {
    Route.KAFKA_SNS: MessageType.KAFKA_SNS,
    Route.SNS_SQS: MessageType.SNS_SQS,
    Route.KAFKA: MessageType.KAFKA_ONLY,
    Route.SNS: MessageType.SNS_ONLY,
    Route.SQS: MessageType.SQS_ONLY,
}

_ROUTE_DESTINATIONS = {
    Route.KAFKA_SNS: (DestinationName.KAFKA, DestinationName.SNS),
    Route.SNS_SQS: (DestinationName.SNS, DestinationName.SQS),
    Route.KAFKA: (DestinationName.KAFKA,),
    Route.SNS: (DestinationName.SNS,),
    Route.SQS: (DestinationName.SQS,),
}


class Envelope(BaseModel):
    """
    Canonical message forwarded to every destination.
    Created once per inbound request and never modified afterwards.
    """
    model_config = ConfigDict(extra='forbid', frozen=True)

    id: str = Field(..., description="Opaque identifier, also the HTTP request id")
    content: str = Field(..., description="Message text as received")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Client metadata")
    timestamp: str = Field(default_factory=utc_timestamp, description="ISO-8601 creation time")
    type: MessageType = Field(..., description="Message type tag")
    source: str = Field(default=ENVELOPE_SOURCE, description="Producer identifier")

    @classmethod
    def create(
        cls,
        content: str,
        message_type: MessageType,
        metadata: Optional[Dict[str, Any]] = None,
        envelope_id: Optional[str] = None
    ) -> "Envelope":
        return cls(
            id=envelope_id or str(uuid.uuid4()),
            content=content,
            metadata=dict(metadata or {}),
            type=message_type,
        )

    def to_json(self) -> str:
        return self.model_dump_json()


class DeliveryReceipt(BaseModel):
    """Success descriptor returned by a destination adapter."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(default=True)
    message_id: str = Field(..., description="Identifier assigned for the delivery")
    timestamp: str = Field(default_factory=utc_timestamp)


class KafkaReceipt(DeliveryReceipt):
    topic: str
    partition: int
    offset: int


class SnsReceipt(DeliveryReceipt):
    topic_arn: str


class SqsReceipt(DeliveryReceipt):
    queue_url: str
    md5_of_body: Optional[str] = None
    delay_seconds: Optional[int] = None


class DeliveryStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"


class OutcomeStatus(Enum):
    """Aggregate status of a publish across its destinations"""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class DestinationResult(BaseModel):
    """Outcome of one destination leg."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    destination: DestinationName
    status: DeliveryStatus
    receipt: Optional[DeliveryReceipt] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is DeliveryStatus.SUCCESS

    @classmethod
    def ok(cls, destination: DestinationName, receipt: DeliveryReceipt) -> "DestinationResult":
        return cls(destination=destination, status=DeliveryStatus.SUCCESS, receipt=receipt)

    @classmethod
    def failed(cls, destination: DestinationName, error: str) -> "DestinationResult":
        return cls(destination=destination, status=DeliveryStatus.FAILED, error=error)

    def to_response(self) -> Dict[str, Any]:
        """Flatten into the per-destination entry of an HTTP response."""
        if self.succeeded and self.receipt is not None:
            return {
                "status": self.status.value,
                **self.receipt.model_dump(by_alias=True, exclude_none=True),
            }
        return {"status": self.status.value, "error": self.error}


class PublishOutcome(BaseModel):
    """Composite result of one publish request."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    request_id: str
    route: Route
    envelope: Envelope
    results: List[DestinationResult]

    @property
    def success(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def status(self) -> OutcomeStatus:
        succeeded = sum(1 for result in self.results if result.succeeded)
        if succeeded == len(self.results):
            return OutcomeStatus.SUCCESS
        if succeeded == 0:
            return OutcomeStatus.FAILED
        return OutcomeStatus.PARTIAL

    def result_for(self, destination: DestinationName) -> DestinationResult:
        for result in self.results:
            if result.destination is destination:
                return result
        raise KeyError(destination.value)

