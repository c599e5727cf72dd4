"""
Domain layer for message-publisher.

Contains the envelope model, routing tables and the destination interface.
"""

from .schema import (
    Envelope,
    MessageType,
    DestinationName,
    Route,
    DeliveryReceipt,
    KafkaReceipt,
    SnsReceipt,
    SqsReceipt,
    DeliveryStatus,
    DestinationResult,
    OutcomeStatus,
    PublishOutcome,
)
from .ports import (
    Destination,
    PublisherError,
    ValidationError,
    DestinationError,
    ConfigurationError,
)

__all__ = [
    "Envelope",
    "MessageType",
    "DestinationName",
    "Route",
    "DeliveryReceipt",
    "KafkaReceipt",
    "SnsReceipt",
    "SqsReceipt",
    "DeliveryStatus",
    "DestinationResult",
    "OutcomeStatus",
    "PublishOutcome",
    "Destination",
    "PublisherError",
    "ValidationError",
    "DestinationError",
    "ConfigurationError",
]
