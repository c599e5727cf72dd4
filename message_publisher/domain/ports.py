"""
Ports (interfaces) for message-publisher.
Following Dependency Inversion Principle - high-level modules depend on abstractions.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .schema import DestinationName, Envelope, DeliveryReceipt


class Destination(ABC):
    """
    Interface for an external messaging service that accepts envelopes.
    Implemented for a Kafka topic, an SNS topic and an SQS queue.
    """

    name: DestinationName

    @abstractmethod
    async def send(self, envelope: Envelope) -> DeliveryReceipt:
        """
        Deliver one envelope.

        Args:
            envelope: The envelope to deliver

        Returns:
            DeliveryReceipt describing where the envelope landed

        Raises:
            DestinationError: If delivery fails for any reason
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether every setting the destination needs is present."""
        pass

    @abstractmethod
    async def check_health(self) -> str:
        """
        Probe the destination.

        Returns:
            Short human readable state, never raises
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying client, if one was created."""
        pass


# Custom exceptions
class PublisherError(Exception):
    """Base class for message-publisher errors."""
    pass


class ValidationError(PublisherError):
    """Raised when a publish request is malformed."""
    pass


class DestinationError(PublisherError):
    """Raised when a destination fails to accept an envelope."""

    def __init__(self, message: str, destination: Optional[DestinationName] = None):
        super().__init__(message)
        self.destination = destination


class ConfigurationError(PublisherError):
    """Raised when a required setting is missing."""
    pass
