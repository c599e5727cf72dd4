"""
Publish gateway for message-publisher.
Builds the envelope for a route and fans it out to the route's destinations.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional

from ..domain.ports import Destination, DestinationError, ValidationError
from ..domain.schema import (
    DestinationName,
    DestinationResult,
    Envelope,
    PublishOutcome,
    Route,
)
from ..telemetry.logger import MetricsLogger


logger = logging.getLogger(__name__)

INVALID_MESSAGE_ERROR = "Message is required and must be a non-empty string"
INVALID_METADATA_ERROR = "Metadata must be an object"


class PublishGateway:
    """
    Dispatches envelopes to destination adapters.

    Every leg of a route is awaited to completion. A failing leg becomes a
    failed DestinationResult and never cancels or fails its sibling.
    """

    def __init__(
        self,
        destinations: Dict[DestinationName, Destination],
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize publish gateway.

        Args:
            destinations: Adapters keyed by destination name
            metrics: Metrics logger for publish outcomes
        """
        self.destinations = destinations
        self.metrics = metrics or MetricsLogger()

    @staticmethod
    def validate(message: Any, metadata: Any = None) -> Dict[str, Any]:
        """
        Check a publish request before any destination is called.

        Args:
            message: Message text supplied by the client
            metadata: Optional client metadata

        Returns:
            Metadata as a dict, {} when it was not supplied

        Raises:
            ValidationError: If message is not a non-blank string or
                metadata is not a mapping
        """
        if not isinstance(message, str) or not message.strip():
            raise ValidationError(INVALID_MESSAGE_ERROR)

        if metadata is None:
            return {}
        if not isinstance(metadata, Mapping):
            raise ValidationError(INVALID_METADATA_ERROR)
        return dict(metadata)

    async def publish(
        self,
        route: Route,
        message: Any,
        metadata: Any = None
    ) -> PublishOutcome:
        """
        Publish one message along a route.

        Args:
            route: Route selecting message type and destinations
            message: Message text
            metadata: Optional client metadata

        Returns:
            PublishOutcome with one result per destination, in route order

        Raises:
            ValidationError: If the request is malformed
        """
        clean_metadata = self.validate(message, metadata)
        envelope = Envelope.create(message, route.message_type, clean_metadata)

        logger.info(
            f"Publishing message via route {route.value}",
            extra={
                "component": "publish_gateway",
                "request_id": envelope.id,
                "route": route.value,
                "destinations": [d.value for d in route.destinations]
            }
        )

        start_time = time.time()
        if route.is_fan_out:
            results = await asyncio.gather(*[
                self._settle(destination, envelope)
                for destination in route.destinations
            ])
        else:
            results = [await self._settle(route.destinations[0], envelope)]
        duration_ms = (time.time() - start_time) * 1000

        outcome = PublishOutcome(
            request_id=envelope.id,
            route=route,
            envelope=envelope,
            results=list(results),
        )

        self.metrics.log_publish(
            request_id=outcome.request_id,
            route=route.value,
            status=outcome.status.value,
            duration_ms=duration_ms,
            destinations={r.destination.value: r.status.value for r in outcome.results}
        )
        return outcome

    async def _settle(self, name: DestinationName, envelope: Envelope) -> DestinationResult:
        """Send to one destination, turning any exception into a failed result."""
        destination = self.destinations.get(name)
        if destination is None:
            return DestinationResult.failed(name, f"{name.label} destination is not available")

        try:
            receipt = await destination.send(envelope)
            return DestinationResult.ok(name, receipt)

        except DestinationError as e:
            logger.warning(
                f"{name.label} leg failed: {e}",
                extra={"component": "publish_gateway", "request_id": envelope.id}
            )
            return DestinationResult.failed(name, str(e))

        except Exception as e:
            logger.error(
                f"Unexpected error publishing to {name.label}: {e}",
                extra={"component": "publish_gateway", "request_id": envelope.id},
                exc_info=True
            )
            return DestinationResult.failed(name, f"{name.label} publish failed: {e}")

    def describe(self) -> Dict[str, Any]:
        """Destination availability and routes, for the status endpoint."""
        destinations = {}
        for name in DestinationName:
            destination = self.destinations.get(name)
            available = destination is not None and destination.is_configured()
            destinations[name.value] = "available" if available else "not configured"

        return {
            "destinations": destinations,
            "routes": {
                f"/api/publisher/{route.value}": [d.value for d in route.destinations]
                for route in Route
            }
        }

    async def check_health(self) -> Dict[str, str]:
        """Health of each registered destination, keyed by name."""
        checks = {}
        for name, destination in self.destinations.items():
            try:
                checks[name.value] = await destination.check_health()
            except Exception as e:
                checks[name.value] = f"error: {e}"
        return checks

    async def close(self) -> None:
        for destination in self.destinations.values():
            await destination.close()
