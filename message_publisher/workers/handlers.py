"""
Message handlers for the consumer workers.

Each worker owns a MessageHandlers table that maps every MessageType to an
async handler. A table with a gap is rejected when it is built.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable

from ..domain.ports import ConfigurationError
from ..domain.schema import Envelope, MessageType
from ..telemetry.logger import correlation_id_var


logger = logging.getLogger(__name__)

GENERIC_HANDLER = "generic"


class ProcessingStatus(Enum):
    """Final state of one consumed message"""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class HandlerOutcome:
    """What a handler did with an envelope."""
    message_id: str
    message_type: MessageType
    handler: str
    status: ProcessingStatus

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "message_type": self.message_type.value,
            "handler": self.handler,
            "status": self.status.value,
        }


Handler = Callable[[Envelope], Awaitable[HandlerOutcome]]


def logging_handler(worker: str, handler_name: str) -> Handler:
    """
    Build a handler that logs the envelope and reports it completed.

    The handler has no side effects beyond logging, so handling the same
    envelope twice gives the same outcome.
    """
    async def handle(envelope: Envelope) -> HandlerOutcome:
        logger.info(
            f"Processing {handler_name} message: {envelope.content}",
            extra={
                "component": worker,
                "message_id": envelope.id,
                "message_type": envelope.type.value,
                "handler": handler_name
            }
        )
        return HandlerOutcome(
            message_id=envelope.id,
            message_type=envelope.type,
            handler=handler_name,
            status=ProcessingStatus.COMPLETED,
        )

    return handle


class MessageHandlers:
    """
    Closed dispatch table from MessageType to handler.
    """

    def __init__(self, worker: str, handlers: Dict[MessageType, Handler]):
        """
        Args:
            worker: Name of the owning worker, used in logs
            handlers: Handler for every MessageType member

        Raises:
            ConfigurationError: If any MessageType has no handler
        """
        missing = [message_type.value for message_type in MessageType if message_type not in handlers]
        if missing:
            raise ConfigurationError(f"{worker} has no handler for message types: {', '.join(missing)}")

        self.worker = worker
        self._handlers = dict(handlers)

    @classmethod
    def build(cls, worker: str, specific: Iterable[MessageType]) -> "MessageHandlers":
        """
        Table with a dedicated handler for each type in `specific` and the
        generic handler for the rest.
        """
        specific = set(specific)
        return cls(worker, {
            message_type: logging_handler(
                worker,
                message_type.value if message_type in specific else GENERIC_HANDLER
            )
            for message_type in MessageType
        })

    async def dispatch(self, envelope: Envelope) -> HandlerOutcome:
        """Run the handler for the envelope's type with its id as correlation id."""
        token = correlation_id_var.set(envelope.id)
        try:
            return await self._handlers[envelope.type](envelope)
        finally:
            correlation_id_var.reset(token)
