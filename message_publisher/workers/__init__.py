"""
Consumer workers for message-publisher.
"""

from .base import BaseWorker, WorkerState
from .handlers import MessageHandlers, HandlerOutcome, ProcessingStatus
from .kafka_worker import KafkaWorker
from .sns_worker import SnsWorker, envelope_from_notification
from .sqs_worker import SqsWorker

__all__ = [
    "BaseWorker",
    "WorkerState",
    "MessageHandlers",
    "HandlerOutcome",
    "ProcessingStatus",
    "KafkaWorker",
    "SnsWorker",
    "SqsWorker",
    "envelope_from_notification"
]
