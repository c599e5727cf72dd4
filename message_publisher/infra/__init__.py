"""
Infrastructure layer for message-publisher.

Implementations of the Destination interface on top of aiokafka and aioboto3.
"""

from .kafka_publisher import KafkaPublisher
from .sns_topic import SnsTopic
from .sqs_queue import SqsQueue, ReceivedMessage

__all__ = [
    "KafkaPublisher",
    "SnsTopic",
    "SqsQueue",
    "ReceivedMessage"
]
