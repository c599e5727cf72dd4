"""
Service layer for message-publisher.
"""

from .publish_gateway import PublishGateway, INVALID_MESSAGE_ERROR, INVALID_METADATA_ERROR

__all__ = [
    "PublishGateway",
    "INVALID_MESSAGE_ERROR",
    "INVALID_METADATA_ERROR"
]
