"""
HTTP API layer for message-publisher.
"""

from .http_server import PublisherAPI, outcome_response

__all__ = [
    "PublisherAPI",
    "outcome_response"
]
