"""
Telemetry and observability for message-publisher.

Contains logging, metrics, and correlation utilities.
"""

from .logger import setup_logging, JSONFormatter, CorrelationFilter, MetricsLogger, correlation_id_var

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "CorrelationFilter",
    "MetricsLogger",
    "correlation_id_var"
]
