"""
Logging configuration for message-publisher.
Provides structured JSON logging with correlation IDs and metrics.
"""

import logging
import sys
import json
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Request id of the HTTP request (or worker message) being handled
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Formats log records as JSON with consistent fields.
    """

    STANDARD_FIELDS = frozenset({
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
        'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
        'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'getMessage',
        'taskName', 'message', 'asctime'
    })

    def __init__(
        self,
        service_name: str = "message-publisher",
        include_extra: bool = True
    ):
        """
        Initialize JSON formatter.

        Args:
            service_name: Name of the service for log identification
            include_extra: Whether to include extra fields from log record
        """
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in self.STANDARD_FIELDS and not key.startswith('_'):
                    log_entry[key] = value

        return json.dumps(log_entry, default=self._json_default)

    @staticmethod
    def _json_default(obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class CorrelationFilter(logging.Filter):
    """
    Logging filter that adds correlation ID to log records.
    Uses the id bound to the current request context when there is one.
    """

    def __init__(self, prefix: str = "mp"):
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = correlation_id_var.get() or self._generate_correlation_id()
        return True

    def _generate_correlation_id(self) -> str:
        return f"{self.prefix}-{int(time.time() * 1000)}"


def setup_logging(
    level: str = "INFO",
    service_name: str = "message-publisher",
    enable_json: bool = True,
    enable_correlation: bool = True
) -> None:
    """
    Setup logging configuration for the service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Service name for log identification
        enable_json: Whether to use JSON formatting
        enable_correlation: Whether to add correlation IDs
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if enable_json:
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    if enable_correlation:
        handler.addFilter(CorrelationFilter())

    logging.root.setLevel(numeric_level)
    logging.root.handlers.clear()
    logging.root.addHandler(handler)

    # Client libraries are chatty at INFO
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("aiokafka").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("aioboto3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "component": "logger",
            "level": level,
            "json_enabled": enable_json,
            "correlation_enabled": enable_correlation
        }
    )


class MetricsLogger:
    """
    Helper class for logging metrics and performance data.
    """

    def __init__(self, logger_name: str = "metrics"):
        self.logger = logging.getLogger(logger_name)

    def log_publish(
        self,
        request_id: str,
        route: str,
        status: str,
        duration_ms: float,
        destinations: Dict[str, str]
    ) -> None:
        """
        Log the outcome of one publish request.

        Args:
            request_id: Envelope / request id
            route: Publish route
            status: Aggregate outcome (success, partial, failed)
            duration_ms: Time spent waiting on destinations
            destinations: Per-destination delivery status
        """
        self.logger.info(
            f"Publish {status}: {route}",
            extra={
                "metric_type": "publish",
                "request_id": request_id,
                "route": route,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "destinations": destinations
            }
        )

    def log_http_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: Optional[str] = None
    ) -> None:
        self.logger.info(
            f"HTTP request: {method} {path}",
            extra={
                "metric_type": "http_request",
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip
            }
        )

    def log_message_processed(
        self,
        worker: str,
        message_id: str,
        message_type: str,
        success: bool,
        duration_ms: float,
        error: Optional[str] = None
    ) -> None:
        """
        Log one message handled by a consumer worker.

        Args:
            worker: Worker name
            message_id: Envelope id
            message_type: Envelope type tag
            success: Whether the handler completed
            duration_ms: Handling time in milliseconds
            error: Error message if failed
        """
        self.logger.info(
            f"Message processed by {worker}",
            extra={
                "metric_type": "message_processed",
                "worker": worker,
                "message_id": message_id,
                "message_type": message_type,
                "success": success,
                "duration_ms": round(duration_ms, 2),
                "error": error
            }
        )

    def log_worker_status(self, worker: str, status: Dict[str, Any]) -> None:
        self.logger.info(
            f"Worker status: {worker}",
            extra={
                "metric_type": "worker_status",
                "worker": worker,
                **status
            }
        )
