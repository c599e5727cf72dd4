"""
HTTP server for message-publisher using FastAPI.
Provides the publish routes and the introspection endpoints.
"""

import json
import logging
import resource
import time
import uuid
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import AppConfig
from ..domain.ports import ValidationError
from ..domain.schema import OutcomeStatus, PublishOutcome, Route, utc_timestamp
from ..services.publish_gateway import PublishGateway, INVALID_MESSAGE_ERROR
from ..telemetry.logger import MetricsLogger, correlation_id_var


logger = logging.getLogger(__name__)

STATUS_CODES = {
    OutcomeStatus.SUCCESS: 200,
    OutcomeStatus.PARTIAL: 207,
    OutcomeStatus.FAILED: 500,
}

SUCCESS_MESSAGES = {
    Route.KAFKA: "Message published to Kafka successfully",
    Route.SNS: "Message published to SNS successfully",
    Route.SQS: "Message sent to SQS successfully",
}

ROUTE_DESCRIPTIONS = {
    Route.KAFKA_SNS: "Publish message to both Kafka and SNS",
    Route.SNS_SQS: "Publish message to SNS and send to SQS",
    Route.KAFKA: "Publish message to Kafka only",
    Route.SNS: "Publish message to SNS only",
    Route.SQS: "Send message to SQS only",
}


def _memory_usage() -> Dict[str, Any]:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        "max_rss_kb": usage.ru_maxrss,
        "user_time_seconds": round(usage.ru_utime, 3),
        "system_time_seconds": round(usage.ru_stime, 3),
    }


def outcome_response(outcome: PublishOutcome) -> JSONResponse:
    """
    Render a publish outcome as the HTTP response for its route.

    Single destination routes carry one `result`, fan-out routes a
    `results` map keyed by destination.
    """
    status = outcome.status
    body: Dict[str, Any] = {
        "success": outcome.success,
        "requestId": outcome.request_id,
    }

    if outcome.route.is_fan_out:
        body.update({
            "message": "Message processing completed",
            "timestamp": utc_timestamp(),
            "status": status.value,
            "results": {
                result.destination.value: result.to_response()
                for result in outcome.results
            },
        })
        return JSONResponse(status_code=STATUS_CODES[status], content=body)

    result = outcome.results[0]
    if result.succeeded:
        body.update({
            "message": SUCCESS_MESSAGES[outcome.route],
            "timestamp": utc_timestamp(),
            "status": status.value,
            "result": result.receipt.model_dump(by_alias=True, exclude_none=True),
        })
        return JSONResponse(status_code=200, content=body)

    body.update({
        "error": result.error,
        "message": f"Failed to publish message to {result.destination.label}",
        "timestamp": utc_timestamp(),
        "status": status.value,
    })
    return JSONResponse(status_code=500, content=body)


class PublisherAPI:
    """
    FastAPI application for message-publisher.
    Handles publish requests and health checks.
    """

    def __init__(
        self,
        gateway: PublishGateway,
        config: AppConfig,
        title: str = "Message Publisher API",
        version: str = "1.0.0"
    ):
        """
        Initialize FastAPI application.

        Args:
            gateway: Publish gateway with the destination adapters
            config: Application configuration
            title: API title
            version: API version
        """
        self.gateway = gateway
        self.config = config
        self.version = version
        self.metrics = MetricsLogger()
        self.started_at = time.monotonic()

        self.app = FastAPI(
            title=title,
            version=version,
            description="HTTP API publishing messages to Kafka, SNS and SQS",
            docs_url="/docs",
            redoc_url="/redoc"
        )

        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self) -> None:
        """Setup FastAPI middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["POST", "GET"],
            allow_headers=["Content-Type", "Authorization"]
        )

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            correlation_id = request.headers.get("x-request-id") or str(uuid.uuid4())
            token = correlation_id_var.set(correlation_id)
            start_time = time.time()

            try:
                response = await call_next(request)

                elapsed_ms = (time.time() - start_time) * 1000
                self.metrics.log_http_request(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=elapsed_ms,
                    client_ip=request.client.host if request.client else "unknown"
                )
                response.headers["X-Correlation-ID"] = correlation_id
                return response

            finally:
                correlation_id_var.reset(token)

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get("/", summary="API banner")
        async def root() -> dict:
            return {
                "message": "Message Publisher API",
                "version": self.version,
                "timestamp": utc_timestamp(),
                "endpoints": {
                    "health": "/api/health",
                    "publisher": "/api/publisher",
                    "docs": "/api/docs"
                }
            }

        @self.app.get("/api/docs", summary="Endpoint listing")
        async def api_docs() -> dict:
            return {
                "title": "Message Publisher API Documentation",
                "version": self.version,
                "endpoints": [
                    {
                        "path": f"/api/publisher/{route.value}",
                        "method": "POST",
                        "description": ROUTE_DESCRIPTIONS[route],
                        "body": {
                            "message": "string (required)",
                            "metadata": "object (optional)"
                        }
                    }
                    for route in Route
                ]
            }

        @self.app.get("/api/health", summary="Health Check")
        async def health_check() -> dict:
            """Basic health check - reports OK while the process is serving."""
            return {
                "status": "OK",
                "uptime": round(time.monotonic() - self.started_at, 3),
                "timestamp": utc_timestamp(),
                "service": self.config.app.service_name,
                "version": self.version,
                "environment": self.config.app.environment,
                "memory": _memory_usage(),
                "services": {
                    "kafka": "configured" if self.config.kafka.brokers else "not configured",
                    "aws": "configured" if self.config.aws.has_static_credentials else "not configured"
                }
            }

        @self.app.get("/api/health/detailed", summary="Detailed Health Check")
        async def detailed_health_check() -> dict:
            """
            Detailed health check.

            Reports WARNING when required settings are missing and the
            state of every destination adapter.
            """
            status = "OK"
            environment = "OK"

            missing = self.config.missing_required()
            if missing:
                environment = f"Missing: {', '.join(missing)}"
                status = "WARNING"
                logger.warning(
                    f"Required settings missing: {missing}",
                    extra={"component": "http_server"}
                )

            return {
                "status": status,
                "timestamp": utc_timestamp(),
                "service": self.config.app.service_name,
                "checks": {
                    "environment": environment,
                    "dependencies": await self.gateway.check_health()
                }
            }

        @self.app.get("/api/publisher/status", summary="Publisher status")
        async def publisher_status() -> dict:
            description = self.gateway.describe()
            return {
                "timestamp": utc_timestamp(),
                "services": description["destinations"],
                "routes": description["routes"]
            }

        @self.app.post("/api/publisher/{route_name}", summary="Publish message")
        async def publish(route_name: str, request: Request) -> JSONResponse:
            """
            Publish a message along a route.

            Returns 200 when every destination accepted the message, 207 on
            partial success and 500 when nothing was delivered.
            """
            try:
                route = Route(route_name)
            except ValueError:
                return self._not_found(request)

            payload = await self._read_payload(request)
            outcome = await self.gateway.publish(
                route,
                payload.get("message"),
                payload.get("metadata")
            )

            logger.info(
                f"Publish request completed: {outcome.status.value}",
                extra={
                    "component": "http_server",
                    "request_id": outcome.request_id,
                    "route": route.value
                }
            )
            return outcome_response(outcome)

    @staticmethod
    async def _read_payload(request: Request) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: If the body is not a JSON object
        """
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(INVALID_MESSAGE_ERROR) from e

        if not isinstance(payload, dict):
            raise ValidationError(INVALID_MESSAGE_ERROR)
        return payload

    @staticmethod
    def _not_found(request: Request) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={
                "error": "Route not found",
                "method": request.method,
                "url": str(request.url.path),
                "timestamp": utc_timestamp()
            }
        )

    def _setup_exception_handlers(self) -> None:
        """Setup custom exception handlers."""

        @self.app.exception_handler(ValidationError)
        async def validation_exception_handler(request: Request, exc: ValidationError):
            """Handle malformed publish requests."""
            logger.warning(
                f"Validation error: {exc}",
                extra={"component": "http_server", "path": request.url.path}
            )
            return JSONResponse(
                status_code=400,
                content={"error": str(exc), "timestamp": utc_timestamp()}
            )

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Unknown paths and methods answer with the route-not-found body."""
            if exc.status_code in (404, 405):
                return self._not_found(request)
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.detail, "timestamp": utc_timestamp()}
            )

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            """Anything else is a 500; the text is only exposed in development."""
            logger.error(
                f"Unhandled error: {exc}",
                extra={"component": "http_server", "path": request.url.path},
                exc_info=exc
            )
            message = str(exc) if self.config.app.is_development else "Something went wrong"
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": message,
                    "timestamp": utc_timestamp()
                }
            )

