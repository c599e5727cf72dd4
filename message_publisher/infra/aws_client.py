"""
Lazily created aioboto3 clients shared by the SNS and SQS adapters.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional

import aioboto3

from ..config import AWSConfig


logger = logging.getLogger(__name__)


def create_session(config: AWSConfig) -> aioboto3.Session:
    """
    Build an aioboto3 session from configuration.

    Static credentials are only passed when both halves are set; otherwise
    the default botocore credential chain applies.
    """
    session_kwargs = {"region_name": config.region}
    if config.has_static_credentials:
        session_kwargs["aws_access_key_id"] = config.access_key_id
        session_kwargs["aws_secret_access_key"] = config.secret_access_key
    return aioboto3.Session(**session_kwargs)


class AwsServiceClient:
    """
    Owns one aioboto3 service client for the lifetime of an adapter.

    The client is opened on first use and kept until close().
    """

    def __init__(
        self,
        service_name: str,
        config: AWSConfig,
        session: Optional[aioboto3.Session] = None
    ):
        self.service_name = service_name
        self.aws_config = config
        self._session = session or create_session(config)
        self._client: Optional[Any] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def get_client(self) -> Any:
        """Return the service client, opening it on first call."""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                client_kwargs = {}
                if self.aws_config.endpoint_url:
                    client_kwargs["endpoint_url"] = self.aws_config.endpoint_url

                exit_stack = AsyncExitStack()
                self._client = await exit_stack.enter_async_context(
                    self._session.client(self.service_name, **client_kwargs)
                )
                self._exit_stack = exit_stack

                logger.info(
                    f"{self.service_name.upper()} client created",
                    extra={
                        "component": f"{self.service_name}_client",
                        "region": self.aws_config.region,
                        "endpoint_url": self.aws_config.endpoint_url
                    }
                )

        return self._client

    async def close(self) -> None:
        if self._exit_stack is not None:
            try:
                await self._exit_stack.aclose()
            except Exception as e:
                logger.error(f"Error closing {self.service_name} client: {e}")
            finally:
                self._exit_stack = None
                self._client = None
                logger.info(f"{self.service_name.upper()} client closed")
