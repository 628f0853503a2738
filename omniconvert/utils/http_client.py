"""
Centralized HTTP client factory.

All outbound calls (currently only the content extractor) go through clients
created here so that timeouts and connection pooling are configured in one
place and every client is closed when the application shuts down.

Requests are never retried automatically: a failed extraction ends the attempt
and the user starts a new one.
"""

import logging
import os
from contextlib import asynccontextmanager
from enum import Enum
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ServiceType(Enum):
    """Service types for HTTP client configuration."""
    DEFAULT = "default"
    EXTRACTOR = "extractor"


class HTTPClientFactory:
    """
    Factory for creating and managing shared HTTP clients.

    One client is kept per service type; asking for the same type again
    returns the existing client until close_all_clients() is called.
    """

    def __init__(self):
        self._clients: Dict[ServiceType, httpx.AsyncClient] = {}
        self._limits = None
        self._timeout = None

    def _get_connection_limits(self) -> httpx.Limits:
        if self._limits is None:
            self._limits = httpx.Limits(
                max_keepalive_connections=10,
                max_connections=50,
                keepalive_expiry=30.0
            )
        return self._limits

    def _get_timeout(self) -> httpx.Timeout:
        """Read timeout from OMNICONVERT_HTTP_TIMEOUT; extraction can take a while."""
        if self._timeout is None:
            http_timeout_str = os.getenv('OMNICONVERT_HTTP_TIMEOUT', '').strip()
            http_timeout = float(http_timeout_str) if http_timeout_str else 120.0

            self._timeout = httpx.Timeout(
                connect=10.0,
                read=http_timeout,
                write=120.0,
                pool=10.0
            )
        return self._timeout

    def create_client(
        self,
        service_type: ServiceType = ServiceType.DEFAULT,
        **overrides
    ) -> httpx.AsyncClient:
        """
        Create an HTTP client for a service type.

        Args:
            service_type: Type of service the client will be used for
            **overrides: Override default client configuration

        Returns:
            Configured AsyncClient instance
        """
        config = {
            'timeout': self._get_timeout(),
            'limits': self._get_connection_limits(),
            'follow_redirects': False,
        }
        config.update(overrides)

        client = httpx.AsyncClient(**config)
        self._clients[service_type] = client
        logger.debug(f"Created HTTP client for {service_type.value}")
        return client

    def get_client(self, service_type: ServiceType) -> Optional[httpx.AsyncClient]:
        """Get an existing client for a service type."""
        return self._clients.get(service_type)

    def get_or_create_client(self, service_type: ServiceType) -> httpx.AsyncClient:
        client = self.get_client(service_type)
        if client is None or client.is_closed:
            client = self.create_client(service_type)
        return client

    async def close_all_clients(self):
        """Close all managed clients."""
        for client in self._clients.values():
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")

        self._clients.clear()


# Global factory instance
_http_factory = HTTPClientFactory()


def get_http_client_factory() -> HTTPClientFactory:
    """Get the global HTTP client factory instance."""
    return _http_factory


@asynccontextmanager
async def lifespan_http_clients():
    """
    Context manager for HTTP client lifecycle management.

    Use this in FastAPI lifespan events to ensure proper client cleanup.
    """
    try:
        yield
    finally:
        await _http_factory.close_all_clients()
