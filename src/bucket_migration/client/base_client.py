"""Base HTTP client for object-store endpoints.

This module provides an async HTTP client bound to one endpoint and one set
of credentials. It signs S3 requests, times and logs every call, and maps
failures onto the package's exception hierarchy.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from bucket_migration.client.endpoints import StorageEndpoint, StorageProvider
from bucket_migration.client.exceptions import HTTPStatusError, NetworkError
from bucket_migration.client.signer import EMPTY_PAYLOAD_HASH, sha256_hex, sign_request
from bucket_migration.utils.logging import get_logger, log_api_request, redact_url, truncate_text

logger = get_logger(__name__)


class StorageHTTPClient:
    """Async HTTP client for one S3 or Azure Blob endpoint.

    This client provides:
    - Connection pooling
    - SigV4 signing for S3 (no-op for anonymous or Azure SAS access)
    - Request logging with credentials redacted
    - Status and transport error mapping
    """

    def __init__(
        self,
        endpoint: StorageEndpoint,
        region: str = "",
        access_key: str = "",
        secret_key: str = "",
        verify_ssl: bool = True,
        timeout: float = 60.0,
        max_connections: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize storage client.

        Args:
            endpoint: Resolved endpoint to talk to
            region: S3 signing region
            access_key: S3 access key
            secret_key: S3 secret key
            verify_ssl: Whether to verify TLS certificates
            timeout: Read/write timeout in seconds
            max_connections: Maximum number of connections in pool (default: 16)
            transport: Optional transport override (used by tests)
        """
        self.endpoint = endpoint
        self.region = region
        self.access_key = access_key
        self.secret_key = secret_key

        if max_connections is None:
            max_connections = 16

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            verify=verify_ssl,
            transport=transport,
        )

        logger.debug(
            "client_initialized",
            base_url=endpoint.base_url,
            provider=endpoint.provider.value,
            signed=bool(access_key and secret_key),
        )

    def _build_headers(
        self,
        method: str,
        url: httpx.URL,
        payload_hash: str,
        headers: dict[str, str] | None,
    ) -> dict[str, str]:
        merged = dict(headers or {})
        if self.endpoint.provider is StorageProvider.S3:
            merged.update(
                sign_request(
                    method,
                    url,
                    region=self.region,
                    access_key=self.access_key,
                    secret_key=self.secret_key,
                    payload_hash=payload_hash,
                )
            )
        return merged

    async def _raise_for_status(self, method: str, url: httpx.URL, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        body = await response.aread()
        raise HTTPStatusError(
            status_code=response.status_code,
            method=method,
            url=redact_url(str(url)),
            body=truncate_text(body.decode("utf-8", errors="replace")) or None,
        )

    async def request(
        self,
        method: str,
        url: httpx.URL,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
        **extra: Any,
    ) -> httpx.Response:
        """Send one request and return the fully read response.

        Args:
            method: HTTP method
            url: Fully encoded request URL
            content: Request body (hashed here for the S3 signature)
            headers: Extra request headers
            **extra: Context added to the request log event

        Returns:
            The 2xx response

        Raises:
            HTTPStatusError: For non-2xx responses
            NetworkError: For transport failures and timeouts
        """
        payload_hash = sha256_hex(content) if content else EMPTY_PAYLOAD_HASH
        request_headers = self._build_headers(method, url, payload_hash, headers)

        start_time = time.time()
        try:
            response = await self.client.request(
                method, url, content=content, headers=request_headers
            )
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=redact_url(str(url)), error=str(e))
            raise NetworkError(f"Request timeout: {str(e)}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=redact_url(str(url)), error=str(e))
            raise NetworkError(f"Network error: {str(e)}") from e

        log_api_request(
            logger,
            method=method,
            url=str(url),
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
            bytes_sent=len(content),
            **extra,
        )
        await self._raise_for_status(method, url, response)
        return response

    @asynccontextmanager
    async def stream(self, method: str, url: httpx.URL, **extra: Any) -> AsyncIterator[httpx.Response]:
        """Open a streaming request whose body is read incrementally.

        Yields:
            The 2xx response; iterate ``response.aiter_bytes()`` for the body

        Raises:
            HTTPStatusError: For non-2xx responses
            NetworkError: For transport failures while connecting or reading
        """
        request_headers = self._build_headers(method, url, EMPTY_PAYLOAD_HASH, None)

        start_time = time.time()
        try:
            async with self.client.stream(method, url, headers=request_headers) as response:
                log_api_request(
                    logger,
                    method=method,
                    url=str(url),
                    status_code=response.status_code,
                    duration_ms=(time.time() - start_time) * 1000,
                    **extra,
                )
                await self._raise_for_status(method, url, response)
                yield response
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=redact_url(str(url)), error=str(e))
            raise NetworkError(f"Stream timeout: {str(e)}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=redact_url(str(url)), error=str(e))
            raise NetworkError(f"Stream interrupted: {str(e)}") from e

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self.client.aclose()
        logger.debug("client_closed", base_url=self.endpoint.base_url)

    async def __aenter__(self) -> "StorageHTTPClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
