"""Endpoint resolution for S3-compatible and Azure Blob endpoints.

Turns the free-form endpoint string stored in a connection profile into a
typed ``StorageEndpoint`` and builds request URLs against it.
"""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qsl, urlsplit

import httpx

from bucket_migration.client.exceptions import ResolutionError
from bucket_migration.client.signer import aws_encode


class StorageProvider(str, Enum):
    """Closed set of object-store protocols the engine speaks."""

    S3 = "s3"
    AZURE_BLOB = "azure_blob"


@dataclass(frozen=True)
class StorageEndpoint:
    """Normalized endpoint descriptor.

    Attributes:
        provider: Protocol family of the endpoint
        base_url: Scheme, host, optional port and (S3 only) base path
        container: Azure container named in the endpoint path, if any
        sas_token: Azure SAS query string, kept percent-encoded
    """

    provider: StorageProvider
    base_url: str
    container: str | None = None
    sas_token: str | None = None

    @property
    def is_container_sas(self) -> bool:
        return self.provider is StorageProvider.AZURE_BLOB and self.container is not None


def _is_local_or_private_host(host: str) -> bool:
    host = host.lower()
    if host == "localhost" or host.endswith(".local"):
        return True

    parts = host.split(".")
    if len(parts) != 4 or not all(p.isdigit() for p in parts):
        return False
    a, b = int(parts[0]), int(parts[1])
    return a in (10, 127) or (a == 192 and b == 168) or (a == 172 and 16 <= b <= 31)


def parse_endpoint(value: str) -> StorageEndpoint:
    """Resolve an endpoint string into a ``StorageEndpoint``.

    Azure is detected by a ``blob.core.`` host or a ``sig`` query parameter;
    everything else is S3-compatible. Without an explicit scheme, local and
    private hosts default to ``http`` and all others to ``https``.

    Args:
        value: Endpoint as entered by the user (URL or bare host)

    Returns:
        StorageEndpoint: Resolved endpoint

    Raises:
        ResolutionError: If the string is empty or has no host
    """
    trimmed = value.strip()
    if not trimmed:
        raise ResolutionError("Endpoint is empty")

    has_scheme = "://" in trimmed
    try:
        parts = urlsplit(trimmed if has_scheme else f"https://{trimmed}")
        port = parts.port
    except ValueError as e:
        raise ResolutionError(f"Invalid endpoint '{trimmed}': {e}") from e

    host = parts.hostname
    if not host:
        raise ResolutionError(f"Endpoint has no host: {trimmed}")

    netloc = host if port is None else f"{host}:{port}"
    has_sig = any(k.lower() == "sig" for k, _ in parse_qsl(parts.query, keep_blank_values=True))

    if "blob.core." in host.lower() or has_sig:
        segments = [s for s in parts.path.split("/") if s]
        return StorageEndpoint(
            provider=StorageProvider.AZURE_BLOB,
            base_url=f"{parts.scheme or 'https'}://{netloc}",
            container=segments[0] if segments else None,
            sas_token=parts.query or None,
        )

    if has_scheme:
        scheme = parts.scheme
    else:
        scheme = "http" if _is_local_or_private_host(host) else "https"

    return StorageEndpoint(
        provider=StorageProvider.S3,
        base_url=f"{scheme}://{netloc}{parts.path.rstrip('/')}",
    )


def encode_key_path(key: str) -> str:
    """Encode an object key for a URL path, keeping '/' separators.

    Segments that are exactly ``.`` or ``..`` are legal in object keys but
    would be collapsed by URL normalization, so their dots become ``%2E``.
    """
    return "/".join(
        segment.replace(".", "%2E") if segment in (".", "..") else aws_encode(segment)
        for segment in key.split("/")
    )


def s3_object_url(endpoint: StorageEndpoint, bucket: str, key: str = "", query: str = "") -> httpx.URL:
    """Path-style S3 URL for a bucket or object.

    Args:
        endpoint: S3 endpoint
        bucket: Bucket name
        key: Object key (raw, encoded here)
        query: Already-encoded query string without the leading ``?``
    """
    path = "/" + aws_encode(bucket)
    if key:
        path += "/" + encode_key_path(key)
    url = endpoint.base_url + path
    if query:
        url += "?" + query
    return httpx.URL(url)


def azure_url(endpoint: StorageEndpoint, container: str, blob: str = "", query: str = "") -> httpx.URL:
    """Azure Blob URL with the SAS token followed by any extra query."""
    path = "/" + aws_encode(container)
    if blob:
        path += "/" + encode_key_path(blob)

    combined = "&".join(q for q in (endpoint.sas_token, query) if q)
    url = endpoint.base_url + path
    if combined:
        url += "?" + combined
    return httpx.URL(url)


def encode_query(params: list[tuple[str, str | None]]) -> str:
    """Encode query pairs; a ``None`` value yields a bare key (``?uploads``)."""
    return "&".join(
        aws_encode(name) if value is None else f"{aws_encode(name)}={aws_encode(value)}"
        for name, value in params
    )
