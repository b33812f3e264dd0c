"""Object listing for S3-compatible and Azure Blob endpoints.

Each backend pages through the provider's list API until the server stops
returning a continuation marker, and maps the XML entries onto
``ObjectDescriptor`` values.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Protocol

from bucket_migration.client.base_client import StorageHTTPClient
from bucket_migration.client.endpoints import (
    StorageProvider,
    azure_url,
    encode_query,
    s3_object_url,
)
from bucket_migration.migration.models import EndpointContext, ObjectDescriptor
from bucket_migration.utils.logging import get_logger
from bucket_migration.utils.xml_helpers import child_text, find_child, find_children, parse_xml

logger = get_logger(__name__)

AZURE_API_VERSION = "2024-11-04"
AZURE_PAGE_SIZE = 5000


def _parse_iso_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _parse_http_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def parse_s3_listing(payload: bytes) -> tuple[list[ObjectDescriptor], str | None]:
    """Parse one ListObjectsV2 page.

    Returns:
        Objects on the page and the continuation token, if more pages exist
    """
    root = parse_xml(payload, "ListObjectsV2")
    objects = [
        ObjectDescriptor(
            key=child_text(entry, "Key"),
            size_bytes=int(child_text(entry, "Size", "0") or 0),
            last_modified=_parse_iso_date(child_text(entry, "LastModified")),
            etag=child_text(entry, "ETag").strip('"'),
            storage_class=child_text(entry, "StorageClass"),
        )
        for entry in find_children(root, "Contents")
    ]
    token = child_text(root, "NextContinuationToken") or None
    return objects, token


def parse_azure_listing(payload: bytes) -> tuple[list[ObjectDescriptor], str | None]:
    """Parse one Azure List Blobs page.

    Returns:
        Blobs on the page and the ``NextMarker``, if more pages exist
    """
    root = parse_xml(payload, "List Blobs")
    blobs = find_child(root, "Blobs")
    entries = find_children(blobs, "Blob") if blobs is not None else []

    objects = []
    for entry in entries:
        properties = find_child(entry, "Properties")
        objects.append(
            ObjectDescriptor(
                key=child_text(entry, "Name"),
                size_bytes=int(child_text(properties, "Content-Length", "0") or 0),
                last_modified=_parse_http_date(child_text(properties, "Last-Modified")),
                etag=child_text(properties, "Etag").strip('"'),
                content_type=child_text(properties, "Content-Type"),
                version_id=child_text(entry, "VersionId") or None,
                is_deleted=child_text(entry, "Deleted").lower() == "true",
                storage_class=child_text(properties, "AccessTier"),
                blob_type=child_text(properties, "BlobType"),
            )
        )
    marker = child_text(root, "NextMarker") or None
    return objects, marker


class ListingBackend(Protocol):
    """Lists every object under a prefix for one provider."""

    provider: StorageProvider

    async def list_all_objects(
        self, client: StorageHTTPClient, context: EndpointContext, prefix: str
    ) -> list[ObjectDescriptor]: ...


class S3Backend:
    provider = StorageProvider.S3

    async def list_all_objects(
        self, client: StorageHTTPClient, context: EndpointContext, prefix: str
    ) -> list[ObjectDescriptor]:
        """Page through ListObjectsV2 with continuation tokens."""
        objects: list[ObjectDescriptor] = []
        token: str | None = None
        pages = 0

        while True:
            params: list[tuple[str, str | None]] = [("list-type", "2"), ("prefix", prefix)]
            if token:
                params.append(("continuation-token", token))
            url = s3_object_url(context.endpoint, context.bucket, query=encode_query(params))

            response = await client.request("GET", url, operation="list_objects")
            page, token = parse_s3_listing(response.content)
            objects.extend(page)
            pages += 1

            if not token:
                break

        logger.info(
            "listing_completed",
            provider=self.provider.value,
            bucket=context.bucket,
            prefix=prefix,
            objects=len(objects),
            pages=pages,
        )
        return objects


class AzureBlobBackend:
    provider = StorageProvider.AZURE_BLOB

    async def list_all_objects(
        self, client: StorageHTTPClient, context: EndpointContext, prefix: str
    ) -> list[ObjectDescriptor]:
        """Page through List Blobs with ``NextMarker``."""
        objects: list[ObjectDescriptor] = []
        marker: str | None = None
        pages = 0

        while True:
            params: list[tuple[str, str | None]] = [
                ("restype", "container"),
                ("comp", "list"),
                ("maxresults", str(AZURE_PAGE_SIZE)),
                ("prefix", prefix),
            ]
            if marker:
                params.append(("marker", marker))
            url = azure_url(context.endpoint, context.container, query=encode_query(params))

            response = await client.request(
                "GET", url, headers={"x-ms-version": AZURE_API_VERSION}, operation="list_blobs"
            )
            page, marker = parse_azure_listing(response.content)
            objects.extend(page)
            pages += 1

            if not marker:
                break

        logger.info(
            "listing_completed",
            provider=self.provider.value,
            container=context.container,
            prefix=prefix,
            objects=len(objects),
            pages=pages,
        )
        return objects


def backend_for(provider: StorageProvider) -> ListingBackend:
    """Return the listing backend for a provider."""
    match provider:
        case StorageProvider.S3:
            return S3Backend()
        case StorageProvider.AZURE_BLOB:
            return AzureBlobBackend()
