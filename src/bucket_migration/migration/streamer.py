"""
Streaming copy of single objects between object stores.

The source body is read incrementally and re-sliced into fixed-size chunks.
Every chunk is uploaded as soon as it is complete, through the target's
multipart (S3) or block (Azure Blob) protocol, so memory stays bounded by
one chunk per object in flight regardless of object size.
"""

import base64
from collections.abc import AsyncIterator, Callable
from functools import partial
from xml.sax.saxutils import escape

import httpx

from bucket_migration.client.base_client import StorageHTTPClient
from bucket_migration.client.endpoints import (
    StorageProvider,
    azure_url,
    encode_query,
    s3_object_url,
)
from bucket_migration.client.exceptions import MissingETagError, MissingUploadIdError
from bucket_migration.migration.models import EndpointContext, TransferStats
from bucket_migration.migration.throttle import BandwidthThrottle
from bucket_migration.utils.logging import get_logger
from bucket_migration.utils.retry import RetryPolicy, retry_async
from bucket_migration.utils.xml_helpers import find_descendant_text, parse_xml

logger = get_logger(__name__)

AZURE_API_VERSION = "2024-11-04"

ChunkCallback = Callable[[int], None]


def block_id(index: int) -> str:
    """Azure block id for the zero-based chunk index."""
    return base64.b64encode(f"{index:06d}".encode("ascii")).decode("ascii")


def complete_multipart_body(parts: list[tuple[int, str]]) -> str:
    """CompleteMultipartUpload document with parts sorted by number."""
    body = "".join(
        f'<Part><PartNumber>{number}</PartNumber><ETag>"{escape(etag)}"</ETag></Part>'
        for number, etag in sorted(parts)
    )
    return f"<CompleteMultipartUpload>{body}</CompleteMultipartUpload>"


def block_list_body(block_ids: list[str]) -> str:
    blocks = "".join(f"<Latest>{bid}</Latest>" for bid in block_ids)
    return f'<?xml version="1.0" encoding="utf-8"?><BlockList>{blocks}</BlockList>'


async def rechunk(stream: AsyncIterator[bytes], chunk_size: int) -> AsyncIterator[bytes]:
    """Re-slice a byte stream into ``chunk_size`` pieces; the last may be short."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    buffer = bytearray()
    async for data in stream:
        buffer.extend(data)
        while len(buffer) >= chunk_size:
            yield bytes(buffer[:chunk_size])
            del buffer[:chunk_size]
    if buffer:
        yield bytes(buffer)


class _RequestCounter:
    def __init__(self) -> None:
        self.count = 0


class StreamingCopyEngine:
    """
    Copies objects from one endpoint context to another.

    Every control call and chunk upload is retried under ``retry_policy``.
    When an attempt still fails, the whole object is retried from byte 0
    under the same policy before the error reaches the caller.
    """

    def __init__(
        self,
        source: EndpointContext,
        target: EndpointContext,
        source_client: StorageHTTPClient,
        target_client: StorageHTTPClient,
        buffer_bytes: int,
        retry_policy: RetryPolicy | None = None,
        throttle: BandwidthThrottle | None = None,
    ):
        """
        Initialize the copy engine.

        Args:
            source: Source side of the job
            target: Target side of the job
            source_client: HTTP client bound to the source endpoint
            target_client: HTTP client bound to the target endpoint
            buffer_bytes: Chunk size in bytes
            retry_policy: Retry policy for operations and whole objects
            throttle: Optional bandwidth throttle shared by all transfers
        """
        if buffer_bytes <= 0:
            raise ValueError("buffer_bytes must be positive")

        self.source = source
        self.target = target
        self.source_client = source_client
        self.target_client = target_client
        self.buffer_bytes = buffer_bytes
        self.retry_policy = retry_policy or RetryPolicy()
        self.throttle = throttle

    async def copy_object(
        self,
        source_key: str,
        target_key: str,
        content_type: str | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> TransferStats:
        """Stream one object from source to target.

        Args:
            source_key: Key to read on the source
            target_key: Key to write on the target
            content_type: MIME type to set on S3 targets, if known
            on_chunk: Called with the byte count of each accepted chunk, and
                with the negated total when a failed attempt is discarded

        Returns:
            TransferStats: Bytes and requests of the successful attempt

        Raises:
            Exception: The last error once whole-object retries are exhausted
        """

        async def attempt() -> TransferStats:
            counter = _RequestCounter()
            uploaded = 0

            def report(delta: int) -> None:
                nonlocal uploaded
                uploaded += delta
                if on_chunk is not None:
                    on_chunk(delta)

            try:
                return await self._copy_once(source_key, target_key, content_type, counter, report)
            except Exception:
                if uploaded and on_chunk is not None:
                    on_chunk(-uploaded)
                raise

        stats = await retry_async(
            attempt,
            self.retry_policy,
            "copy_object",
            source_key=source_key,
            target_key=target_key,
        )
        logger.debug(
            "object_copied",
            source_key=source_key,
            target_key=target_key,
            bytes=stats.bytes_transferred,
            requests=stats.request_count,
        )
        return stats

    async def _copy_once(
        self,
        source_key: str,
        target_key: str,
        content_type: str | None,
        counter: _RequestCounter,
        on_chunk: ChunkCallback,
    ) -> TransferStats:
        counter.count += 1
        async with self.source_client.stream(
            "GET", self._source_url(source_key), operation="download"
        ) as response:
            chunks = rechunk(response.aiter_bytes(), self.buffer_bytes)

            match self.target.provider:
                case StorageProvider.S3:
                    uploaded = await self._upload_multipart_s3(
                        chunks, target_key, content_type, counter, on_chunk
                    )
                case StorageProvider.AZURE_BLOB:
                    uploaded = await self._upload_blocks_azure(chunks, target_key, counter, on_chunk)

        return TransferStats(bytes_transferred=uploaded, request_count=counter.count)

    def _source_url(self, key: str) -> httpx.URL:
        match self.source.provider:
            case StorageProvider.S3:
                return s3_object_url(self.source.endpoint, self.source.bucket, key)
            case StorageProvider.AZURE_BLOB:
                return azure_url(self.source.endpoint, self.source.container, key)

    async def _send_target(
        self,
        counter: _RequestCounter,
        method: str,
        url: httpx.URL,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
        **extra,
    ) -> httpx.Response:
        counter.count += 1
        return await self.target_client.request(method, url, content=content, headers=headers, **extra)

    async def _throttle(self, nbytes: int) -> None:
        if self.throttle is not None:
            await self.throttle.acquire(nbytes)

    # S3 multipart upload

    def _s3_url(self, key: str, query: str) -> httpx.URL:
        return s3_object_url(self.target.endpoint, self.target.bucket, key, query=query)

    async def _initiate_s3(self, key: str, content_type: str | None, counter: _RequestCounter) -> str:
        headers = {}
        # Listings without real metadata carry placeholders rather than MIME types
        if content_type and "/" in content_type:
            headers["Content-Type"] = content_type

        response = await self._send_target(
            counter,
            "POST",
            self._s3_url(key, encode_query([("uploads", None)])),
            headers=headers,
            operation="initiate_multipart_upload",
        )
        upload_id = find_descendant_text(
            parse_xml(response.content, "InitiateMultipartUpload"), "UploadId"
        )
        if not upload_id:
            raise MissingUploadIdError(key)
        return upload_id

    async def _upload_part_s3(
        self, key: str, upload_id: str, part_number: int, chunk: bytes, counter: _RequestCounter
    ) -> str:
        response = await self._send_target(
            counter,
            "PUT",
            self._s3_url(
                key, encode_query([("partNumber", str(part_number)), ("uploadId", upload_id)])
            ),
            content=chunk,
            operation="upload_part",
            part_number=part_number,
        )
        etag = response.headers.get("ETag", "").replace('"', "")
        if not etag:
            raise MissingETagError(key, part_number)
        return etag

    async def _complete_s3(
        self, key: str, upload_id: str, parts: list[tuple[int, str]], counter: _RequestCounter
    ) -> None:
        await self._send_target(
            counter,
            "POST",
            self._s3_url(key, encode_query([("uploadId", upload_id)])),
            content=complete_multipart_body(parts).encode("utf-8"),
            headers={"Content-Type": "application/xml"},
            operation="complete_multipart_upload",
            parts=len(parts),
        )

    async def _abort_s3(self, key: str, upload_id: str, counter: _RequestCounter) -> None:
        try:
            await self._send_target(
                counter,
                "DELETE",
                self._s3_url(key, encode_query([("uploadId", upload_id)])),
                operation="abort_multipart_upload",
            )
            logger.info("multipart_upload_aborted", key=key, upload_id=upload_id)
        except Exception as e:
            logger.warning("multipart_abort_failed", key=key, upload_id=upload_id, error=str(e))

    async def _upload_multipart_s3(
        self,
        chunks: AsyncIterator[bytes],
        key: str,
        content_type: str | None,
        counter: _RequestCounter,
        on_chunk: ChunkCallback,
    ) -> int:
        policy = self.retry_policy
        upload_id = await retry_async(
            partial(self._initiate_s3, key, content_type, counter),
            policy,
            "initiate_multipart_upload",
            key=key,
        )

        parts: list[tuple[int, str]] = []
        uploaded = 0
        try:
            part_number = 1
            async for chunk in chunks:
                await self._throttle(len(chunk))
                etag = await retry_async(
                    partial(self._upload_part_s3, key, upload_id, part_number, chunk, counter),
                    policy,
                    "upload_part",
                    key=key,
                    part_number=part_number,
                )
                parts.append((part_number, etag))
                uploaded += len(chunk)
                on_chunk(len(chunk))
                part_number += 1

            # S3 rejects a completion with no parts, so an empty object gets one empty part
            if not parts:
                etag = await retry_async(
                    partial(self._upload_part_s3, key, upload_id, 1, b"", counter),
                    policy,
                    "upload_part",
                    key=key,
                    part_number=1,
                )
                parts.append((1, etag))

            await retry_async(
                partial(self._complete_s3, key, upload_id, parts, counter),
                policy,
                "complete_multipart_upload",
                key=key,
            )
        except BaseException:
            await self._abort_s3(key, upload_id, counter)
            raise

        return uploaded

    # Azure block blob upload

    def _azure_url(self, key: str, query: str) -> httpx.URL:
        return azure_url(self.target.endpoint, self.target.container, key, query=query)

    async def _put_block_azure(
        self, key: str, bid: str, chunk: bytes, counter: _RequestCounter
    ) -> None:
        await self._send_target(
            counter,
            "PUT",
            self._azure_url(key, encode_query([("comp", "block"), ("blockid", bid)])),
            content=chunk,
            headers={"x-ms-blob-type": "BlockBlob", "x-ms-version": AZURE_API_VERSION},
            operation="put_block",
        )

    async def _commit_blocks_azure(
        self, key: str, block_ids: list[str], counter: _RequestCounter
    ) -> None:
        await self._send_target(
            counter,
            "PUT",
            self._azure_url(key, encode_query([("comp", "blocklist")])),
            content=block_list_body(block_ids).encode("utf-8"),
            headers={"x-ms-version": AZURE_API_VERSION},
            operation="put_block_list",
            blocks=len(block_ids),
        )

    async def _upload_blocks_azure(
        self,
        chunks: AsyncIterator[bytes],
        key: str,
        counter: _RequestCounter,
        on_chunk: ChunkCallback,
    ) -> int:
        policy = self.retry_policy
        block_ids: list[str] = []
        uploaded = 0

        index = 0
        async for chunk in chunks:
            await self._throttle(len(chunk))
            bid = block_id(index)
            await retry_async(
                partial(self._put_block_azure, key, bid, chunk, counter),
                policy,
                "put_block",
                key=key,
                block_index=index,
            )
            block_ids.append(bid)
            uploaded += len(chunk)
            on_chunk(len(chunk))
            index += 1

        await retry_async(
            partial(self._commit_blocks_azure, key, block_ids, counter),
            policy,
            "put_block_list",
            key=key,
        )
        return uploaded
