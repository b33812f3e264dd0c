"""
In-memory object store speaking the S3 and Azure Blob subsets used by the
engine, served to httpx clients through httpx.MockTransport.
"""

import asyncio
import hashlib
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

import httpx

S3_HOST = "s3.test"
AZURE_HOST = "acct.blob.core.windows.net"

S3_ENDPOINT = f"https://{S3_HOST}"
AZURE_ENDPOINT = f"https://{AZURE_HOST}/?sv=2024-11-04&sp=rwl&sig=c2VjcmV0"

S3_NS = "http://s3.amazonaws.com/doc/2006-03-01/"


def local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


@dataclass
class FailureRule:
    """Answer matching requests with an error status."""

    matcher: Callable[[httpx.Request], bool]
    status: int = 500
    remaining: int | None = 1

    def consume(self, request: httpx.Request) -> bool:
        if self.remaining == 0 or not self.matcher(request):
            return False
        if self.remaining is not None:
            self.remaining -= 1
        return True


@dataclass
class MultipartUpload:
    bucket: str
    key: str
    content_type: str | None
    parts: dict[int, bytes] = field(default_factory=dict)


class FakeObjectStore:
    """In-memory S3 + Azure Blob server.

    Objects live in ``self.objects[(host, bucket)][key]``. Every request is
    recorded in ``self.requests``; ``max_open_uploads`` tracks the highest
    number of target writes (S3 multipart uploads or Azure block sets) open
    at the same time.
    """

    def __init__(self, latency: float = 0.0, page_size: int = 1000):
        self.latency = latency
        self.page_size = page_size
        self.objects: dict[tuple[str, str], dict[str, bytes]] = {}
        self.content_types: dict[tuple[str, str, str], str] = {}
        self.requests: list[httpx.Request] = []
        self.uploads: dict[str, MultipartUpload] = {}
        self.completed_parts: dict[tuple[str, str], list[bytes]] = {}
        self.aborted: list[str] = []
        self.staged_blocks: dict[tuple[str, str], dict[str, bytes]] = {}
        self.committed_blocks: dict[tuple[str, str], list[str]] = {}
        self.failures: list[FailureRule] = []
        self.open_uploads = 0
        self.max_open_uploads = 0
        self._next_upload = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # Seeding and inspection

    def put(self, host: str, bucket: str, key: str, data: bytes, content_type: str = "") -> None:
        self.objects.setdefault((host, bucket), {})[key] = data
        if content_type:
            self.content_types[(host, bucket, key)] = content_type

    def get(self, host: str, bucket: str, key: str) -> bytes | None:
        return self.objects.get((host, bucket), {}).get(key)

    def keys(self, host: str, bucket: str) -> set[str]:
        return set(self.objects.get((host, bucket), {}))

    def fail(
        self,
        matcher: Callable[[httpx.Request], bool],
        status: int = 500,
        times: int | None = 1,
    ) -> None:
        self.failures.append(FailureRule(matcher, status, times))

    def requests_matching(self, method: str, query_key: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and (query_key is None or query_key in r.url.params)
        ]

    # Dispatch

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)

        for rule in self.failures:
            if rule.consume(request):
                return httpx.Response(rule.status, text="<Error><Code>Injected</Code></Error>")

        host = request.url.host
        segments = request.url.path.lstrip("/").split("/", 1)
        bucket = segments[0]
        key = segments[1] if len(segments) > 1 else ""
        params = request.url.params

        if host.endswith(".blob.core.windows.net"):
            if "sig" not in params:
                return httpx.Response(403, text="<Error><Code>AuthenticationFailed</Code></Error>")
            return self._azure(request, host, bucket, key, params)
        return self._s3(request, host, bucket, key, params)

    def _open(self) -> None:
        self.open_uploads += 1
        self.max_open_uploads = max(self.max_open_uploads, self.open_uploads)

    def _close(self) -> None:
        self.open_uploads -= 1

    # S3

    def _s3(self, request, host, bucket, key, params) -> httpx.Response:
        method = request.method

        if method == "GET" and not key and params.get("list-type") == "2":
            return self._s3_list(host, bucket, params)

        if method == "GET":
            data = self.get(host, bucket, key)
            if data is None:
                return httpx.Response(404, text="<Error><Code>NoSuchKey</Code></Error>")
            return httpx.Response(200, content=data)

        if method == "POST" and "uploads" in params:
            self._next_upload += 1
            upload_id = f"upload-{self._next_upload}"
            self.uploads[upload_id] = MultipartUpload(
                bucket, key, request.headers.get("Content-Type")
            )
            self._open()
            body = (
                f'<InitiateMultipartUploadResult xmlns="{S3_NS}">'
                f"<Bucket>{escape(bucket)}</Bucket><Key>{escape(key)}</Key>"
                f"<UploadId>{upload_id}</UploadId></InitiateMultipartUploadResult>"
            )
            return httpx.Response(200, text=body)

        upload = self.uploads.get(params.get("uploadId", ""))

        if method == "PUT" and "partNumber" in params:
            if upload is None:
                return httpx.Response(404, text="<Error><Code>NoSuchUpload</Code></Error>")
            chunk = request.content
            upload.parts[int(params["partNumber"])] = chunk
            etag = hashlib.md5(chunk).hexdigest()
            return httpx.Response(200, headers={"ETag": f'"{etag}"'})

        if method == "POST" and "uploadId" in params:
            if upload is None:
                return httpx.Response(404, text="<Error><Code>NoSuchUpload</Code></Error>")
            root = ET.fromstring(request.content)
            numbers = [
                int(next(c.text for c in part if local(c.tag) == "PartNumber"))
                for part in root
                if local(part.tag) == "Part"
            ]
            ordered = [upload.parts[n] for n in numbers]
            self.put(host, bucket, key, b"".join(ordered), upload.content_type or "")
            self.completed_parts[(bucket, key)] = ordered
            del self.uploads[params["uploadId"]]
            self._close()
            return httpx.Response(200, text="<CompleteMultipartUploadResult/>")

        if method == "DELETE" and "uploadId" in params:
            if upload is not None:
                del self.uploads[params["uploadId"]]
                self._close()
            self.aborted.append(params["uploadId"])
            return httpx.Response(204)

        return httpx.Response(400, text="<Error><Code>Unsupported</Code></Error>")

    def _s3_list(self, host, bucket, params) -> httpx.Response:
        if (host, bucket) not in self.objects:
            return httpx.Response(404, text="<Error><Code>NoSuchBucket</Code></Error>")

        prefix = params.get("prefix", "")
        keys = sorted(k for k in self.objects[(host, bucket)] if k.startswith(prefix))
        start = int(params.get("continuation-token", "0"))
        page = keys[start : start + self.page_size]
        more = start + self.page_size < len(keys)

        contents = "".join(
            f"<Contents><Key>{escape(k)}</Key>"
            f"<LastModified>2024-01-01T00:00:00.000Z</LastModified>"
            f"<ETag>&quot;{hashlib.md5(self.objects[(host, bucket)][k]).hexdigest()}&quot;</ETag>"
            f"<Size>{len(self.objects[(host, bucket)][k])}</Size>"
            f"<StorageClass>STANDARD</StorageClass></Contents>"
            for k in page
        )
        token = f"<NextContinuationToken>{start + self.page_size}</NextContinuationToken>" if more else ""
        body = (
            f'<ListBucketResult xmlns="{S3_NS}"><Name>{escape(bucket)}</Name>'
            f"<Prefix>{escape(prefix)}</Prefix><KeyCount>{len(page)}</KeyCount>"
            f"<IsTruncated>{'true' if more else 'false'}</IsTruncated>"
            f"{contents}{token}</ListBucketResult>"
        )
        return httpx.Response(200, text=body)

    # Azure

    def _azure(self, request, host, container, blob, params) -> httpx.Response:
        method = request.method

        if method == "GET" and not blob and params.get("comp") == "list":
            return self._azure_list(host, container, params)

        if method == "GET":
            data = self.get(host, container, blob)
            if data is None:
                return httpx.Response(404, text="<Error><Code>BlobNotFound</Code></Error>")
            return httpx.Response(200, content=data)

        if method == "PUT" and params.get("comp") == "block":
            if request.headers.get("x-ms-blob-type") != "BlockBlob":
                return httpx.Response(400, text="<Error><Code>MissingBlobType</Code></Error>")
            staged = self.staged_blocks.setdefault((container, blob), {})
            if not staged:
                self._open()
            staged[params["blockid"]] = request.content
            return httpx.Response(201)

        if method == "PUT" and params.get("comp") == "blocklist":
            root = ET.fromstring(request.content)
            ids = [el.text for el in root if local(el.tag) == "Latest"]
            staged = self.staged_blocks.pop((container, blob), {})
            self.put(host, container, blob, b"".join(staged[i] for i in ids))
            self.committed_blocks[(container, blob)] = ids
            if staged:
                self._close()
            return httpx.Response(201)

        return httpx.Response(400, text="<Error><Code>Unsupported</Code></Error>")

    def _azure_list(self, host, container, params) -> httpx.Response:
        if (host, container) not in self.objects:
            return httpx.Response(404, text="<Error><Code>ContainerNotFound</Code></Error>")

        prefix = params.get("prefix", "")
        page_size = min(int(params.get("maxresults", "5000")), self.page_size)
        names = sorted(n for n in self.objects[(host, container)] if n.startswith(prefix))
        start = int(params.get("marker") or "0")
        page = names[start : start + page_size]
        more = start + page_size < len(names)

        blobs = "".join(
            f"<Blob><Name>{escape(n)}</Name><Properties>"
            f"<Last-Modified>Mon, 01 Jan 2024 00:00:00 GMT</Last-Modified>"
            f"<Etag>0x8DC0000000000{i:02d}</Etag>"
            f"<Content-Length>{len(self.objects[(host, container)][n])}</Content-Length>"
            f"<Content-Type>{self.content_types.get((host, container, n), 'application/octet-stream')}</Content-Type>"
            f"<BlobType>BlockBlob</BlobType><AccessTier>Hot</AccessTier>"
            f"</Properties></Blob>"
            for i, n in enumerate(page)
        )
        marker = f"<NextMarker>{start + page_size}</NextMarker>" if more else "<NextMarker />"
        body = (
            f'<?xml version="1.0" encoding="utf-8"?>'
            f'<EnumerationResults ServiceEndpoint="https://{host}/" ContainerName="{container}">'
            f"<Prefix>{escape(prefix)}</Prefix><Blobs>{blobs}</Blobs>{marker}</EnumerationResults>"
        )
        return httpx.Response(200, text=body)

