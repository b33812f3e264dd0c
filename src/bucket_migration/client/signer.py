"""AWS Signature Version 4 for S3-compatible endpoints.

Only the three headers S3 requires are signed (``host``,
``x-amz-content-sha256`` and ``x-amz-date``), which keeps the canonical
request identical across AWS, MinIO and other S3-compatible stores.
"""

import hashlib
import hmac
from datetime import UTC, datetime

import httpx

ALGORITHM = "AWS4-HMAC-SHA256"
DEFAULT_REGION = "us-east-1"
SERVICE = "s3"
SIGNED_HEADERS = "host;x-amz-content-sha256;x-amz-date"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"

_UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")


def sha256_hex(data: bytes | str) -> str:
    """Hex SHA-256 digest of bytes or UTF-8 text."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


EMPTY_PAYLOAD_HASH = sha256_hex(b"")


def aws_encode(value: str, encode_slash: bool = True) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set.

    Args:
        value: Text to encode
        encode_slash: Encode ``/`` too (query components) or keep it (paths)

    Returns:
        Encoded text with uppercase hex escapes over the UTF-8 bytes
    """
    out = []
    for char in value:
        if char in _UNRESERVED or (char == "/" and not encode_slash):
            out.append(char)
        else:
            out.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(out)


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def _signing_key(secret_key: str, date_stamp: str, region: str) -> bytes:
    k_date = _hmac(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, SERVICE)
    return _hmac(k_service, "aws4_request")


def _host_header(url: httpx.URL) -> str:
    # httpx drops default ports from URL.port, so an explicit port is a real one
    if url.port is None:
        return url.host
    return f"{url.host}:{url.port}"


def canonical_query_string(url: httpx.URL) -> str:
    """Sorted, re-encoded query string; a bare key becomes ``key=``."""
    items = sorted(url.params.multi_items())
    return "&".join(f"{aws_encode(name)}={aws_encode(value)}" for name, value in items)


def canonical_request(method: str, url: httpx.URL, payload_hash: str, amz_date: str) -> str:
    """Build the SigV4 canonical request for one S3 call."""
    canonical_uri = aws_encode(url.path, encode_slash=False) if url.path else "/"
    canonical_headers = (
        f"host:{_host_header(url)}\n"
        f"x-amz-content-sha256:{payload_hash}\n"
        f"x-amz-date:{amz_date}\n"
    )
    return "\n".join(
        [
            method.upper(),
            canonical_uri,
            canonical_query_string(url),
            canonical_headers,
            SIGNED_HEADERS,
            payload_hash,
        ]
    )


def sign_request(
    method: str,
    url: httpx.URL | str,
    region: str,
    access_key: str,
    secret_key: str,
    payload_hash: str,
    now: datetime | None = None,
) -> dict[str, str]:
    """Compute SigV4 headers for an S3 request.

    Args:
        method: HTTP method
        url: Fully encoded request URL, query included
        region: Signing region (empty means ``us-east-1``)
        access_key: Access key id
        secret_key: Secret access key
        payload_hash: Hex SHA-256 of the body, or ``UNSIGNED_PAYLOAD``
        now: Signing time (defaults to the current UTC time)

    Returns:
        Headers to add to the request: ``Host``, ``x-amz-date``,
        ``x-amz-content-sha256`` and ``Authorization``. Empty when either
        credential is empty, so the request goes out anonymously.
    """
    if not access_key or not secret_key:
        return {}

    url = httpx.URL(url)
    region = region or DEFAULT_REGION
    now = (now or datetime.now(UTC)).astimezone(UTC)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = amz_date[:8]

    credential_scope = f"{date_stamp}/{region}/{SERVICE}/aws4_request"
    string_to_sign = "\n".join(
        [
            ALGORITHM,
            amz_date,
            credential_scope,
            sha256_hex(canonical_request(method, url, payload_hash, amz_date)),
        ]
    )
    signature = hmac.new(
        _signing_key(secret_key, date_stamp, region),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return {
        "Host": _host_header(url),
        "x-amz-date": amz_date,
        "x-amz-content-sha256": payload_hash,
        "Authorization": (
            f"{ALGORITHM} Credential={access_key}/{credential_scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        ),
    }
