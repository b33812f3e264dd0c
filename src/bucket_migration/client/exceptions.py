"""Custom exceptions for Bucket Bridge.

This module defines exception classes for the error conditions that can occur
while resolving endpoints, talking to object stores, and persisting checkpoints.
"""


class BucketMigrationError(Exception):
    """Base exception for all bucket migration errors."""

    pass


class HTTPStatusError(BucketMigrationError):
    """Raised when an object store answers with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        method: str | None = None,
        url: str | None = None,
        body: str | None = None,
    ):
        """Initialize HTTP status error.

        Args:
            status_code: HTTP status code returned by the server
            method: HTTP method of the failed request
            url: Request URL (already redacted by the caller)
            body: Response body, truncated by the caller
        """
        self.status_code = status_code
        self.method = method
        self.url = url
        self.body = body
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and request line."""
        msg = f"[{self.status_code}] HTTP request failed"
        if self.method and self.url:
            msg = f"{msg}: {self.method} {self.url}"
        if self.body:
            msg = f"{msg}: {self.body}"
        return msg

    @property
    def is_client_error(self) -> bool:
        """Whether the status is a 4xx that retrying cannot fix.

        408 and 429 are transient even though they are 4xx.
        """
        return 400 <= self.status_code < 500 and self.status_code not in (408, 429)


class MissingUploadIdError(BucketMigrationError):
    """Raised when S3 multipart initiation returns no UploadId."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Multipart upload initiation returned no UploadId for key: {key}")


class MissingETagError(BucketMigrationError):
    """Raised when an S3 part upload is accepted without an ETag header."""

    def __init__(self, key: str, part_number: int):
        self.key = key
        self.part_number = part_number
        super().__init__(f"Part {part_number} of {key} was accepted without an ETag")


class ResolutionError(BucketMigrationError):
    """Raised when a profile or endpoint string cannot be resolved."""

    pass


class NetworkError(BucketMigrationError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class ConfigurationError(BucketMigrationError):
    """Raised when configuration is invalid or missing."""

    pass


class StateError(BucketMigrationError):
    """Raised when local state management errors occur."""

    pass


class CheckpointError(StateError):
    """Raised when checkpoint operations fail."""

    pass


class MigrationError(BucketMigrationError):
    """Raised when migration operations fail."""

    pass
