"""Data models for migration jobs, objects, and progress."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from bucket_migration.client.endpoints import StorageEndpoint, StorageProvider


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class MigrationJob:
    """One user-initiated copy between two buckets.

    The ``id`` names the checkpoint lineage; constructing a job with the id of
    an earlier run resumes that run.
    """

    source_profile_name: str
    source_bucket: str
    target_profile_name: str
    target_bucket: str
    source_prefix: str = ""
    target_prefix: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class EndpointContext:
    """Everything needed to talk to one side of a job."""

    endpoint: StorageEndpoint
    bucket: str
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    allow_insecure: bool = False

    @property
    def provider(self) -> StorageProvider:
        return self.endpoint.provider

    @property
    def container(self) -> str:
        """Azure container: the SAS-scoped one if present, else the bucket."""
        return self.endpoint.container or self.bucket


@dataclass(frozen=True)
class ObjectDescriptor:
    """One listed object."""

    key: str
    size_bytes: int = 0
    last_modified: datetime | None = None
    etag: str = ""
    content_type: str = ""
    version_id: str | None = None
    is_versioned: bool = False
    is_delete_marker: bool = False
    is_deleted: bool = False
    is_latest: bool = True
    storage_class: str = ""
    blob_type: str = ""

    @property
    def is_folder_placeholder(self) -> bool:
        return self.key.endswith("/") and self.size_bytes == 0

    @property
    def is_copy_target(self) -> bool:
        """False for any key ending in '/', placeholder or not; such keys name folders."""
        return not self.key.endswith("/")


@dataclass(frozen=True)
class TransferStats:
    """Bytes and requests spent on one successfully copied object."""

    bytes_transferred: int
    request_count: int


@dataclass(frozen=True)
class ProgressSample:
    timestamp: datetime
    bytes_transferred: int
    request_count: int


@dataclass(frozen=True)
class MigrationStatus:
    """Point-in-time view of a runner's published state."""

    is_running: bool
    status_message: str
    total_objects: int
    completed_objects: int
    bytes_copied: int
    throughput_bytes_per_sec: float
    request_count: int
    error_messages: tuple[str, ...] = ()
    samples: tuple[ProgressSample, ...] = ()

    @property
    def failed(self) -> bool:
        return bool(self.error_messages)
