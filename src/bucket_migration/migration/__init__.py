"""
Migration module for Bucket Bridge.

This module provides job and progress models, checkpoint storage, and the
streaming copy engine. The orchestrating MigrationRunner lives in
``bucket_migration.migration.runner``.
"""

from bucket_migration.migration.checkpoint import (
    CheckpointFileInfo,
    CheckpointStore,
    checkpoint_path,
    list_checkpoint_files,
    parse_checkpoint_filename,
    sanitize_profile_name,
)
from bucket_migration.migration.models import (
    EndpointContext,
    MigrationJob,
    MigrationStatus,
    ObjectDescriptor,
    ProgressSample,
    TransferStats,
)
from bucket_migration.migration.streamer import StreamingCopyEngine
from bucket_migration.migration.throttle import BandwidthThrottle

__all__ = [
    # Models
    "MigrationJob",
    "EndpointContext",
    "ObjectDescriptor",
    "TransferStats",
    "ProgressSample",
    "MigrationStatus",
    # Checkpoints
    "CheckpointStore",
    "CheckpointFileInfo",
    "checkpoint_path",
    "list_checkpoint_files",
    "parse_checkpoint_filename",
    "sanitize_profile_name",
    # Transfer
    "StreamingCopyEngine",
    "BandwidthThrottle",
]
