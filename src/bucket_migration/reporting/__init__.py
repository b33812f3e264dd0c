"""Console reporting for Bucket Bridge migrations."""

from bucket_migration.reporting.colors import MigrationColors, status_style
from bucket_migration.reporting.live_progress import MigrationProgressDisplay, throughput_sparkline

__all__ = [
    "MigrationColors",
    "MigrationProgressDisplay",
    "status_style",
    "throughput_sparkline",
]
