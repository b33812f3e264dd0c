"""
Migration commands.

This module provides the command that runs one cross-provider migration job
with a live progress display.
"""

import asyncio
import time
import uuid

import click

from bucket_migration.cli.context import MigrationContext
from bucket_migration.cli.decorators import handle_errors, pass_context, requires_config
from bucket_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    format_bytes,
    format_duration,
    print_table,
)
from bucket_migration.client.endpoints import parse_endpoint
from bucket_migration.client.exceptions import ResolutionError
from bucket_migration.config import ErrorPolicy, MigrationConfig
from bucket_migration.migration.models import MigrationJob, MigrationStatus
from bucket_migration.migration.runner import MigrationRunner
from bucket_migration.reporting.live_progress import MigrationProgressDisplay
from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)

DISPLAY_REFRESH_SECONDS = 0.25


@click.group(name="migrate")
def migrate() -> None:
    """Migration commands.

    Copy objects between S3-compatible and Azure Blob endpoints.
    """
    pass


def _check_profiles(config: MigrationConfig, *names: str) -> None:
    """Fail early, with a precise message, on unknown profiles or endpoints."""
    for name in names:
        profile = config.get_profile(name)
        if profile is None:
            known = ", ".join(p.name for p in config.profiles) or "none"
            raise ResolutionError(f"Unknown profile '{name}' (configured: {known})")
        parse_endpoint(profile.endpoint)


def _apply_overrides(
    config: MigrationConfig, best_effort: bool, max_concurrent: int | None
) -> MigrationConfig:
    updates: dict = {}
    if best_effort:
        updates["error_policy"] = ErrorPolicy.BEST_EFFORT_CONTINUE
    if max_concurrent is not None:
        updates["max_concurrent_transfers"] = max_concurrent
    if not updates:
        return config
    return config.model_copy(update={"transfer": config.transfer.model_copy(update=updates)})


async def _run_with_display(
    runner: MigrationRunner, job: MigrationJob, display: MigrationProgressDisplay
) -> MigrationStatus:
    task = runner.start(job)
    if task is None:
        raise click.ClickException("A migration is already running")

    with display:
        while not task.done():
            display.update(runner.snapshot(), skipped=runner.skipped_objects)
            await asyncio.wait({task}, timeout=DISPLAY_REFRESH_SECONDS)
        display.update(runner.snapshot(), skipped=runner.skipped_objects)

    return await task


@migrate.command(name="run")
@click.option("--source-profile", required=True, help="Profile to copy from")
@click.option("--source-bucket", required=True, help="Bucket (or container) to copy from")
@click.option("--source-prefix", default="", help="Only copy keys under this prefix")
@click.option("--target-profile", required=True, help="Profile to copy to")
@click.option("--target-bucket", required=True, help="Bucket (or container) to copy to")
@click.option("--target-prefix", default="", help="Prefix prepended to every target key")
@click.option(
    "--job-id",
    type=click.UUID,
    default=None,
    help="Resume an earlier job by reusing its id (default: new job)",
)
@click.option(
    "--best-effort",
    is_flag=True,
    help="Keep copying remaining objects after one fails",
)
@click.option(
    "--max-concurrent",
    type=click.IntRange(1, 8),
    default=None,
    help="Override transfer.max_concurrent_transfers",
)
@click.option("--no-progress", is_flag=True, help="Disable the live progress display")
@pass_context
@requires_config
@handle_errors
def run(
    ctx: MigrationContext,
    source_profile: str,
    source_bucket: str,
    source_prefix: str,
    target_profile: str,
    target_bucket: str,
    target_prefix: str,
    job_id: uuid.UUID | None,
    best_effort: bool,
    max_concurrent: int | None,
    no_progress: bool,
) -> None:
    """Copy every object under a prefix from one bucket to another.

    Objects already recorded in the job's checkpoint are skipped, so
    re-running with the same --job-id resumes a failed or interrupted job.

    Examples:

        # New job
        bucket-bridge -c config.yaml migrate run \\
            --source-profile aws --source-bucket photos --source-prefix 2024/ \\
            --target-profile azure --target-bucket archive

        # Resume it
        bucket-bridge -c config.yaml migrate run ... --job-id 6f1c...
    """
    config = _apply_overrides(ctx.config, best_effort, max_concurrent)
    _check_profiles(config, source_profile, target_profile)

    job_fields = dict(
        source_profile_name=source_profile,
        source_bucket=source_bucket,
        source_prefix=source_prefix,
        target_profile_name=target_profile,
        target_bucket=target_bucket,
        target_prefix=target_prefix,
    )
    if job_id is not None:
        job_fields["id"] = str(job_id)
    job = MigrationJob(**job_fields)

    echo_info(f"Job {job.id}: {source_profile}/{source_bucket} -> {target_profile}/{target_bucket}")

    runner = MigrationRunner(config)
    display = MigrationProgressDisplay(
        enabled=not (no_progress or config.logging.disable_progress),
        title=f"Bucket Migration {job.id[:8]}",
    )

    started = time.monotonic()
    status = asyncio.run(_run_with_display(runner, job, display))
    elapsed = time.monotonic() - started

    click.echo()
    print_table(
        "Migration Summary",
        ["Metric", "Value"],
        [
            ["Job ID", job.id],
            ["Status", status.status_message],
            ["Objects", f"{status.completed_objects}/{status.total_objects}"],
            ["Skipped (checkpointed)", runner.skipped_objects],
            ["Bytes Copied", format_bytes(status.bytes_copied)],
            ["Throughput", f"{format_bytes(status.throughput_bytes_per_sec)}/s"],
            ["Requests", status.request_count],
            ["Duration", format_duration(elapsed)],
        ],
    )

    if status.failed:
        for message in status.error_messages:
            echo_error(message)
        echo_warning(f"Completed objects stay checkpointed. Resume with --job-id {job.id}")
        raise click.exceptions.Exit(1)

    echo_success(status.status_message)
