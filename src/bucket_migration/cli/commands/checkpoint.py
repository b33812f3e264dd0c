"""
Checkpoint management commands.

This module provides commands for inspecting and removing the per-job
checkpoint files that make migrations resumable.
"""

import uuid

import click

from bucket_migration.cli.context import MigrationContext
from bucket_migration.cli.decorators import confirm_action, handle_errors, pass_context
from bucket_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    format_timestamp,
    print_table,
)
from bucket_migration.migration.checkpoint import (
    CheckpointStore,
    checkpoint_path,
    list_checkpoint_files,
)
from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="checkpoint")
def checkpoint() -> None:
    """Checkpoint management commands.

    Inspect and clean up the records of fully copied objects.
    """
    pass


@checkpoint.command(name="list")
@click.option(
    "--limit",
    type=int,
    default=20,
    help="Maximum number of checkpoints to display",
)
@pass_context
@handle_errors
def list_checkpoints(ctx: MigrationContext, limit: int) -> None:
    """List checkpoint files, newest first.

    Examples:

        bucket-bridge checkpoint list
        bucket-bridge -c config.yaml checkpoint list --limit 5
    """
    state_dir = ctx.state_dir
    echo_info(f"Loading checkpoints from {state_dir}")

    checkpoints = list_checkpoint_files(state_dir)
    if not checkpoints:
        echo_warning("No checkpoints found")
        return

    shown = checkpoints[:limit]
    rows = [
        [info.job_id, info.profile, info.key_count, format_timestamp(info.modified_at)]
        for info in shown
    ]
    print_table(
        f"Migration Checkpoints (showing {len(shown)} of {len(checkpoints)})",
        ["Job ID", "Source Profile", "Completed Keys", "Last Updated (UTC)"],
        rows,
    )


@checkpoint.command(name="show")
@click.argument("job_id", type=click.UUID)
@click.option("--profile", required=True, help="Source profile the job copied from")
@click.option("--limit", type=int, default=50, help="Maximum number of keys to print")
@pass_context
@handle_errors
def show_checkpoint(ctx: MigrationContext, job_id: uuid.UUID, profile: str, limit: int) -> None:
    """Show the keys recorded for one job.

    Examples:

        bucket-bridge checkpoint show <job-id> --profile aws
    """
    path = checkpoint_path(ctx.state_dir, str(job_id), profile)
    if not path.exists():
        echo_error(f"No checkpoint for job {job_id} and profile '{profile}'")
        raise click.exceptions.Exit(1)

    store = CheckpointStore(str(job_id), profile, ctx.state_dir)
    keys = store.completed_keys()

    click.echo()
    click.echo("Checkpoint Details:")
    click.echo(f"  Job ID: {job_id}")
    click.echo(f"  Source Profile: {profile}")
    click.echo(f"  File: {store.path}")
    click.echo(f"  Completed Keys: {store.count}")

    if keys:
        click.echo()
        for key in keys[:limit]:
            click.echo(f"  {key}")
        if len(keys) > limit:
            click.echo(f"  ... and {len(keys) - limit} more")


@checkpoint.command(name="clear")
@click.argument("job_id", type=click.UUID)
@click.option("--profile", required=True, help="Source profile the job copied from")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@confirm_action("This deletes the checkpoint, so a resumed job copies everything again. Continue?")
@handle_errors
def clear_checkpoint(ctx: MigrationContext, job_id: uuid.UUID, profile: str, yes: bool) -> None:
    """Delete the checkpoint of one job.

    Examples:

        bucket-bridge checkpoint clear <job-id> --profile aws --yes
    """
    store = CheckpointStore(str(job_id), profile, ctx.state_dir)
    if store.clear():
        logger.info("checkpoint_clear_requested", job_id=str(job_id), profile=profile)
        echo_success(f"Deleted checkpoint {store.path.name}")
    else:
        echo_warning(f"No checkpoint for job {job_id} and profile '{profile}'")
