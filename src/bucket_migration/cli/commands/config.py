"""
Configuration management commands.

This module provides commands for validating and displaying the migration
configuration.
"""

import click

from bucket_migration.cli.context import MigrationContext
from bucket_migration.cli.decorators import handle_errors, pass_context, requires_config
from bucket_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    format_bytes,
    print_table,
)
from bucket_migration.client.endpoints import parse_endpoint
from bucket_migration.client.exceptions import ResolutionError
from bucket_migration.config import MIN_BUFFER_SIZE_MB, MigrationConfig
from bucket_migration.utils.logging import get_logger, sanitize_payload

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and inspect migration configuration files.
    """
    pass


def _display_config_summary(config: MigrationConfig) -> None:
    """Display configuration summary."""
    transfer = config.transfer
    bandwidth = (
        f"{transfer.bandwidth_limit_mbps} MB/s" if transfer.bandwidth_limit_mbps else "unlimited"
    )
    rows = [
        ["Profiles", len(config.profiles)],
        ["Max Concurrent Transfers", transfer.max_concurrent_transfers],
        ["Chunk Size", format_bytes(transfer.buffer_bytes)],
        ["Bandwidth Limit", bandwidth],
        ["Error Policy", transfer.error_policy.value],
        ["Retry Attempts", config.retry.max_attempts],
        ["Retry Client Errors", config.retry.retry_client_errors],
        ["State Directory", str(config.state.path)],
    ]

    print_table(
        "Configuration Summary",
        ["Setting", "Value"],
        rows,
    )


def _validate_profiles(config: MigrationConfig) -> bool:
    """Resolve every profile endpoint. Returns False if any fails."""
    if not config.profiles:
        echo_warning("No profiles configured")
        return True

    ok = True
    rows = []
    for profile in config.profiles:
        try:
            endpoint = parse_endpoint(profile.endpoint)
        except ResolutionError as e:
            echo_error(f"Profile '{profile.name}': {e}")
            ok = False
            continue

        if bool(profile.access_key) != bool(profile.secret_key):
            echo_warning(
                f"Profile '{profile.name}' has only one of access_key/secret_key; "
                "requests will be sent unsigned"
            )
        rows.append(
            [
                profile.name,
                endpoint.provider.value,
                endpoint.base_url,
                endpoint.container or "-",
                "signed" if profile.access_key and profile.secret_key else "anonymous/SAS",
            ]
        )

    if rows:
        print_table("Profiles", ["Name", "Provider", "Base URL", "Container", "Auth"], rows)
    return ok


def _validate_settings(config: MigrationConfig) -> None:
    """Warn about settings that are valid but likely unintended."""
    if config.transfer.buffer_size_mb < MIN_BUFFER_SIZE_MB:
        echo_warning(
            f"buffer_size_mb={config.transfer.buffer_size_mb} is below the minimum; "
            f"{MIN_BUFFER_SIZE_MB} MB chunks will be used"
        )

    if not config.retry.retry_client_errors:
        echo_info("4xx responses other than 408/429 will fail without retrying")

    state_dir = config.state.path
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        echo_error(f"Cannot create state directory: {state_dir}")
        raise click.ClickException(f"Failed to create state directory: {e}") from e
    echo_success(f"State directory is usable: {state_dir}")


@config.command(name="validate")
@pass_context
@requires_config
@handle_errors
def validate(ctx: MigrationContext) -> None:
    """Validate migration configuration.

    Checks that the file parses, every profile endpoint resolves to S3 or
    Azure Blob, and the state directory can be created.

    Examples:

        bucket-bridge config validate --config config.yaml
    """
    echo_info(f"Validating configuration: {ctx.config_path}")
    config = ctx.config

    click.echo()
    _display_config_summary(config)

    click.echo()
    echo_info("Resolving profile endpoints...")
    if not _validate_profiles(config):
        raise click.ClickException("One or more profile endpoints could not be resolved")

    echo_info("Validating settings...")
    _validate_settings(config)

    click.echo()
    echo_success("Configuration is valid!")


@config.command(name="show")
@pass_context
@requires_config
@handle_errors
def show(ctx: MigrationContext) -> None:
    """Display current configuration with credentials masked.

    Examples:

        bucket-bridge config show --config config.yaml
    """
    config = ctx.config

    _display_config_summary(config)

    click.echo("\nProfiles:")
    for profile in config.profiles:
        masked = sanitize_payload(profile.model_dump())
        click.echo(f"  {masked['name']}:")
        click.echo(f"    Endpoint: {masked['endpoint']}")
        click.echo(f"    Region: {masked['region'] or '(default)'}")
        click.echo(f"    Access Key: {masked['access_key'] or '(none)'}")
        click.echo(f"    Secret Key: {masked['secret_key'] or '(none)'}")
        click.echo(f"    Allow Insecure TLS: {masked['allow_insecure']}")

    click.echo("\nRetry Configuration:")
    click.echo(f"  Max Attempts: {config.retry.max_attempts}")
    click.echo(f"  Base Delay: {config.retry.base_delay}s")
    click.echo(f"  Jitter: {config.retry.jitter}s")
    click.echo(f"  Max Backoff Exponent: {config.retry.max_backoff_exponent}")

    click.echo("\nLogging Configuration:")
    click.echo(f"  Console Level: {config.logging.level}")
    click.echo(f"  File: {config.logging.file or '(none)'}")
