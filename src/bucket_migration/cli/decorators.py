"""
Click decorators shared by the bucket-bridge commands.

``pass_context`` hands commands the MigrationContext instead of the click
context, ``requires_config`` loads the YAML before the command body runs,
and ``handle_errors`` turns library exceptions into exit codes.
"""

import functools
from collections.abc import Callable

import click

from bucket_migration.cli.context import MigrationContext
from bucket_migration.client.exceptions import (
    ConfigurationError,
    HTTPStatusError,
    NetworkError,
    ResolutionError,
    StateError,
)
from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)


def pass_context(f: Callable) -> Callable:
    """Call ``f`` with the MigrationContext stored on ``click_ctx.obj``."""

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        return f(click_ctx.obj, *args, **kwargs)

    return wrapper


# (exception types, exit code, log event, heading, hint), first match wins
ERROR_EXIT_CODES: list[tuple[tuple[type[Exception], ...], int, str, str, str]] = [
    (
        (ConfigurationError,),
        2,
        "configuration_error",
        "Configuration Error",
        "Check the configuration file and the environment variables it references.",
    ),
    (
        (ResolutionError,),
        3,
        "resolution_error",
        "Resolution Error",
        "Check the profile names and their endpoint strings.",
    ),
    (
        (HTTPStatusError, NetworkError),
        4,
        "storage_error",
        "Storage Error",
        "The object store rejected or did not answer a request.",
    ),
    (
        (StateError,),
        5,
        "state_error",
        "State Error",
        "Check that the state directory is readable and writable.",
    ),
]


def handle_errors(f: Callable) -> Callable:
    """
    Map library errors raised by a command to exit codes.

    Exit codes:
        0: Success
        1: Unexpected error, or a migration that finished with failures
        2: Configuration error
        3: Profile or endpoint resolution error
        4: Object store HTTP or network error
        5: Checkpoint/state error
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (click.exceptions.Exit, click.ClickException):
            raise
        except Exception as e:
            for types, code, event, heading, hint in ERROR_EXIT_CODES:
                if isinstance(e, types):
                    logger.error(event, error=str(e))
                    click.echo(f"{heading}: {e}", err=True)
                    if isinstance(e, HTTPStatusError):
                        click.echo(f"Response status: {e.status_code}", err=True)
                    click.echo(hint, err=True)
                    raise click.exceptions.Exit(code) from e

            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo("See the log file for details.", err=True)
            raise click.exceptions.Exit(1) from e

    return wrapper


def requires_config(f: Callable) -> Callable:
    """Load the configuration before ``f`` runs; exit 2 when it is missing or invalid."""

    @functools.wraps(f)
    def wrapper(ctx: MigrationContext, *args, **kwargs):
        if ctx.config_path is None:
            click.echo(
                "Error: Configuration file required. Pass --config or set BUCKET_BRIDGE_CONFIG.",
                err=True,
            )
            raise click.exceptions.Exit(2)

        try:
            ctx.config
        except ConfigurationError as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        return f(ctx, *args, **kwargs)

    return wrapper


def confirm_action(message: str, abort_message: str = "Operation cancelled.") -> Callable:
    """
    Ask before running a destructive command unless ``--yes`` was given.

    Declining is not an error: the command exits 0 after printing
    ``abort_message``.
    """

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if not click.get_current_context().params.get("yes", False) and not click.confirm(
                message
            ):
                click.echo(abort_message)
                raise click.exceptions.Exit(0)
            return f(*args, **kwargs)

        return wrapper

    return decorator
