"""
Entry point for the ``bucket-bridge`` command.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from bucket_migration import __version__
from bucket_migration.cli.commands import checkpoint as checkpoint_commands
from bucket_migration.cli.commands import config as config_commands
from bucket_migration.cli.commands import migrate as migrate_commands
from bucket_migration.cli.context import MigrationContext
from bucket_migration.utils.logging import configure_logging, get_logger

# Secrets referenced as ${VAR} in the YAML may live in a .env file
load_dotenv()

logger = get_logger(__name__)

DEFAULT_LOG_FILE = "logs/bucket-bridge.log"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.version_option(version=__version__, prog_name="bucket-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="BUCKET_BRIDGE_CONFIG",
    help="YAML file with connection profiles and transfer settings",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    envvar="BUCKET_BRIDGE_LOG_LEVEL",
    help="Console log level [default: logging.level from the config, else WARNING]",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="BUCKET_BRIDGE_LOG_FILE",
    help=f"Log file [default: logging.file from the config, else {DEFAULT_LOG_FILE}]",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Bucket Bridge - Copy buckets between S3 and Azure Blob Storage.

    Objects are streamed chunk by chunk from the source into a multipart
    (S3) or block (Azure) upload on the target, so nothing is staged on
    local disk. Every finished object is checkpointed, which makes jobs
    resumable.

    Examples:

        # Validate configuration
        bucket-bridge -c config.yaml config validate

        # Copy a prefix from S3 to Azure
        bucket-bridge -c config.yaml migrate run \\
            --source-profile aws --source-bucket photos --source-prefix 2024/ \\
            --target-profile azure --target-bucket archive

        # List checkpoints of earlier jobs
        bucket-bridge checkpoint list
    """
    # Until a config is loaded, log with command-line values or defaults
    bootstrap_file = log_file or Path(DEFAULT_LOG_FILE)
    bootstrap_file.parent.mkdir(parents=True, exist_ok=True)
    configure_logging(level=log_level or "WARNING", log_file=str(bootstrap_file))

    ctx.obj = MigrationContext(config_path=config, log_level=log_level, log_file=log_file)
    logger.debug("cli_started", command=ctx.invoked_subcommand, config=str(config) if config else None)


cli.add_command(checkpoint_commands.checkpoint)
cli.add_command(config_commands.config)
cli.add_command(migrate_commands.migrate)


def main() -> int:
    """Run the CLI and return its exit code."""
    try:
        result = cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1
    return result if isinstance(result, int) else 0


if __name__ == "__main__":
    sys.exit(main())
