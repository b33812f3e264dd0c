"""Rich styles shared by the live display and the CLI summaries."""

from bucket_migration.migration.models import MigrationStatus


class MigrationColors:
    """Style names for transfer output.

    Reference: https://rich.readthedocs.io/en/stable/appendix/colors.html
    """

    SUCCESS = "green"
    ERROR = "red"

    SPINNER = "dark_slate_gray1"
    PROGRESS = "blue"
    CHART = "bright_blue"
    BORDER = "blue"
    LABEL = "bold"

    OBJECT_COUNT = "bright_cyan"
    BYTES = "light_steel_blue"
    RATE = "bright_blue"
    SKIPPED = "dark_orange"
    RUNNING = "yellow"


def status_style(status: MigrationStatus) -> str:
    """Style for a job's headline: running, failed or complete."""
    if status.is_running:
        return MigrationColors.RUNNING
    return MigrationColors.ERROR if status.failed else MigrationColors.SUCCESS
