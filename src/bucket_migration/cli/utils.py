"""
Output helpers shared by the CLI commands.

Status lines go through click so CliRunner captures them; tables go through
a rich console.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

import click
from rich.console import Console
from rich.filesize import decimal
from rich.table import Table

console = Console()


def _echo(symbol: str, message: str, color: str, err: bool = False) -> None:
    click.secho(f"{symbol} {message}", fg=color, err=err)


def echo_success(message: str) -> None:
    _echo("✓", message, "green")


def echo_error(message: str) -> None:
    """Print an error line to stderr."""
    _echo("✗", message, "red", err=True)


def echo_warning(message: str) -> None:
    _echo("⚠", message, "yellow")


def echo_info(message: str) -> None:
    _echo("ℹ", message, "blue")


def format_duration(seconds: float) -> str:
    """Render an elapsed time, e.g. ``"42.0s"``, ``"3m 05s"`` or ``"1h 02m 09s"``."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


def format_timestamp(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_bytes(size: int | float) -> str:
    """Decimal units, matching how object stores report sizes (e.g. "12.6 MB")."""
    return decimal(int(size))


def print_table(
    title: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    show_header: bool = True,
) -> None:
    """
    Print rows as a rich table.

    Args:
        title: Table title
        columns: Column headers; the first column is styled as a label
        rows: Row values, stringified for display
        show_header: Whether to show the header row
    """
    table = Table(title=title, show_header=show_header, title_justify="left")
    for index, column in enumerate(columns):
        table.add_column(column, style="bold" if index == 0 else None)

    for row in rows:
        table.add_row(*(str(cell) for cell in row))

    console.print(table)
