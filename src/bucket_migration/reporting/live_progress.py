"""Live progress display using Rich library.

This module renders a running migration: object progress, bytes copied,
current throughput, and a sparkline built from the runner's progress samples.
The display polls ``MigrationRunner.snapshot()``; it never reaches into the
copy engine.
"""

import logging
from collections.abc import Sequence

from rich.console import Console, Group
from rich.filesize import decimal
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text

from bucket_migration.migration.models import MigrationStatus, ProgressSample

from .colors import MigrationColors, status_style

SPARK_CHARS = "▁▂▃▄▅▆▇█"


def throughput_sparkline(samples: Sequence[ProgressSample], width: int = 40) -> str:
    """Render per-interval throughput of the most recent samples.

    Args:
        samples: Progress samples, oldest first
        width: Maximum number of intervals to render

    Returns:
        One block character per interval, scaled to the busiest interval
    """
    recent = list(samples)[-(width + 1) :]
    if len(recent) < 2:
        return ""

    rates = []
    for prev, cur in zip(recent, recent[1:]):
        seconds = (cur.timestamp - prev.timestamp).total_seconds()
        delta = max(cur.bytes_transferred - prev.bytes_transferred, 0)
        rates.append(delta / seconds if seconds > 0 else 0.0)

    peak = max(rates)
    if peak <= 0:
        return SPARK_CHARS[0] * len(rates)

    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round(rate / peak * top)] for rate in rates)


class MigrationProgressDisplay:
    """Live progress display for one migration job.

    Example:
        >>> with MigrationProgressDisplay() as display:
        >>>     while not task.done():
        >>>         display.update(runner.snapshot(), skipped=runner.skipped_objects)
        >>>         await asyncio.sleep(0.5)
    """

    def __init__(self, enabled: bool = True, title: str = "Bucket Migration"):
        """Initialize progress display.

        Args:
            enabled: Whether to show live progress (set False for CI/CD)
            title: Display title for the progress panel
        """
        self.enabled = enabled
        self.title = title
        self._status: MigrationStatus | None = None
        self._skipped = 0
        self._original_log_handlers: list[logging.Handler] = []
        self._live_started = False

        if not self.enabled:
            return

        self.console = Console(force_terminal=True, stderr=True, width=120)

        self.progress = Progress(
            SpinnerColumn(style=MigrationColors.SPINNER),
            TextColumn("{task.description:<32}", style=MigrationColors.LABEL),
            BarColumn(bar_width=None, style=MigrationColors.PROGRESS),
            TaskProgressColumn(),
            TextColumn("{task.completed}/{task.total} objects", style=MigrationColors.OBJECT_COUNT),
            TimeElapsedColumn(),
            console=self.console,
        )
        self.task_id = self.progress.add_task("Listing source objects...", total=None)

        self.live = Live(
            get_renderable=self._render,
            console=self.console,
            refresh_per_second=4,
        )

    def _render(self) -> Panel:
        status = self._status
        rows: list = [self.progress]

        if status is not None:
            metrics = Text()
            metrics.append("Copied ", style=MigrationColors.LABEL)
            metrics.append(decimal(status.bytes_copied), style=MigrationColors.BYTES)
            metrics.append("   Rate ", style=MigrationColors.LABEL)
            metrics.append(f"{decimal(int(status.throughput_bytes_per_sec))}/s", style=MigrationColors.RATE)
            metrics.append("   Requests ", style=MigrationColors.LABEL)
            metrics.append(str(status.request_count), style=MigrationColors.OBJECT_COUNT)
            if self._skipped:
                metrics.append("   Skipped ", style=MigrationColors.LABEL)
                metrics.append(str(self._skipped), style=MigrationColors.SKIPPED)
            rows.append(metrics)

            spark = throughput_sparkline(status.samples)
            if spark:
                rows.append(Text(spark, style=MigrationColors.CHART))

            for message in status.error_messages[-3:]:
                rows.append(Text(message, style=MigrationColors.ERROR, overflow="ellipsis", no_wrap=True))

        return Panel(
            Group(*rows),
            title=self.title,
            title_align="left",
            border_style=status_style(status) if status is not None else MigrationColors.BORDER,
        )

    def update(self, status: MigrationStatus, skipped: int = 0) -> None:
        """Refresh the display from a runner snapshot.

        Args:
            status: Current runner status
            skipped: Objects skipped because they were already checkpointed
        """
        if not self.enabled:
            return

        self._status = status
        self._skipped = skipped
        self.progress.update(
            self.task_id,
            description=status.status_message,
            total=status.total_objects or None,
            completed=status.completed_objects + skipped,
        )

    def start(self) -> None:
        """Start the live display.

        Temporarily removes the Rich console log handler so log lines do not
        tear the live panel; file handlers keep receiving events.
        """
        if not self.enabled or self._live_started:
            return

        root_logger = logging.getLogger()
        self._original_log_handlers = root_logger.handlers[:]
        for handler in root_logger.handlers[:]:
            if "RichHandler" in handler.__class__.__name__:
                root_logger.removeHandler(handler)

        self.live.start()
        self._live_started = True

    def stop(self) -> None:
        """Stop the live display and restore console logging."""
        if not self.enabled:
            return

        if self._live_started:
            self.live.stop()
            self._live_started = False

        if self._original_log_handlers:
            root_logger = logging.getLogger()
            for handler in self._original_log_handlers:
                if handler not in root_logger.handlers:
                    root_logger.addHandler(handler)
            self._original_log_handlers = []

    def __enter__(self) -> "MigrationProgressDisplay":
        """Context manager entry - starts live display."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - stops live display."""
        self.stop()
        return False
