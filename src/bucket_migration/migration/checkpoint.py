"""
Checkpoint storage for resumable migrations.

This module provides the CheckpointStore class, a durable record of the
object keys a job has fully copied. Each job and source profile pair owns one
append-only file holding one raw key per line. The file is never rewritten,
so a crash can lose at most the append in flight.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from bucket_migration.client.exceptions import CheckpointError
from bucket_migration.utils.logging import get_logger

logger = get_logger(__name__)

_FILENAME_RE = re.compile(
    r"^checkpoint-(?P<profile>.+)-"
    r"(?P<job_id>[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
    r"\.ndjson$"
)


def sanitize_profile_name(profile_name: str) -> str:
    """Make a profile name safe for use in a file name."""
    return profile_name.replace(" ", "_")


def checkpoint_filename(job_id: str, profile_name: str) -> str:
    return f"checkpoint-{sanitize_profile_name(profile_name)}-{job_id}.ndjson"


def checkpoint_path(state_dir: str | Path, job_id: str, profile_name: str) -> Path:
    """Location of the checkpoint file for a job and source profile."""
    return Path(state_dir).expanduser() / checkpoint_filename(job_id, profile_name)


@dataclass(frozen=True)
class CheckpointFileInfo:
    """A checkpoint file found in the state directory."""

    path: Path
    profile: str
    job_id: str
    key_count: int
    modified_at: datetime


def parse_checkpoint_filename(name: str) -> tuple[str, str] | None:
    """Split a checkpoint file name into ``(sanitized_profile, job_id)``.

    Returns None for files that do not follow the naming scheme.
    """
    match = _FILENAME_RE.match(name)
    if not match:
        return None
    return match.group("profile"), match.group("job_id")


def _read_keys(path: Path) -> set[str]:
    text = path.read_text(encoding="utf-8")
    return {line for line in text.split("\n") if line}


def list_checkpoint_files(state_dir: str | Path) -> list[CheckpointFileInfo]:
    """List checkpoint files in a state directory, newest first.

    Raises:
        CheckpointError: If a checkpoint file cannot be read
    """
    directory = Path(state_dir).expanduser()
    if not directory.is_dir():
        return []

    found = []
    for path in directory.glob("checkpoint-*.ndjson"):
        parsed = parse_checkpoint_filename(path.name)
        if parsed is None:
            continue
        try:
            stat = path.stat()
            key_count = len(_read_keys(path))
        except OSError as e:
            raise CheckpointError(f"Failed to read checkpoint file {path}: {e}") from e
        found.append(
            CheckpointFileInfo(
                path=path,
                profile=parsed[0],
                job_id=parsed[1],
                key_count=key_count,
                modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
            )
        )

    return sorted(found, key=lambda info: info.modified_at, reverse=True)


class CheckpointStore:
    """
    Set of fully copied keys for one ``(job_id, profile_name)`` pair.

    Existing keys are loaded when the store is created. Mutation goes
    through an asyncio.Lock, so concurrent copy tasks can mark keys without
    coordinating among themselves.

    Usage:
        store = CheckpointStore(job.id, job.source_profile_name, state_dir)

        if not await store.is_completed(key):
            ...  # copy the object
            await store.mark_completed(key)
    """

    def __init__(self, job_id: str, profile_name: str, state_dir: str | Path):
        """
        Open (or create) the checkpoint for a job.

        Args:
            job_id: Migration job identifier
            profile_name: Source connection profile name
            state_dir: Directory holding checkpoint files (created if missing)

        Raises:
            CheckpointError: If the state directory or file cannot be accessed
        """
        self.job_id = job_id
        self.profile_name = profile_name
        self.path = checkpoint_path(state_dir, job_id, profile_name)
        self._lock = asyncio.Lock()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._completed = _read_keys(self.path) if self.path.exists() else set()
        except OSError as e:
            raise CheckpointError(f"Failed to open checkpoint {self.path}: {e}") from e

        logger.debug(
            "checkpoint_opened",
            job_id=job_id,
            profile=profile_name,
            path=str(self.path),
            completed=len(self._completed),
        )

    @property
    def count(self) -> int:
        return len(self._completed)

    def completed_keys(self) -> list[str]:
        """Sorted copy of the completed keys."""
        return sorted(self._completed)

    async def is_completed(self, key: str) -> bool:
        async with self._lock:
            return key in self._completed

    async def mark_completed(self, key: str) -> None:
        """Record a key as fully copied. Marking a key twice is a no-op.

        Raises:
            CheckpointError: If the key cannot be appended to the file
        """
        async with self._lock:
            if key in self._completed:
                return

            if "\n" in key:
                # One key per line; such a key would split into two on reload
                logger.warning("checkpoint_key_not_recorded", job_id=self.job_id, key=key)
                return

            try:
                await asyncio.to_thread(self._append_line, key)
            except OSError as e:
                raise CheckpointError(f"Failed to append to checkpoint {self.path}: {e}") from e

            self._completed.add(key)
            logger.debug("checkpoint_marked", job_id=self.job_id, key=key)

    def _append_line(self, key: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(key + "\n")
            f.flush()

    def clear(self) -> bool:
        """Delete the checkpoint file and forget every key.

        Returns:
            True if a file was removed
        """
        self._completed.clear()
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CheckpointError(f"Failed to delete checkpoint {self.path}: {e}") from e

        logger.info("checkpoint_cleared", job_id=self.job_id, profile=self.profile_name)
        return True
