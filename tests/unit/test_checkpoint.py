"""
Unit tests for CheckpointStore and checkpoint file helpers.

Tests cover:
- Idempotent marking and file format
- Reloading existing checkpoints
- Profile name sanitization and file naming
- Concurrent marking
- Listing and clearing checkpoint files
"""

import asyncio
import os
import threading
import uuid

import pytest

from bucket_migration.client.exceptions import CheckpointError
from bucket_migration.migration.checkpoint import (
    CheckpointStore,
    checkpoint_filename,
    list_checkpoint_files,
    parse_checkpoint_filename,
    sanitize_profile_name,
)


@pytest.fixture
def job_id() -> str:
    return str(uuid.uuid4())


class TestCheckpointStore:
    async def test_mark_twice_writes_one_line(self, tmp_path, job_id):
        store = CheckpointStore(job_id, "aws", tmp_path)

        await store.mark_completed("photos/a.jpg")
        assert await store.is_completed("photos/a.jpg")
        await store.mark_completed("photos/a.jpg")

        assert store.path.read_text(encoding="utf-8") == "photos/a.jpg\n"
        assert await store.is_completed("photos/a.jpg")
        assert store.count == 1

    async def test_unknown_key_not_completed(self, tmp_path, job_id):
        store = CheckpointStore(job_id, "aws", tmp_path)

        assert not await store.is_completed("missing")

    async def test_reopen_loads_existing_keys(self, tmp_path, job_id):
        first = CheckpointStore(job_id, "aws", tmp_path)
        await first.mark_completed("a")
        await first.mark_completed("dir/b c.txt")

        reopened = CheckpointStore(job_id, "aws", tmp_path)

        assert reopened.completed_keys() == ["a", "dir/b c.txt"]
        assert await reopened.is_completed("dir/b c.txt")

    async def test_blank_lines_ignored(self, tmp_path, job_id):
        path = tmp_path / checkpoint_filename(job_id, "aws")
        path.write_text("a\n\n\nb\n", encoding="utf-8")

        store = CheckpointStore(job_id, "aws", tmp_path)

        assert store.completed_keys() == ["a", "b"]

    async def test_key_with_newline_not_recorded(self, tmp_path, job_id):
        store = CheckpointStore(job_id, "aws", tmp_path)

        await store.mark_completed("bad\nkey")
        await store.mark_completed("good")

        assert store.path.read_text(encoding="utf-8") == "good\n"
        assert not await store.is_completed("bad\nkey")

    async def test_append_runs_off_the_event_loop_thread(self, tmp_path, job_id, monkeypatch):
        store = CheckpointStore(job_id, "aws", tmp_path)
        threads: list[threading.Thread] = []
        append = CheckpointStore._append_line

        def recording_append(self, key):
            threads.append(threading.current_thread())
            append(self, key)

        monkeypatch.setattr(CheckpointStore, "_append_line", recording_append)

        await store.mark_completed("a")

        assert threads and threads[0] is not threading.main_thread()
        assert store.path.read_text(encoding="utf-8") == "a\n"

    async def test_scoped_by_job_and_profile(self, tmp_path, job_id):
        await CheckpointStore(job_id, "aws", tmp_path).mark_completed("a")

        assert not await CheckpointStore(job_id, "other", tmp_path).is_completed("a")
        assert not await CheckpointStore(str(uuid.uuid4()), "aws", tmp_path).is_completed("a")

    async def test_concurrent_marks_are_serialized(self, tmp_path, job_id):
        store = CheckpointStore(job_id, "aws", tmp_path)
        keys = [f"k{i}" for i in range(50)]

        await asyncio.gather(*(store.mark_completed(k) for k in keys + keys))

        lines = store.path.read_text(encoding="utf-8").splitlines()
        assert sorted(lines) == sorted(keys)

    async def test_creates_state_dir(self, tmp_path, job_id):
        state_dir = tmp_path / "nested" / "state"

        store = CheckpointStore(job_id, "aws", state_dir)
        await store.mark_completed("a")

        assert store.path.parent == state_dir
        assert store.path.exists()

    async def test_unwritable_state_dir_raises(self, tmp_path, job_id):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(CheckpointError):
            CheckpointStore(job_id, "aws", blocker / "state")

    async def test_clear_removes_file(self, tmp_path, job_id):
        store = CheckpointStore(job_id, "aws", tmp_path)
        await store.mark_completed("a")

        assert store.clear() is True
        assert not store.path.exists()
        assert store.count == 0
        assert store.clear() is False


class TestFileNames:
    def test_sanitize_replaces_spaces(self):
        assert sanitize_profile_name("my aws profile") == "my_aws_profile"

    def test_filename(self, job_id):
        assert checkpoint_filename(job_id, "my profile") == f"checkpoint-my_profile-{job_id}.ndjson"

    def test_parse_round_trips_profiles_with_dashes(self, job_id):
        assert parse_checkpoint_filename(f"checkpoint-prod-eu-{job_id}.ndjson") == ("prod-eu", job_id)

    @pytest.mark.parametrize(
        "name",
        ["checkpoint-aws-notauuid.ndjson", "other.ndjson", "checkpoint-aws.json"],
    )
    def test_parse_rejects_foreign_files(self, name):
        assert parse_checkpoint_filename(name) is None


class TestListCheckpointFiles:
    def test_missing_dir_is_empty(self, tmp_path):
        assert list_checkpoint_files(tmp_path / "nope") == []

    async def test_lists_newest_first(self, tmp_path):
        old_id, new_id = str(uuid.uuid4()), str(uuid.uuid4())
        old = CheckpointStore(old_id, "aws", tmp_path)
        await old.mark_completed("a")
        new = CheckpointStore(new_id, "azure", tmp_path)
        await new.mark_completed("a")
        await new.mark_completed("b")
        (tmp_path / "notes.txt").write_text("ignored")

        os.utime(old.path, (1_000_000, 1_000_000))
        os.utime(new.path, (2_000_000, 2_000_000))

        infos = list_checkpoint_files(tmp_path)

        assert [(i.job_id, i.profile, i.key_count) for i in infos] == [
            (new_id, "azure", 2),
            (old_id, "aws", 1),
        ]
