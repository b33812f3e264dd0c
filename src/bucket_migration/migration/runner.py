"""
Migration orchestration.

This module provides the MigrationRunner class which lists the source once,
skips checkpointed keys, copies the remaining objects with bounded
concurrency through the StreamingCopyEngine, and publishes live progress.
"""

import asyncio
import contextlib
import time
from collections import deque
from datetime import UTC, datetime
from pathlib import Path

import httpx

from bucket_migration.client.backends import backend_for
from bucket_migration.client.base_client import StorageHTTPClient
from bucket_migration.client.endpoints import parse_endpoint
from bucket_migration.client.exceptions import MigrationError, ResolutionError
from bucket_migration.config import ConnectionProfile, ErrorPolicy, MigrationConfig
from bucket_migration.migration.checkpoint import CheckpointStore
from bucket_migration.migration.models import (
    EndpointContext,
    MigrationJob,
    MigrationStatus,
    ObjectDescriptor,
    ProgressSample,
)
from bucket_migration.migration.streamer import StreamingCopyEngine
from bucket_migration.migration.throttle import BandwidthThrottle
from bucket_migration.utils.logging import get_logger, log_error, log_migration_progress
from bucket_migration.utils.retry import RetryPolicy

logger = get_logger(__name__)

STATUS_IDLE = "Idle"
STATUS_LISTING = "Listing source objects..."
STATUS_MISSING_PROFILES = "Missing source/target profiles"
STATUS_COMPLETE = "Migration complete"
STATUS_FAILED = "Migration failed"


def normalize_prefix(prefix: str) -> str:
    """Trim whitespace and make a non-empty prefix end with ``/``."""
    trimmed = prefix.strip()
    if not trimmed:
        return ""
    return trimmed if trimmed.endswith("/") else trimmed + "/"


def target_key_for(source_key: str, source_prefix: str, target_prefix: str) -> str:
    """Map a source key onto the target namespace."""
    relative = source_key
    if source_prefix and source_key.startswith(source_prefix):
        relative = source_key[len(source_prefix) :]
    return target_prefix + relative


def _flatten(group: BaseExceptionGroup) -> list[BaseException]:
    leaves: list[BaseException] = []
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            leaves.extend(_flatten(exc))
        else:
            leaves.append(exc)
    return leaves


class MigrationRunner:
    """
    Runs one migration job at a time and publishes its progress.

    The published attributes (``status_message``, ``total_objects``,
    ``completed_objects``, ``bytes_copied``, ``throughput_bytes_per_sec``,
    ``request_count``, ``error_messages`` and ``samples``) are only mutated
    from tasks on the runner's event loop, so readers on the same loop see
    consistent values. ``snapshot()`` returns them as one immutable value.

    Usage:
        runner = MigrationRunner(config)
        task = runner.start(job, config.profiles)
        ...
        status = await task
    """

    def __init__(
        self,
        config: MigrationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        buffer_bytes: int | None = None,
    ):
        """
        Initialize the runner.

        Args:
            config: Migration configuration (defaults to environment settings)
            transport: Optional HTTP transport shared by all clients (used by tests)
            buffer_bytes: Chunk size override in bytes, bypassing the
                configured minimum
        """
        self.config = config or MigrationConfig()
        self.transport = transport
        self.buffer_bytes = buffer_bytes or self.config.transfer.buffer_bytes
        self.retry_policy = RetryPolicy.from_config(self.config.retry)

        self.is_running = False
        self.status_message = STATUS_IDLE
        self.total_objects = 0
        self.completed_objects = 0
        self.skipped_objects = 0
        self.bytes_copied = 0
        self.throughput_bytes_per_sec = 0.0
        self.request_count = 0
        self.error_messages: list[str] = []
        self.samples: deque[ProgressSample] = deque(maxlen=self.config.transfer.max_samples)

        self._started_at: float | None = None
        self._task: asyncio.Task | None = None

    @property
    def state_dir(self) -> Path:
        return self.config.state.path

    def snapshot(self) -> MigrationStatus:
        return MigrationStatus(
            is_running=self.is_running,
            status_message=self.status_message,
            total_objects=self.total_objects,
            completed_objects=self.completed_objects,
            bytes_copied=self.bytes_copied,
            throughput_bytes_per_sec=self.throughput_bytes_per_sec,
            request_count=self.request_count,
            error_messages=tuple(self.error_messages),
            samples=tuple(self.samples),
        )

    def start(
        self, job: MigrationJob, profiles: list[ConnectionProfile] | None = None
    ) -> asyncio.Task | None:
        """Schedule a job on the running event loop.

        Args:
            job: Job to run
            profiles: Connection profiles to resolve names against
                (defaults to the configured profiles)

        Returns:
            The task running the job, or None if a job is already running
        """
        if self.is_running:
            logger.warning("migration_already_running", job_id=job.id)
            return None

        self._begin(job)
        self._task = asyncio.get_running_loop().create_task(
            self._execute(job, profiles), name=f"migration-{job.id}"
        )
        # A task cancelled before its first step never reaches _execute's finally
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self.is_running = False

    async def run(
        self, job: MigrationJob, profiles: list[ConnectionProfile] | None = None
    ) -> MigrationStatus:
        """Run a job to completion in the calling task.

        Returns:
            Final status. If a job is already running, its current status is
            returned and nothing else happens.
        """
        if self.is_running:
            logger.warning("migration_already_running", job_id=job.id)
            return self.snapshot()

        self._begin(job)
        return await self._execute(job, profiles)

    def _begin(self, job: MigrationJob) -> None:
        self.is_running = True
        self.status_message = STATUS_LISTING
        self.total_objects = 0
        self.completed_objects = 0
        self.skipped_objects = 0
        self.bytes_copied = 0
        self.throughput_bytes_per_sec = 0.0
        self.request_count = 0
        self.error_messages = []
        self.samples.clear()
        self._started_at = time.monotonic()

        logger.info(
            "migration_started",
            job_id=job.id,
            source_profile=job.source_profile_name,
            source_bucket=job.source_bucket,
            target_profile=job.target_profile_name,
            target_bucket=job.target_bucket,
        )

    def _resolve_contexts(
        self, job: MigrationJob, profiles: list[ConnectionProfile]
    ) -> tuple[EndpointContext, EndpointContext] | None:
        by_name = {p.name: p for p in profiles}
        source_profile = by_name.get(job.source_profile_name)
        target_profile = by_name.get(job.target_profile_name)
        if source_profile is None or target_profile is None:
            logger.warning(
                "profile_not_found",
                source_found=source_profile is not None,
                target_found=target_profile is not None,
            )
            return None

        try:
            source_endpoint = parse_endpoint(source_profile.endpoint)
            target_endpoint = parse_endpoint(target_profile.endpoint)
        except ResolutionError as e:
            logger.warning("endpoint_resolution_failed", error=str(e))
            return None

        return (
            EndpointContext(
                endpoint=source_endpoint,
                bucket=job.source_bucket,
                region=source_profile.region,
                access_key=source_profile.access_key,
                secret_key=source_profile.secret_key,
                allow_insecure=source_profile.allow_insecure,
            ),
            EndpointContext(
                endpoint=target_endpoint,
                bucket=job.target_bucket,
                region=target_profile.region,
                access_key=target_profile.access_key,
                secret_key=target_profile.secret_key,
                allow_insecure=target_profile.allow_insecure,
            ),
        )

    def _client_for(self, context: EndpointContext) -> StorageHTTPClient:
        return StorageHTTPClient(
            context.endpoint,
            region=context.region,
            access_key=context.access_key,
            secret_key=context.secret_key,
            verify_ssl=not context.allow_insecure,
            timeout=self.config.transfer.request_timeout,
            max_connections=max(self.config.transfer.max_concurrent_transfers * 2, 4),
            transport=self.transport,
        )

    async def _execute(
        self, job: MigrationJob, profiles: list[ConnectionProfile] | None
    ) -> MigrationStatus:
        try:
            contexts = self._resolve_contexts(
                job, profiles if profiles is not None else self.config.profiles
            )
            if contexts is None:
                self.status_message = STATUS_MISSING_PROFILES
                self.error_messages.append(
                    f"Could not resolve profiles '{job.source_profile_name}' "
                    f"and '{job.target_profile_name}'"
                )
            else:
                source, target = contexts
                async with self._client_for(source) as source_client, self._client_for(
                    target
                ) as target_client:
                    await self._migrate(job, source, target, source_client, target_client)
        finally:
            self.is_running = False

        return self.snapshot()

    async def _migrate(
        self,
        job: MigrationJob,
        source: EndpointContext,
        target: EndpointContext,
        source_client: StorageHTTPClient,
        target_client: StorageHTTPClient,
    ) -> None:
        source_prefix = normalize_prefix(job.source_prefix)
        target_prefix = normalize_prefix(job.target_prefix)
        sampler: asyncio.Task | None = None

        try:
            listed = await backend_for(source.provider).list_all_objects(
                source_client, source, source_prefix
            )
            objects = [o for o in listed if o.is_copy_target]
            self.request_count += 1
            self.total_objects = len(objects)
            self.status_message = f"Copying {self.total_objects} objects..."
            sampler = asyncio.create_task(self._sample_progress())

            checkpoint = CheckpointStore(job.id, job.source_profile_name, self.state_dir)
            throttle_rate = self.config.transfer.bandwidth_bytes_per_second
            engine = StreamingCopyEngine(
                source,
                target,
                source_client,
                target_client,
                buffer_bytes=self.buffer_bytes,
                retry_policy=self.retry_policy,
                throttle=BandwidthThrottle(throttle_rate) if throttle_rate else None,
            )

            await self._copy_all(job, objects, engine, checkpoint, source_prefix, target_prefix)

        except ExceptionGroup as eg:
            for exc in _flatten(eg):
                logger.error("object_copy_failed", job_id=job.id, error=str(exc))
                self.error_messages.append(str(exc))
        except Exception as e:
            log_error(logger, e, "migration", job_id=job.id)
            self.error_messages.append(str(e))
        finally:
            if sampler is not None:
                sampler.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sampler

        if self.error_messages:
            self.status_message = STATUS_FAILED
            logger.error(
                "migration_failed",
                job_id=job.id,
                completed=self.completed_objects,
                total=self.total_objects,
                errors=len(self.error_messages),
            )
        else:
            self.status_message = STATUS_COMPLETE
            logger.info(
                "migration_completed",
                job_id=job.id,
                completed=self.completed_objects,
                skipped=self.skipped_objects,
                total=self.total_objects,
                bytes_copied=self.bytes_copied,
            )

    async def _copy_all(
        self,
        job: MigrationJob,
        objects: list[ObjectDescriptor],
        engine: StreamingCopyEngine,
        checkpoint: CheckpointStore,
        source_prefix: str,
        target_prefix: str,
    ) -> None:
        semaphore = asyncio.Semaphore(self.config.transfer.max_concurrent_transfers)
        policy = self.config.transfer.error_policy

        async with asyncio.TaskGroup() as tg:
            for obj in objects:
                if await checkpoint.is_completed(obj.key):
                    self.skipped_objects += 1
                    continue

                await semaphore.acquire()
                tg.create_task(
                    self._copy_one(
                        job,
                        obj,
                        target_key_for(obj.key, source_prefix, target_prefix),
                        engine,
                        checkpoint,
                        semaphore,
                        policy,
                    ),
                    name=f"copy-{obj.key}",
                )

    async def _copy_one(
        self,
        job: MigrationJob,
        obj: ObjectDescriptor,
        target_key: str,
        engine: StreamingCopyEngine,
        checkpoint: CheckpointStore,
        semaphore: asyncio.Semaphore,
        policy: ErrorPolicy,
    ) -> None:
        try:
            stats = await engine.copy_object(
                obj.key, target_key, obj.content_type or None, on_chunk=self._on_chunk
            )
            self.request_count += stats.request_count
            self.completed_objects += 1
            await checkpoint.mark_completed(obj.key)
            log_migration_progress(
                logger,
                job_id=job.id,
                completed=self.completed_objects,
                total=self.total_objects,
                bytes_copied=self.bytes_copied,
                key=obj.key,
            )
        except Exception as e:
            if policy is ErrorPolicy.STOP_ON_FIRST_ERROR:
                raise MigrationError(f"{obj.key}: {e}") from e
            log_error(logger, e, "copy_object", job_id=job.id, key=obj.key)
            self.error_messages.append(f"{obj.key}: {e}")
        finally:
            semaphore.release()

    def _on_chunk(self, delta: int) -> None:
        self.bytes_copied += delta
        self._update_throughput()

    def _update_throughput(self) -> None:
        if self._started_at is None:
            return
        elapsed = time.monotonic() - self._started_at
        if elapsed > 0:
            self.throughput_bytes_per_sec = self.bytes_copied / elapsed

    async def _sample_progress(self) -> None:
        interval = self.config.transfer.sample_interval
        while True:
            await asyncio.sleep(interval)
            self.samples.append(
                ProgressSample(
                    timestamp=datetime.now(UTC),
                    bytes_transferred=self.bytes_copied,
                    request_count=self.request_count,
                )
            )
