"""
Shared pytest fixtures for the bucket-bridge tests.

This module provides:
- store: a fresh FakeObjectStore (see tests.fixtures.object_store)
- Endpoint context and profile fixtures for both providers
- A zero-delay retry policy so failure tests never sleep
- make_config: a MigrationConfig factory rooted in tmp_path
"""

from collections.abc import Callable

import pytest

from bucket_migration.client.endpoints import parse_endpoint
from bucket_migration.config import (
    ConnectionProfile,
    MigrationConfig,
    RetryConfig,
    StateConfig,
    TransferConfig,
)
from bucket_migration.migration.models import EndpointContext
from bucket_migration.utils.retry import RetryPolicy
from tests.fixtures import AZURE_ENDPOINT, S3_ENDPOINT, FakeObjectStore


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Three attempts with no backoff."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


@pytest.fixture
def s3_context() -> Callable[[str], EndpointContext]:
    def make(bucket: str) -> EndpointContext:
        return EndpointContext(
            endpoint=parse_endpoint(S3_ENDPOINT),
            bucket=bucket,
            region="us-east-1",
            access_key="AKIAEXAMPLE",
            secret_key="secret",
        )

    return make


@pytest.fixture
def azure_context() -> Callable[[str], EndpointContext]:
    def make(container: str) -> EndpointContext:
        return EndpointContext(endpoint=parse_endpoint(AZURE_ENDPOINT), bucket=container)

    return make


@pytest.fixture
def profiles() -> list[ConnectionProfile]:
    return [
        ConnectionProfile(
            name="aws",
            endpoint=S3_ENDPOINT,
            region="us-east-1",
            access_key="AKIAEXAMPLE",
            secret_key="secret",
        ),
        ConnectionProfile(name="azure", endpoint=AZURE_ENDPOINT),
    ]


@pytest.fixture
def make_config(tmp_path, profiles) -> Callable[..., MigrationConfig]:
    """Build a MigrationConfig with a temp state dir and no retry backoff."""

    def make(**transfer: object) -> MigrationConfig:
        return MigrationConfig(
            profiles=profiles,
            transfer=TransferConfig(sample_interval=0.01, **transfer),
            retry=RetryConfig(max_attempts=3, base_delay=0.0, jitter=0.0),
            state=StateConfig(state_dir=str(tmp_path / "state")),
        )

    return make
