"""Shared test fixtures for bucket-bridge."""

from tests.fixtures.object_store import (
    AZURE_ENDPOINT,
    AZURE_HOST,
    S3_ENDPOINT,
    S3_HOST,
    FailureRule,
    FakeObjectStore,
)

__all__ = [
    "AZURE_ENDPOINT",
    "AZURE_HOST",
    "S3_ENDPOINT",
    "S3_HOST",
    "FailureRule",
    "FakeObjectStore",
]
