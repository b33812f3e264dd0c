"""Bucket Bridge - Stream objects between S3-compatible and Azure Blob storage."""

import logging
import warnings

__version__ = "0.1.0"
__author__ = "Bucket Bridge Team"
__license__ = "Apache-2.0"

# Suppress verbose third-party library logging
# Every chunk upload is one request, so per-request transport logs drown out progress
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpcore.connection").setLevel(logging.WARNING)
logging.getLogger("httpcore.http11").setLevel(logging.WARNING)

warnings.filterwarnings("ignore", category=DeprecationWarning, module="httpx")
