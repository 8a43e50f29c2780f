"""
OSS object storage integration.

Talks to the bucket through boto3 against the S3-compatible endpoint.
Includes an in-memory client for local development and tests.
"""

from .adapter import OssAdapter
from .buckets import BucketRegistry, create_adapter
from .callback import CallbackVerifier
from .client import MockStorageClient, create_storage_client

__all__ = [
    "BucketRegistry",
    "CallbackVerifier",
    "MockStorageClient",
    "OssAdapter",
    "create_adapter",
    "create_storage_client",
]
