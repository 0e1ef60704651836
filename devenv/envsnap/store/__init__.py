"""
Object store abstraction for envsnap.

This module provides a pluggable object store interface supporting:
- S3 / S3-compatible services via aiobotocore (production)
- In-memory (for testing)

Invariants:
    - Backends translate their native errors into ObjectStoreError
    - Failed multipart uploads can always be aborted

How to change safely:
    - New backends must implement the ObjectStore protocol
"""

from .base import (
    ObjectEntry,
    ObjectListing,
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreError,
    UploadedPart,
)
from .memory import InMemoryObjectStore
from .s3 import S3ObjectStore

__all__ = [
    # Protocol and types
    "ObjectStore",
    "ObjectEntry",
    "ObjectListing",
    "UploadedPart",
    "ObjectStoreError",
    "ObjectNotFoundError",
    # Implementations
    "S3ObjectStore",
    "InMemoryObjectStore",
]
