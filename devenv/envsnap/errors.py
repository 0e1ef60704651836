"""
Error types for envsnap.

This module defines the exceptions raised by snapshot operations:
- SnapshotError: Base exception
- SnapshotNotFoundError: No metadata document matches the snapshot id
- TransferError: An object store put/get/multipart step failed
- RestoreConflictError: Restore target already holds a repository
- ChecksumMismatchError: Downloaded archive does not match its metadata
- EmptySnapshotError: No repository ended up in the archive

Collaborator errors (ObjectStoreError, GitClientError) live next to their
collaborators and are translated here where they cross the core boundary.

Invariants:
    - All errors inherit from SnapshotError
    - Errors include context for debugging
    - Per-repository inspection failures are never raised as SnapshotError
"""

from __future__ import annotations

from typing import Any


class SnapshotError(Exception):
    """Base exception for all envsnap errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SNAPSHOT_ERROR"
        self.details = details or {}


class SnapshotNotFoundError(SnapshotError):
    """No metadata document exists for the requested snapshot id."""

    def __init__(self, snapshot_id: str, bucket: str | None = None) -> None:
        super().__init__(
            f"Snapshot not found: {snapshot_id}",
            code="NOT_FOUND",
            details={"id": snapshot_id, "bucket": bucket},
        )
        self.snapshot_id = snapshot_id


class TransferError(SnapshotError):
    """Moving bytes to or from the object store failed.

    Raised when:
    - A single put or get fails
    - Initiating, uploading a part of, or completing a multipart upload fails
      (the multipart session has already been aborted when this is raised)
    """

    def __init__(
        self,
        message: str,
        key: str | None = None,
        upload_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSFER_FAILED",
            details={"key": key, "upload_id": upload_id},
        )
        self.key = key
        self.upload_id = upload_id


class RestoreConflictError(SnapshotError):
    """Restore target already contains a repository directory."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Target path already exists: {path}. Use overwrite=True to replace.",
            code="CONFLICT",
            details={"path": path},
        )
        self.path = path


class ChecksumMismatchError(SnapshotError):
    """Downloaded archive bytes do not hash to the recorded checksum."""

    def __init__(self, key: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for {key}: expected {expected}, got {actual}",
            code="CHECKSUM_MISMATCH",
            details={"key": key, "expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class EmptySnapshotError(SnapshotError):
    """None of the requested paths contributed a repository to the archive."""

    def __init__(self, paths: list[str]) -> None:
        super().__init__(
            "No git repositories found in the requested paths",
            code="EMPTY_SNAPSHOT",
            details={"paths": paths},
        )


class InvalidMetadataError(SnapshotError, ValueError):
    """Metadata document is malformed or not finalized.

    A document without a checksum belongs to a snapshot still under
    construction and is never restorable.
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message, code="INVALID_METADATA", details={"key": key})
        self.key = key
