"""
Base protocol and types for the object store abstraction.

This module defines the ObjectStore protocol that all backends must
implement, along with listing/multipart types and errors.

Invariants:
    - Keys are opaque strings; listings preserve the backend's key order
    - put_object is atomic: the object is either fully visible or absent
    - Multipart parts are numbered from 1 and completed in ascending order

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable


class ObjectStoreError(Exception):
    """Base exception for object store operations."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class ObjectNotFoundError(ObjectStoreError):
    """Requested object does not exist."""
    pass


@dataclass(frozen=True)
class ObjectEntry:
    """One object in a listing.

    Attributes:
        key: Object key
        size: Size in bytes
        last_modified: Last modification time
    """
    key: str
    size: int
    last_modified: datetime


@dataclass
class ObjectListing:
    """Result of a list call."""
    entries: list[ObjectEntry] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class UploadedPart:
    """Receipt for one multipart part."""
    etag: str
    part_number: int

    def to_dict(self) -> dict[str, object]:
        return {"ETag": self.etag, "PartNumber": self.part_number}


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for object store backends.

    Example:
        >>> store = S3ObjectStore(s3_config)
        >>> async with store:
        ...     await store.put_object("bucket", "a/b.json", b"{}", "application/json")
    """

    @abstractmethod
    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        max_keys: int | None = None,
    ) -> ObjectListing:
        """List objects under a prefix.

        Args:
            bucket: Bucket name
            prefix: Key prefix
            max_keys: Stop after this many entries (None = all)

        Raises:
            ObjectStoreError: If listing fails
        """
        ...

    @abstractmethod
    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store an object in one atomic request."""
        ...

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> bytes:
        """Fetch an object's body.

        Raises:
            ObjectNotFoundError: If the key does not exist
            ObjectStoreError: For other failures
        """
        ...

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object."""
        ...

    @abstractmethod
    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Start a multipart session and return its upload id."""
        ...

    @abstractmethod
    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadedPart:
        """Upload one part of a multipart session."""
        ...

    @abstractmethod
    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        """Assemble the ordered parts into the final object."""
        ...

    @abstractmethod
    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Discard a multipart session and any uploaded parts."""
        ...
