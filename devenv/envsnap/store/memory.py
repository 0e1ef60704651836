"""
In-memory object store implementation for testing.

This module provides a simple in-memory object store for:
- Unit tests
- Integration tests
- Local development without S3/MinIO

Invariants:
    - All data is lost on process exit
    - Listings are in lexicographic key order, like S3
    - Multipart objects become visible only on completion

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with ObjectStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from .base import ObjectEntry, ObjectListing, ObjectNotFoundError, ObjectStoreError, UploadedPart

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """One stored object."""
    body: bytes
    content_type: str
    metadata: dict[str, str] = field(default_factory=dict)
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class MultipartSession:
    """An open multipart upload."""
    bucket: str
    key: str
    content_type: str
    metadata: dict[str, str]
    parts: dict[int, bytes] = field(default_factory=dict)


class InMemoryObjectStore:
    """In-memory implementation of ObjectStore for testing.

    Failure injection:
        fail_parts: part numbers whose upload raises
        fail_complete: completion raises
        fail_puts: keys whose put raises
        fail_gets: keys whose get raises

    Every call is recorded in ``calls`` as (operation, key) tuples.

    Example:
        >>> store = InMemoryObjectStore()
        >>> await store.put_object("b", "k", b"v", "text/plain")
        >>> await store.get_object("b", "k")
        b'v'
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, StoredObject]] = {}
        self._sessions: dict[str, MultipartSession] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_parts: set[int] = set()
        self.fail_complete = False
        self.fail_puts: set[str] = set()
        self.fail_gets: set[str] = set()

    def _bucket(self, bucket: str) -> dict[str, StoredObject]:
        return self._buckets.setdefault(bucket, {})

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        max_keys: int | None = None,
    ) -> ObjectListing:
        self.calls.append(("list", prefix))
        listing = ObjectListing()
        for key in sorted(self._bucket(bucket)):
            if not key.startswith(prefix):
                continue
            obj = self._bucket(bucket)[key]
            listing.entries.append(
                ObjectEntry(key=key, size=len(obj.body), last_modified=obj.last_modified)
            )
            if max_keys is not None and listing.count >= max_keys:
                break
        return listing

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        self.calls.append(("put", key))
        if key in self.fail_puts:
            raise ObjectStoreError(f"Injected put failure: {key}", key=key)
        self._bucket(bucket)[key] = StoredObject(
            body=bytes(body),
            content_type=content_type,
            metadata=dict(metadata or {}),
        )

    async def get_object(self, bucket: str, key: str) -> bytes:
        self.calls.append(("get", key))
        if key in self.fail_gets:
            raise ObjectStoreError(f"Injected get failure: {key}", key=key)
        try:
            return self._bucket(bucket)[key].body
        except KeyError:
            raise ObjectNotFoundError(f"Object not found: {key}", key=key)

    async def delete_object(self, bucket: str, key: str) -> None:
        self.calls.append(("delete", key))
        self._bucket(bucket).pop(key, None)

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        self.calls.append(("multipart_init", key))
        upload_id = uuid.uuid4().hex
        self._sessions[upload_id] = MultipartSession(
            bucket=bucket,
            key=key,
            content_type=content_type,
            metadata=dict(metadata or {}),
        )
        return upload_id

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadedPart:
        self.calls.append(("multipart_part", key))
        if part_number in self.fail_parts:
            raise ObjectStoreError(f"Injected failure on part {part_number}", key=key)
        session = self._session(upload_id)
        session.parts[part_number] = bytes(body)
        etag = f'"{hashlib.md5(body).hexdigest()}"'
        return UploadedPart(etag=etag, part_number=part_number)

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        self.calls.append(("multipart_complete", key))
        if self.fail_complete:
            raise ObjectStoreError("Injected completion failure", key=key)
        session = self._session(upload_id)
        numbers = [p.part_number for p in parts]
        if numbers != list(range(1, len(numbers) + 1)) or set(numbers) != set(session.parts):
            raise ObjectStoreError(f"Invalid part list: {numbers}", key=key)
        body = b"".join(session.parts[n] for n in numbers)
        self._bucket(bucket)[key] = StoredObject(
            body=body,
            content_type=session.content_type,
            metadata=session.metadata,
        )
        del self._sessions[upload_id]

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        self.calls.append(("multipart_abort", key))
        self._sessions.pop(upload_id, None)

    def _session(self, upload_id: str) -> MultipartSession:
        try:
            return self._sessions[upload_id]
        except KeyError:
            raise ObjectStoreError(f"Unknown upload id: {upload_id}")

    # Testing helpers

    def keys(self, bucket: str) -> list[str]:
        """All keys in a bucket, sorted."""
        return sorted(self._bucket(bucket))

    def get_stored(self, bucket: str, key: str) -> StoredObject:
        """Raw stored object (content type and metadata included)."""
        return self._bucket(bucket)[key]

    @property
    def open_sessions(self) -> int:
        """Number of multipart sessions neither completed nor aborted."""
        return len(self._sessions)

    def operation_count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def stats(self) -> dict[str, Any]:
        return {
            "buckets": len(self._buckets),
            "objects": sum(len(b) for b in self._buckets.values()),
            "open_sessions": self.open_sessions,
        }
