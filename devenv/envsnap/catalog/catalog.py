"""
Snapshot catalog for envsnap.

The SnapshotCatalog owns the key layout of the snapshot namespace and reads
and writes metadata documents:

    <prefix>/<name>/<id>.tar.gz           archive
    <prefix>/<name>/<id>.metadata.json    metadata document

Lookup by id lists every object under ``<prefix>/`` and picks, in listing
order, the first metadata key whose file name is exactly
``<id>.metadata.json``; if there is none, the first metadata key that
contains the id anywhere.

Invariants:
    - Only finalized SnapshotMetadata is ever written
    - The archive key is derived from the metadata key by suffix replacement
    - Listing skips unreadable documents instead of failing

How to change safely:
    - Changing suffixes or the prefix orphans existing snapshots
"""

from __future__ import annotations

import logging

from ..errors import InvalidMetadataError, SnapshotNotFoundError, TransferError
from ..outcome import Degraded, attempt
from ..store.base import ObjectStore, ObjectStoreError
from .metadata import SnapshotListEntry, SnapshotListing, SnapshotMetadata

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"
METADATA_SUFFIX = ".metadata.json"
ARCHIVE_CONTENT_TYPE = "application/gzip"
METADATA_CONTENT_TYPE = "application/json"


def archive_key_for(metadata_key: str) -> str:
    """Archive key that belongs to a metadata key."""
    if not metadata_key.endswith(METADATA_SUFFIX):
        raise ValueError(f"Not a metadata key: {metadata_key}")
    return metadata_key[: -len(METADATA_SUFFIX)] + ARCHIVE_SUFFIX


class SnapshotCatalog:
    """Locates, reads, writes and lists snapshot metadata documents.

    Attributes:
        store: Object store backend
        prefix: Snapshot namespace prefix

    Example:
        >>> catalog = SnapshotCatalog(store)
        >>> key = await catalog.locate("bucket", "nightly-1700000000000-ab12cd34")
        >>> metadata = await catalog.fetch("bucket", key)
    """

    def __init__(self, store: ObjectStore, prefix: str = "snapshots") -> None:
        self.store = store
        self.prefix = prefix.strip("/")

    def archive_key(self, name: str, snapshot_id: str) -> str:
        return f"{self.prefix}/{name}/{snapshot_id}{ARCHIVE_SUFFIX}"

    def metadata_key(self, name: str, snapshot_id: str) -> str:
        return f"{self.prefix}/{name}/{snapshot_id}{METADATA_SUFFIX}"

    async def locate(self, bucket: str, snapshot_id: str) -> str:
        """Find the metadata key for a snapshot id.

        Args:
            bucket: Bucket name
            snapshot_id: Snapshot id

        Returns:
            Metadata object key

        Raises:
            SnapshotNotFoundError: If no metadata document matches
            TransferError: If listing fails
        """
        if not snapshot_id:
            raise SnapshotNotFoundError(snapshot_id, bucket)

        try:
            listing = await self.store.list_objects(bucket, f"{self.prefix}/")
        except ObjectStoreError as e:
            raise TransferError(f"Listing {self.prefix}/ failed: {e}", key=f"{self.prefix}/") from e
        metadata_keys = [e.key for e in listing.entries if e.key.endswith(METADATA_SUFFIX)]

        exact_name = f"{snapshot_id}{METADATA_SUFFIX}"
        for key in metadata_keys:
            if key.rsplit("/", 1)[-1] == exact_name:
                return key

        for key in metadata_keys:
            if snapshot_id in key:
                logger.debug(f"Snapshot {snapshot_id} resolved by substring match to {key}")
                return key

        raise SnapshotNotFoundError(snapshot_id, bucket)

    async def fetch(self, bucket: str, metadata_key: str) -> SnapshotMetadata:
        """Download and parse one metadata document.

        Raises:
            TransferError: If the download fails
            InvalidMetadataError: If the document is invalid or not finalized
        """
        try:
            content = await self.store.get_object(bucket, metadata_key)
        except ObjectStoreError as e:
            raise TransferError(f"Download of {metadata_key} failed: {e}", key=metadata_key) from e

        try:
            return SnapshotMetadata.from_json(content)
        except InvalidMetadataError as e:
            raise InvalidMetadataError(f"{metadata_key}: {e.message}", key=metadata_key) from e

    async def load(self, bucket: str, snapshot_id: str) -> tuple[str, SnapshotMetadata]:
        """Locate and fetch metadata for a snapshot id.

        Returns:
            (metadata key, metadata)
        """
        key = await self.locate(bucket, snapshot_id)
        return key, await self.fetch(bucket, key)

    async def save(self, bucket: str, metadata: SnapshotMetadata) -> str:
        """Upload a finalized metadata document.

        Returns:
            Metadata object key

        Raises:
            TransferError: If the upload fails
        """
        if not isinstance(metadata, SnapshotMetadata):
            raise TypeError("Only finalized SnapshotMetadata can be saved")

        key = self.metadata_key(metadata.name, metadata.id)
        try:
            await self.store.put_object(
                bucket,
                key,
                metadata.to_json(),
                METADATA_CONTENT_TYPE,
            )
        except ObjectStoreError as e:
            raise TransferError(f"Upload of {key} failed: {e}", key=key) from e
        return key

    async def delete(self, bucket: str, metadata_key: str) -> list[str]:
        """Delete a snapshot's archive, then its metadata document.

        The metadata goes last so an interrupted delete can be retried by id.

        Returns:
            Keys deleted, in order

        Raises:
            TransferError: If a delete fails
        """
        deleted: list[str] = []
        for key in (archive_key_for(metadata_key), metadata_key):
            try:
                await self.store.delete_object(bucket, key)
            except ObjectStoreError as e:
                raise TransferError(f"Delete of {key} failed: {e}", key=key) from e
            deleted.append(key)
        return deleted

    async def list_snapshots(
        self,
        bucket: str,
        prefix: str | None = None,
        max_results: int = 100,
    ) -> SnapshotListing:
        """List snapshots, newest first.

        Args:
            bucket: Bucket name
            prefix: Optional snapshot-name prefix
            max_results: Maximum number of metadata documents to read

        Returns:
            SnapshotListing; unreadable documents are reported in ``skipped``

        Raises:
            TransferError: If the listing itself fails
        """
        if max_results < 0:
            raise ValueError("max_results must not be negative")

        list_prefix = f"{self.prefix}/{prefix}" if prefix else f"{self.prefix}/"

        # Archives and metadata documents interleave in the listing.
        try:
            listing = await self.store.list_objects(bucket, list_prefix, max_keys=max_results * 2)
        except ObjectStoreError as e:
            raise TransferError(f"Listing {list_prefix} failed: {e}", key=list_prefix) from e
        metadata_keys = [e.key for e in listing.entries if e.key.endswith(METADATA_SUFFIX)][
            :max_results
        ]

        result = SnapshotListing()
        parsed: list[SnapshotMetadata] = []
        for key in metadata_keys:
            outcome = await attempt(self.fetch(bucket, key), None, (TransferError, InvalidMetadataError))
            if isinstance(outcome, Degraded):
                logger.warning(f"Skipping unreadable snapshot metadata {key}: {outcome.reason}")
                result.skipped.append(key)
            else:
                parsed.append(outcome.value)

        parsed.sort(key=lambda m: m.created_at_datetime, reverse=True)
        result.snapshots = [SnapshotListEntry.from_metadata(m) for m in parsed]
        return result
