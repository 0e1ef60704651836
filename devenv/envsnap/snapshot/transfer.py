"""
Transfer coordinator for envsnap.

Moves archive bytes to and from the object store:

    size <= 5 MiB   single put_object
    size >  5 MiB   multipart: init -> part 1..N (5 MiB each, sequential)
                    -> complete(ordered parts)

Invariants:
    - Parts are uploaded strictly in ascending part-number order
    - A failed part or completion aborts the session exactly once before
      the error propagates
    - Downloads are not retried

How to change safely:
    - PART_SIZE must stay >= the store's minimum part size (5 MiB for S3)
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass

from ..errors import TransferError
from ..store.base import ObjectStore, ObjectStoreError, UploadedPart

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 5 * 1024 * 1024
PART_SIZE = 5 * 1024 * 1024


@dataclass(frozen=True)
class UploadReceipt:
    """Outcome of an upload.

    Attributes:
        key: Object key written
        size: Bytes uploaded
        multipart: Whether the multipart protocol was used
        parts: Number of parts (1 for a single put)
    """

    key: str
    size: int
    multipart: bool
    parts: int


class TransferCoordinator:
    """Uploads and downloads archive bytes.

    Example:
        >>> transfer = TransferCoordinator(store)
        >>> receipt = await transfer.upload("bucket", "snapshots/a/b.tar.gz", data, "application/gzip")
        >>> receipt.multipart
        False
    """

    def __init__(
        self,
        store: ObjectStore,
        multipart_threshold: int = MULTIPART_THRESHOLD,
        part_size: int = PART_SIZE,
        decode_base64: bool = False,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Object store backend
            multipart_threshold: Largest size sent as a single put
            part_size: Multipart chunk size
            decode_base64: Whether downloaded bodies arrive base64-encoded
        """
        if part_size <= 0:
            raise ValueError("part_size must be positive")
        self.store = store
        self.multipart_threshold = multipart_threshold
        self.part_size = part_size
        self.decode_base64 = decode_base64

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> UploadReceipt:
        """Upload bytes, switching to multipart above the threshold.

        Raises:
            TransferError: If any store call fails
        """
        size = len(data)
        if size <= self.multipart_threshold:
            try:
                await self.store.put_object(bucket, key, data, content_type, metadata)
            except ObjectStoreError as e:
                raise TransferError(f"Upload of {key} failed: {e}", key=key) from e
            logger.debug("Uploaded object", extra={"key": key, "size": size})
            return UploadReceipt(key=key, size=size, multipart=False, parts=1)

        parts = await self._multipart_upload(bucket, key, data, content_type, metadata)
        return UploadReceipt(key=key, size=size, multipart=True, parts=len(parts))

    async def _multipart_upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None,
    ) -> list[UploadedPart]:
        try:
            upload_id = await self.store.create_multipart_upload(bucket, key, content_type, metadata)
        except ObjectStoreError as e:
            raise TransferError(f"Could not start multipart upload of {key}: {e}", key=key) from e

        parts: list[UploadedPart] = []
        try:
            view = memoryview(data)
            part_number = 1
            for offset in range(0, len(data), self.part_size):
                chunk = bytes(view[offset : offset + self.part_size])
                parts.append(
                    await self.store.upload_part(bucket, key, upload_id, part_number, chunk)
                )
                part_number += 1

            await self.store.complete_multipart_upload(bucket, key, upload_id, parts)

        except ObjectStoreError as e:
            logger.error(
                "Multipart upload failed, aborting",
                extra={"key": key, "upload_id": upload_id, "parts_uploaded": len(parts)},
            )
            try:
                await self.store.abort_multipart_upload(bucket, key, upload_id)
            except ObjectStoreError as abort_error:
                logger.error(f"Abort of multipart upload {upload_id} failed: {abort_error}")
            raise TransferError(
                f"Multipart upload of {key} failed: {e}",
                key=key,
                upload_id=upload_id,
            ) from e

        logger.info(
            "Completed multipart upload",
            extra={"key": key, "size": len(data), "parts": len(parts)},
        )
        return parts

    async def download(self, bucket: str, key: str) -> bytes:
        """Fetch an object's bytes.

        Raises:
            TransferError: If the fetch or base64 decoding fails
        """
        try:
            body = await self.store.get_object(bucket, key)
        except ObjectStoreError as e:
            raise TransferError(f"Download of {key} failed: {e}", key=key) from e

        if self.decode_base64:
            try:
                body = base64.b64decode(body, validate=True)
            except (binascii.Error, ValueError) as e:
                raise TransferError(f"Download of {key} is not valid base64: {e}", key=key) from e

        return body
