"""
S3 object store backend for envsnap.

Works against AWS S3 and S3-compatible services (MinIO, LocalStack) through
aiobotocore.

Invariants:
    - connect() must be called (or the store used as an async context
      manager) before any other operation
    - botocore errors never escape; they are translated to ObjectStoreError
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
from .base import ObjectEntry, ObjectListing, ObjectNotFoundError, ObjectStoreError, UploadedPart

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _translate(exc: Exception, operation: str, key: str | None) -> ObjectStoreError:
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(f"Object not found: {key}", key=key)
        return ObjectStoreError(f"S3 {operation} failed ({code}): {exc}", key=key)
    return ObjectStoreError(f"S3 {operation} failed: {exc}", key=key)


class S3ObjectStore:
    """ObjectStore implementation backed by aiobotocore.

    Attributes:
        s3_config: S3 configuration

    Example:
        >>> async with S3ObjectStore(S3Config.from_env()) as store:
        ...     listing = await store.list_objects("bucket", "snapshots/")
    """

    def __init__(self, s3_config: S3Config) -> None:
        """Initialize the store.

        Args:
            s3_config: S3Config instance
        """
        self.s3_config = s3_config
        self._session = None
        self._s3_ctx = None
        self._s3_client = None

    async def __aenter__(self) -> S3ObjectStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Initialize S3 client."""
        if self._s3_client:
            return

        self._session = get_session()

        client_kwargs: dict[str, Any] = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        self._s3_ctx = self._session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()

    async def close(self) -> None:
        """Close S3 client."""
        if self._s3_client:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None

    @property
    def client(self) -> Any:
        if self._s3_client is None:
            raise ObjectStoreError("S3 client not connected")
        return self._s3_client

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        max_keys: int | None = None,
    ) -> ObjectListing:
        listing = ObjectListing()
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    listing.entries.append(
                        ObjectEntry(
                            key=obj["Key"],
                            size=obj["Size"],
                            last_modified=obj["LastModified"],
                        )
                    )
                    if max_keys is not None and listing.count >= max_keys:
                        return listing
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "list", prefix) from e
        return listing

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        try:
            await self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "put", key) from e

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            response = await self.client.get_object(Bucket=bucket, Key=key)
            async with response["Body"] as stream:
                return await stream.read()
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "get", key) from e

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            await self.client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "delete", key) from e

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        try:
            response = await self.client.create_multipart_upload(
                Bucket=bucket,
                Key=key,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "multipart init", key) from e
        return response["UploadId"]

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> UploadedPart:
        try:
            response = await self.client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"upload part {part_number}", key) from e
        return UploadedPart(etag=response["ETag"], part_number=part_number)

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Sequence[UploadedPart],
    ) -> None:
        try:
            await self.client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": [part.to_dict() for part in parts]},
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "multipart complete", key) from e

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            await self.client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, "multipart abort", key) from e
