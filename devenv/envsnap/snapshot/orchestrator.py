"""
Snapshot orchestrator for envsnap.

The SnapshotOrchestrator is the single entry point for the five snapshot
operations. It wires the collaborators together and sequences them:

    create   EnvironmentProbe + RepositoryInspector -> ArchiveBuilder
             -> checksum -> TransferCoordinator (archive) -> SnapshotCatalog (metadata)
    list     SnapshotCatalog
    restore  RestoreCoordinator
    diff     SnapshotCatalog -> DiffEngine
    delete   SnapshotCatalog (locate) -> archive, then metadata

Object layout:
    s3://<bucket>/<prefix>/<name>/<id>.tar.gz
    s3://<bucket>/<prefix>/<name>/<id>.metadata.json

Invariants:
    - Metadata is uploaded only after the archive upload succeeded
    - Uploaded metadata always carries the archive checksum and size
    - The create work directory is removed on every exit path
    - Per-repository git failures never fail an operation

How to change safely:
    - Keep the upload order (archive first, metadata last)
    - Add new operation options as keyword arguments with defaults
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..archive.builder import ArchiveBuilder
from ..archive.checksum import compute_checksum
from ..archive.codec import ArchiveCodec, TarArchiveCodec
from ..archive.presets import Preset
from ..catalog.catalog import ARCHIVE_CONTENT_TYPE, SnapshotCatalog
from ..catalog.metadata import SnapshotDraft, SnapshotListing, SnapshotMetadata
from ..config import EnvSnapConfig, TransportEncoding
from ..environment import (
    Clock,
    EnvironmentProbe,
    EnvironmentReader,
    OsEnvironmentReader,
    SystemClock,
    format_timestamp,
    generate_snapshot_id,
)
from ..errors import EmptySnapshotError
from ..git.client import GitClient
from ..git.inspector import RepositoryInspector
from ..store.base import ObjectStore
from .diff import DiffEngine, DiffResult
from .restore import RestoreCoordinator, RestoreResult
from .stages import Stage, StageTracker
from .transfer import TransferCoordinator

logger = logging.getLogger(__name__)


@dataclass
class CreateResult:
    """Result of a create operation.

    Attributes:
        id: New snapshot id
        location: s3:// URL of the archive
        metadata: Finalized metadata as uploaded
        upload_duration: Archive upload time in ms
    """

    id: str
    location: str
    metadata: SnapshotMetadata
    upload_duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "location": self.location,
            "metadata": self.metadata.to_dict(),
            "uploadDuration": self.upload_duration,
        }


@dataclass
class DeleteResult:
    """Result of a delete operation."""

    deleted: bool
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {"deleted": self.deleted, "id": self.id}


def validate_snapshot_name(name: str) -> None:
    """Reject names that cannot be used as a key segment.

    Raises:
        ValueError: If name is empty or contains a path separator
    """
    if not name or not name.strip():
        raise ValueError("Snapshot name must not be empty")
    if "/" in name or "\\" in name:
        raise ValueError(f"Snapshot name must not contain path separators: {name!r}")


class SnapshotOrchestrator:
    """Creates, lists, restores, diffs and deletes snapshots.

    Attributes:
        config: envsnap configuration
        store: Object store backend
        catalog: Metadata catalog
        transfer: Byte transfer coordinator

    Example:
        >>> async with S3ObjectStore(config.s3) as store:
        ...     orchestrator = SnapshotOrchestrator(store, SubprocessGitClient(), config)
        ...     result = await orchestrator.create("nightly", "dev-snapshots", paths=["/src/api"])
        ...     diff = await orchestrator.diff(result.id, "dev-snapshots")
    """

    def __init__(
        self,
        store: ObjectStore,
        git: GitClient,
        config: EnvSnapConfig | None = None,
        clock: Clock | None = None,
        reader: EnvironmentReader | None = None,
        codec: ArchiveCodec | None = None,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Object store backend
            git: Git client used for inspection and diff
            config: Optional configuration (defaults apply if not provided)
            clock: Time source (default: system clock)
            reader: Host environment reader (default: OS reader)
            codec: Archive codec (default: tar/gzip)
            token_factory: Random id suffix source (default: uuid4 hex)
        """
        self.config = config or EnvSnapConfig()
        self.store = store
        self.clock = clock or SystemClock()
        self.reader = reader or OsEnvironmentReader(
            package_manager=self.config.snapshot.package_manager
        )
        self.token_factory = token_factory
        codec = codec or TarArchiveCodec()

        settings = self.config.snapshot
        self.inspector = RepositoryInspector(git, max_concurrent=settings.max_concurrent)
        self.probe = EnvironmentProbe(self.reader)
        self.builder = ArchiveBuilder(codec)
        self.catalog = SnapshotCatalog(store, prefix=self.config.s3.snapshot_prefix)
        self.transfer = TransferCoordinator(
            store,
            decode_base64=self.config.s3.transport_encoding == TransportEncoding.BASE64,
        )
        self.diff_engine = DiffEngine(git, max_concurrent=settings.max_concurrent)
        self.restorer = RestoreCoordinator(
            self.catalog,
            self.transfer,
            codec=codec,
            clock=self.clock,
            verify_checksum=settings.verify_checksum,
            temp_root=settings.temp_root(),
        )

    def _default_paths(self) -> list[str]:
        if self.config.snapshot.default_paths:
            return list(self.config.snapshot.default_paths)
        return [self.reader.cwd()]

    async def create(
        self,
        name: str,
        bucket: str,
        preset: Preset | str | None = None,
        paths: Sequence[str] | None = None,
        description: str | None = None,
    ) -> CreateResult:
        """Create a snapshot of the given repositories.

        Args:
            name: Snapshot name
            bucket: Destination bucket
            preset: Inclusion preset (default: configured preset)
            paths: Repository paths (default: configured paths, else cwd)
            description: Optional free text stored with the metadata

        Returns:
            CreateResult

        Raises:
            ValueError: If the name or preset is invalid
            EmptySnapshotError: If reject_empty is set and nothing was archived
            TransferError: If an upload fails
        """
        validate_snapshot_name(name)
        preset = Preset(preset) if preset is not None else self.config.snapshot.default_preset
        repo_paths = list(paths) if paths is not None else self._default_paths()

        id_args = (self.token_factory,) if self.token_factory else ()
        snapshot_id = generate_snapshot_id(name, self.clock, *id_args)

        tracker = StageTracker("create", snapshot_id)
        loop = asyncio.get_running_loop()
        work_dir = Path(
            tempfile.mkdtemp(prefix=f"snapshot-{snapshot_id}-", dir=self.config.snapshot.temp_root())
        )
        archive_path = work_dir / f"{snapshot_id}.tar.gz"

        try:
            tracker.enter(Stage.PREPARING)
            repositories = await self.inspector.inspect_many(repo_paths)
            environment = await loop.run_in_executor(None, self.probe.capture)
            draft = SnapshotDraft(
                id=snapshot_id,
                name=name,
                preset=preset,
                created_at=format_timestamp(self.clock.now()),
                environment=environment,
                repositories=tuple(repositories),
                description=description,
            )

            tracker.enter(Stage.BUILDING)
            build = await self.builder.build(repo_paths, preset, archive_path)
            if build.is_empty:
                if self.config.snapshot.reject_empty:
                    raise EmptySnapshotError(repo_paths)
                logger.warning(
                    "No repositories archived, uploading an empty snapshot",
                    extra={"snapshot_id": snapshot_id, "skipped": build.skipped},
                )

            checksum = await loop.run_in_executor(None, compute_checksum, archive_path)
            data = await loop.run_in_executor(None, archive_path.read_bytes)
            metadata = draft.finalize(checksum, len(data))

            tracker.enter(Stage.TRANSFERRING)
            archive_key = self.catalog.archive_key(name, snapshot_id)
            upload_start = self.clock.monotonic()
            receipt = await self.transfer.upload(
                bucket,
                archive_key,
                data,
                ARCHIVE_CONTENT_TYPE,
                metadata={
                    "snapshotId": snapshot_id,
                    "snapshotName": name,
                    "preset": preset.value,
                    "checksum": checksum,
                },
            )
            upload_duration = int((self.clock.monotonic() - upload_start) * 1000)

            tracker.enter(Stage.FINALIZING)
            await self.catalog.save(bucket, metadata)

            tracker.enter(Stage.SUCCEEDED)
            logger.info(
                "Created snapshot",
                extra={
                    "snapshot_id": snapshot_id,
                    "preset": preset.value,
                    "repositories": len(build.included),
                    "size_bytes": metadata.archive_size,
                    "multipart": receipt.multipart,
                    "upload_ms": upload_duration,
                },
            )

            return CreateResult(
                id=snapshot_id,
                location=f"s3://{bucket}/{archive_key}",
                metadata=metadata,
                upload_duration=upload_duration,
            )

        except Exception as e:
            tracker.fail(e)
            raise

        finally:
            await loop.run_in_executor(None, shutil.rmtree, work_dir, True)

    async def list(
        self,
        bucket: str,
        prefix: str | None = None,
        max_results: int = 100,
    ) -> SnapshotListing:
        """List snapshots in a bucket, newest first."""
        return await self.catalog.list_snapshots(bucket, prefix=prefix, max_results=max_results)

    async def restore(
        self,
        snapshot_id: str,
        bucket: str,
        target_path: str | None = None,
        overwrite: bool = False,
    ) -> RestoreResult:
        """Restore a snapshot; see RestoreCoordinator.restore."""
        return await self.restorer.restore(bucket, snapshot_id, target_path, overwrite)

    async def diff(
        self,
        snapshot_id: str,
        bucket: str,
        paths: Sequence[str] | None = None,
    ) -> DiffResult:
        """Compare live repositories with a snapshot.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
        """
        _, metadata = await self.catalog.load(bucket, snapshot_id)
        return await self.diff_engine.diff(metadata, paths)

    async def delete(self, snapshot_id: str, bucket: str) -> DeleteResult:
        """Delete a snapshot's archive and metadata.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist (nothing is deleted)
            TransferError: If a delete fails
        """
        metadata_key = await self.catalog.locate(bucket, snapshot_id)
        deleted = await self.catalog.delete(bucket, metadata_key)
        logger.info("Deleted snapshot", extra={"snapshot_id": snapshot_id, "keys": deleted})
        return DeleteResult(deleted=True, id=snapshot_id)
