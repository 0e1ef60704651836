"""
Restore coordinator for envsnap.

The restore process:
1. Locate and fetch the snapshot metadata
2. Check the target for existing repositories (unless overwriting)
3. Download the archive into a private work directory
4. Verify the archive checksum
5. Extract into the target
6. Report which repository directories now exist

Invariants:
    - A conflict is detected before anything is extracted
    - The work directory is removed on every exit path, unless it is also
      the restore target (then only the downloaded archive is removed)
    - Restore extracts exactly what the archive holds; the preset is not
      consulted

How to change safely:
    - Test restore with snapshots written by older versions
    - Keep conflict checks in sync with the archive layout (basename per repo)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..archive.checksum import checksum_bytes
from ..archive.codec import ArchiveCodec, TarArchiveCodec
from ..catalog.catalog import SnapshotCatalog, archive_key_for
from ..catalog.metadata import SnapshotMetadata
from ..environment import Clock, SystemClock
from ..errors import ChecksumMismatchError, RestoreConflictError
from .stages import Stage, StageTracker
from .transfer import TransferCoordinator

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore operation.

    Attributes:
        success: Whether restore succeeded
        metadata: Restored snapshot metadata
        restored_paths: Repository directories present under the target
        download_duration: Download time in ms
        extract_duration: Extraction time in ms
        target_path: Directory the archive was extracted into
    """

    success: bool
    metadata: SnapshotMetadata
    restored_paths: list[str] = field(default_factory=list)
    download_duration: int = 0
    extract_duration: int = 0
    target_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "metadata": self.metadata.to_dict(),
            "restoredPaths": self.restored_paths,
            "downloadDuration": self.download_duration,
            "extractDuration": self.extract_duration,
        }


def repository_dir_candidates(metadata: SnapshotMetadata, target: Path) -> list[Path]:
    """Directories under target that a restore of this snapshot would populate.

    Each repository is checked under its recorded name and under the
    basename of its recorded path (the archive layout), de-duplicated.
    """
    candidates: list[Path] = []
    for repo in metadata.repositories:
        for dirname in (repo.name, os.path.basename(os.path.normpath(repo.path))):
            if not dirname:
                continue
            candidate = target / dirname
            if candidate not in candidates:
                candidates.append(candidate)
    return candidates


class RestoreCoordinator:
    """Downloads, verifies and extracts snapshots.

    Example:
        >>> coordinator = RestoreCoordinator(catalog, transfer)
        >>> result = await coordinator.restore("bucket", "nightly-1700000000000-ab12cd34", "/work")
        >>> result.restored_paths
        ['/work/api', '/work/web']
    """

    def __init__(
        self,
        catalog: SnapshotCatalog,
        transfer: TransferCoordinator,
        codec: ArchiveCodec | None = None,
        clock: Clock | None = None,
        verify_checksum: bool = True,
        temp_root: str | None = None,
    ) -> None:
        self.catalog = catalog
        self.transfer = transfer
        self.codec = codec or TarArchiveCodec()
        self.clock = clock or SystemClock()
        self.verify_checksum = verify_checksum
        self.temp_root = temp_root

    async def restore(
        self,
        bucket: str,
        snapshot_id: str,
        target_path: str | None = None,
        overwrite: bool = False,
    ) -> RestoreResult:
        """Restore a snapshot into a target directory.

        Args:
            bucket: Bucket holding the snapshot
            snapshot_id: Snapshot id
            target_path: Extraction root (default: a fresh work directory)
            overwrite: Extract over existing repository directories

        Returns:
            RestoreResult

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
            RestoreConflictError: If a repository directory already exists
                and overwrite is False
            ChecksumMismatchError: If the archive fails verification
            TransferError: If a download fails
        """
        tracker = StageTracker("restore", snapshot_id)
        loop = asyncio.get_running_loop()
        work_dir = Path(tempfile.mkdtemp(prefix=f"restore-{snapshot_id}-", dir=self.temp_root))
        target = Path(target_path) if target_path else work_dir
        archive_path = work_dir / f"{snapshot_id}.tar.gz"

        try:
            tracker.enter(Stage.PREPARING)
            download_start = self.clock.monotonic()
            metadata_key, metadata = await self.catalog.load(bucket, snapshot_id)

            if not overwrite:
                for candidate in repository_dir_candidates(metadata, target):
                    if candidate.exists():
                        raise RestoreConflictError(str(candidate))

            tracker.enter(Stage.FETCHING)
            archive_key = archive_key_for(metadata_key)
            content = await self.transfer.download(bucket, archive_key)

            if self.verify_checksum:
                actual = checksum_bytes(content)
                if actual != metadata.checksum:
                    raise ChecksumMismatchError(archive_key, metadata.checksum, actual)

            await loop.run_in_executor(None, archive_path.write_bytes, content)
            download_duration = int((self.clock.monotonic() - download_start) * 1000)

            tracker.enter(Stage.TRANSFERRING)
            extract_start = self.clock.monotonic()
            target.mkdir(parents=True, exist_ok=True)
            await loop.run_in_executor(None, self.codec.unpack, archive_path, target, overwrite)
            extract_duration = int((self.clock.monotonic() - extract_start) * 1000)

            tracker.enter(Stage.FINALIZING)
            restored_paths = [str(c) for c in repository_dir_candidates(metadata, target) if c.is_dir()]

            tracker.enter(Stage.SUCCEEDED)
            logger.info(
                "Restored snapshot",
                extra={
                    "snapshot_id": metadata.id,
                    "target": str(target),
                    "restored": len(restored_paths),
                    "download_ms": download_duration,
                    "extract_ms": extract_duration,
                },
            )

            return RestoreResult(
                success=True,
                metadata=metadata,
                restored_paths=restored_paths,
                download_duration=download_duration,
                extract_duration=extract_duration,
                target_path=str(target),
            )

        except Exception as e:
            tracker.fail(e)
            raise

        finally:
            if work_dir.resolve() != target.resolve():
                await loop.run_in_executor(None, shutil.rmtree, work_dir, True)
            elif archive_path.exists():
                archive_path.unlink()
