"""
Archive codec for envsnap.

Packs directory trees into a single gzip-compressed tar file and unpacks
them again. The codec is synchronous; callers run it in an executor.

Invariants:
    - Members are stored under the caller-supplied arcname, never absolute
    - An excluded directory is not descended into
    - Unpacking refuses absolute member paths and parent traversal
    - With overwrite, a member is validated before the file it replaces
      is unlinked
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path
from typing import Callable, Protocol, Sequence

logger = logging.getLogger(__name__)

ExcludePredicate = Callable[[str], bool]


class ArchiveCodec(Protocol):
    """Protocol for archive codecs."""

    def pack(
        self,
        sources: Sequence[tuple[Path, str]],
        dest: Path,
        compression_level: int,
        exclude: ExcludePredicate,
    ) -> None:
        """Write every (path, arcname) source into one compressed archive."""
        ...

    def unpack(self, archive: Path, dest: Path, overwrite: bool = False) -> None:
        """Extract an archive into dest, replacing existing files if overwrite."""
        ...


class TarArchiveCodec:
    """tar + gzip codec built on the tarfile module.

    Example:
        >>> codec = TarArchiveCodec()
        >>> codec.pack([(Path("/src/app"), "app")], Path("out.tar.gz"), 9, lambda p: False)
        >>> codec.unpack(Path("out.tar.gz"), Path("/restore"))
    """

    def pack(
        self,
        sources: Sequence[tuple[Path, str]],
        dest: Path,
        compression_level: int,
        exclude: ExcludePredicate,
    ) -> None:
        """Create a tar.gz archive.

        Args:
            sources: (directory, arcname) pairs
            dest: Archive file to write
            compression_level: gzip level 1-9
            exclude: Called with each member's archive-relative path;
                True drops the member (and its children)
        """

        def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
            if exclude(info.name):
                return None
            return info

        with tarfile.open(dest, mode="w:gz", compresslevel=compression_level) as tar:
            for path, arcname in sources:
                tar.add(str(path), arcname=arcname, recursive=True, filter=_filter)

        logger.debug(
            "Packed archive",
            extra={"dest": str(dest), "sources": len(sources), "level": compression_level},
        )

    def unpack(self, archive: Path, dest: Path, overwrite: bool = False) -> None:
        """Extract a tar.gz archive into dest.

        Args:
            archive: Archive file to read
            dest: Extraction root
            overwrite: Replace files that already exist under dest. Existing
                files are unlinked first so read-only files (git objects)
                do not block extraction.
        """
        dest.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, mode="r:gz") as tar:
            if not overwrite:
                tar.extractall(path=str(dest), filter="tar")
                return

            for member in tar.getmembers():
                # Validate before touching anything on disk
                member = tarfile.tar_filter(member, str(dest))
                existing = dest / member.name
                if not member.isdir() and (existing.is_symlink() or existing.is_file()):
                    existing.unlink()
                tar.extract(member, path=str(dest), filter="tar")
