"""
Archive builder for envsnap.

The ArchiveBuilder turns an ordered list of repository paths into one
compressed archive. Each repository is stored under its directory basename:

    <basename>/.git/...
    <basename>/<working tree>

Invariants:
    - Only paths containing a .git directory are archived
    - Missing paths and non-repositories are skipped, never an error
    - Exclusion follows the preset (see presets.py)
    - An empty archive is a valid result; callers decide whether to reject it

How to change safely:
    - Changing the arcname layout breaks restore conflict checks for
      existing snapshots
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .codec import ArchiveCodec, TarArchiveCodec
from .presets import Preset, compression_level, is_excluded

logger = logging.getLogger(__name__)

VCS_METADATA_DIR = ".git"


@dataclass
class BuildResult:
    """Outcome of an archive build.

    Attributes:
        archive_path: Archive file written
        included: Repository paths archived, in input order
        skipped: Repository paths skipped (missing, not a repository, duplicate name)
    """

    archive_path: Path
    included: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.included


class ArchiveBuilder:
    """Packs repository working trees into a single archive.

    Example:
        >>> builder = ArchiveBuilder()
        >>> result = await builder.build(["/src/api", "/src/web"], Preset.LIGHT, Path("/tmp/x.tar.gz"))
        >>> result.included
        ['/src/api', '/src/web']
    """

    def __init__(self, codec: ArchiveCodec | None = None) -> None:
        self.codec = codec or TarArchiveCodec()

    def select_sources(self, repo_paths: Sequence[str]) -> tuple[list[tuple[Path, str]], list[str], list[str]]:
        """Decide which paths contribute to the archive.

        Returns:
            (sources as (path, arcname), included paths, skipped paths)
        """
        sources: list[tuple[Path, str]] = []
        included: list[str] = []
        skipped: list[str] = []
        seen_names: set[str] = set()

        for repo_path in repo_paths:
            path = Path(repo_path)
            if not path.exists() or not (path / VCS_METADATA_DIR).exists():
                skipped.append(repo_path)
                continue

            arcname = path.resolve().name
            if arcname in seen_names:
                logger.warning(
                    f"Skipping {repo_path}: another repository is already archived as '{arcname}'"
                )
                skipped.append(repo_path)
                continue

            seen_names.add(arcname)
            sources.append((path, arcname))
            included.append(repo_path)

        return sources, included, skipped

    async def build(
        self,
        repo_paths: Sequence[str],
        preset: Preset,
        dest: Path,
    ) -> BuildResult:
        """Build the archive for a preset.

        Args:
            repo_paths: Repository paths, in snapshot order
            preset: Inclusion policy
            dest: Archive file to write

        Returns:
            BuildResult describing what was archived
        """
        preset = Preset(preset)
        sources, included, skipped = self.select_sources(repo_paths)

        def _exclude(relative_path: str) -> bool:
            return is_excluded(relative_path, preset)

        await asyncio.get_running_loop().run_in_executor(
            None,
            self.codec.pack,
            sources,
            dest,
            compression_level(preset),
            _exclude,
        )

        logger.info(
            "Built snapshot archive",
            extra={
                "preset": preset.value,
                "included": len(included),
                "skipped": len(skipped),
                "archive": str(dest),
            },
        )

        return BuildResult(archive_path=dest, included=included, skipped=skipped)
