"""
Diff engine for envsnap.

Compares the live state of repositories against the state recorded in a
snapshot's metadata.

Per repository:
    - not recorded in the snapshot (by path, then by name == basename): skipped
    - missing on disk: files_changed = -1, counted as changed
    - branch differs: branch_diff
    - commit differs: commit_diff, plus the number of files changed between
      the snapshot commit and HEAD (-1 when the snapshot commit is not
      available locally)
    - new_stashes = current stash count - recorded stash count

A repository is changed when it has a branch diff, a commit diff, a
positive file count or a positive stash delta. Any unexpected failure while
checking one repository records files_changed = -1 and counts it as changed.

Invariants:
    - One repository's failure never aborts the diff of the others
    - Output order follows the paths being checked
    - is_match is true iff no repository changed
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..catalog.metadata import SnapshotMetadata
from ..git.client import GitClient, GitClientError
from ..git.inspector import RepositoryState

logger = logging.getLogger(__name__)

MISSING = -1


@dataclass(frozen=True)
class RefDiff:
    """A value that differs between now and the snapshot."""

    current: str
    snapshot: str

    def to_dict(self) -> dict[str, str]:
        return {"current": self.current, "snapshot": self.snapshot}


@dataclass
class RepositoryDiff:
    """Differences for one repository.

    Attributes:
        path: Repository path checked
        branch_diff: Set when the branch changed
        commit_diff: Set when HEAD moved
        files_changed: Files changed since the snapshot commit (-1 = unknown/missing)
        new_stashes: Stash count delta (negative when stashes were dropped)
    """

    path: str
    branch_diff: RefDiff | None = None
    commit_diff: RefDiff | None = None
    files_changed: int = 0
    new_stashes: int = 0
    changed: bool = field(default=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"path": self.path}
        if self.branch_diff:
            data["branchDiff"] = self.branch_diff.to_dict()
        if self.commit_diff:
            data["commitDiff"] = self.commit_diff.to_dict()
        data["filesChanged"] = self.files_changed
        data["newStashes"] = self.new_stashes
        return data


@dataclass(frozen=True)
class DiffSummary:
    repos_changed: int
    total_files_changed: int
    is_match: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "reposChanged": self.repos_changed,
            "totalFilesChanged": self.total_files_changed,
            "isMatch": self.is_match,
        }


@dataclass
class DiffResult:
    """Comparison of live state against one snapshot."""

    snapshot_metadata: SnapshotMetadata
    repositories: list[RepositoryDiff]
    summary: DiffSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshotMetadata": self.snapshot_metadata.to_dict(),
            "repositories": [r.to_dict() for r in self.repositories],
            "summary": self.summary.to_dict(),
        }


def find_recorded(metadata: SnapshotMetadata, repo_path: str) -> RepositoryState | None:
    """Recorded state for a path: exact path match first, then name == basename."""
    for repo in metadata.repositories:
        if repo.path == repo_path:
            return repo
    basename = os.path.basename(os.path.normpath(repo_path))
    for repo in metadata.repositories:
        if repo.name == basename:
            return repo
    return None


class DiffEngine:
    """Computes DiffResult from metadata and live git state.

    Example:
        >>> engine = DiffEngine(SubprocessGitClient())
        >>> result = await engine.diff(metadata)
        >>> result.summary.is_match
        True
    """

    def __init__(self, git: GitClient, max_concurrent: int = 8) -> None:
        self.git = git
        self.max_concurrent = max_concurrent

    async def diff(
        self,
        metadata: SnapshotMetadata,
        paths: Sequence[str] | None = None,
    ) -> DiffResult:
        """Diff live repositories against a snapshot.

        Args:
            metadata: Snapshot to compare against
            paths: Paths to check (default: every recorded path); a path
                given more than once is checked once

        Returns:
            DiffResult
        """
        candidates = list(paths) if paths is not None else [r.path for r in metadata.repositories]
        seen: set[str] = set()
        paths_to_check: list[str] = []
        for p in candidates:
            normalized = os.path.normpath(p)
            if normalized not in seen:
                seen.add(normalized)
                paths_to_check.append(p)
        pairs = [(p, find_recorded(metadata, p)) for p in paths_to_check]
        pairs = [(p, recorded) for p, recorded in pairs if recorded is not None]

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _bounded(repo_path: str, recorded: RepositoryState) -> RepositoryDiff:
            async with semaphore:
                return await self.diff_repository(repo_path, recorded)

        repositories = list(await asyncio.gather(*(_bounded(p, r) for p, r in pairs)))

        repos_changed = sum(1 for r in repositories if r.changed)
        total_files_changed = sum(r.files_changed for r in repositories if r.files_changed > 0)
        summary = DiffSummary(
            repos_changed=repos_changed,
            total_files_changed=total_files_changed,
            is_match=repos_changed == 0,
        )

        logger.info(
            "Computed snapshot diff",
            extra={
                "snapshot_id": metadata.id,
                "checked": len(repositories),
                "repos_changed": repos_changed,
                "total_files_changed": total_files_changed,
            },
        )

        return DiffResult(snapshot_metadata=metadata, repositories=repositories, summary=summary)

    async def diff_repository(self, repo_path: str, recorded: RepositoryState) -> RepositoryDiff:
        """Diff one repository against its recorded state."""
        diff = RepositoryDiff(path=repo_path)

        if not os.path.exists(repo_path):
            diff.files_changed = MISSING
            diff.changed = True
            return diff

        try:
            current_branch = await self.git.current_branch(repo_path)
            if current_branch != recorded.branch:
                diff.branch_diff = RefDiff(current=current_branch, snapshot=recorded.branch)

            current_commit = await self.git.current_commit(repo_path)
            if current_commit != recorded.commit:
                diff.commit_diff = RefDiff(current=current_commit, snapshot=recorded.commit)
                try:
                    diff.files_changed = await self.git.file_change_count(
                        repo_path, recorded.commit, "HEAD"
                    )
                except GitClientError as e:
                    # Snapshot commit may not exist locally
                    logger.debug(f"Cannot count changes since {recorded.commit!r} in {repo_path}: {e}")
                    diff.files_changed = MISSING

            diff.new_stashes = await self.git.stash_count(repo_path) - recorded.stash_count

            diff.changed = bool(
                diff.branch_diff
                or diff.commit_diff
                or diff.files_changed > 0
                or diff.new_stashes > 0
            )

        except Exception as e:
            logger.warning(
                "Repository diff failed",
                extra={"path": repo_path, "error": str(e)},
            )
            diff.files_changed = MISSING
            diff.changed = True

        return diff
