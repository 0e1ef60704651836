"""
Repository inspection for envsnap.

The RepositoryInspector reads one repository's git state. Inspection is
best-effort: every sub-query may fail on its own and only degrades the
fields it feeds.

    status         -> branch, dirty, ahead, behind   (failure: whole state degraded)
    commit/remote  -> commit, remote_url              (failure: "" / None)
    stash list     -> stash_count                     (failure: 0)

Invariants:
    - inspect() never raises for git failures; it returns a RepositoryState
    - inspect_many() returns states in the order of the input paths
"""

from __future__ import annotations

import asyncio
import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from ..outcome import Degraded, Ok, Outcome, attempt
from .client import GitClient, GitClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryState:
    """One inspected repository.

    Attributes:
        path: Repository path as given
        name: Package name from its manifest, else the directory name
        branch: Current branch ("" when unknown)
        commit: HEAD commit hash ("" when unknown)
        dirty: Whether the working tree has changes
        stash_count: Number of stashes
        remote_url: origin URL, if configured
        ahead: Commits ahead of upstream
        behind: Commits behind upstream
        degraded: Sub-queries that fell back to defaults (not persisted)
    """

    path: str
    name: str
    branch: str = ""
    commit: str = ""
    dirty: bool = False
    stash_count: int = 0
    remote_url: str | None = None
    ahead: int = 0
    behind: int = 0
    degraded: tuple[str, ...] = field(default=(), compare=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "branch": self.branch,
            "commit": self.commit,
            "dirty": self.dirty,
            "stashCount": self.stash_count,
        }
        if self.remote_url is not None:
            data["remoteUrl"] = self.remote_url
        data["ahead"] = self.ahead
        data["behind"] = self.behind
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryState:
        return cls(
            path=data["path"],
            name=data["name"],
            branch=data.get("branch", ""),
            commit=data.get("commit", ""),
            dirty=bool(data.get("dirty", False)),
            stash_count=int(data.get("stashCount", 0)),
            remote_url=data.get("remoteUrl"),
            ahead=int(data.get("ahead", 0)),
            behind=int(data.get("behind", 0)),
        )


def resolve_package_name(repo_path: str) -> str:
    """Package name declared by the repository, else its directory name.

    Checks package.json ``name`` then pyproject.toml ``[project].name``.
    """
    path = Path(repo_path)
    fallback = path.name or str(path)

    package_json = path / "package.json"
    if package_json.is_file():
        try:
            name = json.loads(package_json.read_text(encoding="utf-8")).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError) as e:
            logger.debug(f"Unreadable package.json in {repo_path}: {e}")

    pyproject = path / "pyproject.toml"
    if pyproject.is_file():
        try:
            with open(pyproject, "rb") as f:
                name = tomllib.load(f).get("project", {}).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, tomllib.TOMLDecodeError, AttributeError) as e:
            logger.debug(f"Unreadable pyproject.toml in {repo_path}: {e}")

    return fallback


class RepositoryInspector:
    """Reads RepositoryState through a GitClient.

    Example:
        >>> inspector = RepositoryInspector(SubprocessGitClient())
        >>> state = await inspector.inspect("/src/api")
        >>> state.branch, state.dirty
        ('main', False)
    """

    def __init__(self, git: GitClient, max_concurrent: int = 8) -> None:
        self.git = git
        self.max_concurrent = max_concurrent

    async def _head_and_remote(self, path: str) -> tuple[str, str | None]:
        commit = await self.git.current_commit(path)
        remote: Outcome[str | None] = await attempt(self.git.remote_url(path), None, GitClientError)
        return commit, remote.value

    async def inspect(self, path: str) -> RepositoryState:
        """Inspect one repository.

        Args:
            path: Repository path

        Returns:
            RepositoryState, degraded where git queries failed
        """
        name = await asyncio.get_running_loop().run_in_executor(None, resolve_package_name, path)

        status = await attempt(self.git.status(path), None, GitClientError)
        if isinstance(status, Degraded):
            logger.warning(
                "Repository inspection degraded",
                extra={"path": path, "reason": status.reason},
            )
            return RepositoryState(path=path, name=name, degraded=("status",))

        head = await attempt(self._head_and_remote(path), ("", None), GitClientError)
        stashes = await attempt(self.git.stash_count(path), 0, GitClientError)

        degraded = tuple(
            label
            for label, outcome in (("commit", head), ("stash", stashes))
            if not isinstance(outcome, Ok)
        )
        if degraded:
            logger.info(
                "Partial repository inspection",
                extra={"path": path, "degraded": list(degraded)},
            )

        commit, remote_url = head.value
        git_status = status.value
        return RepositoryState(
            path=path,
            name=name,
            branch=git_status.branch,
            commit=commit,
            dirty=not git_status.clean,
            stash_count=stashes.value,
            remote_url=remote_url,
            ahead=git_status.ahead,
            behind=git_status.behind,
            degraded=degraded,
        )

    async def inspect_many(self, paths: Sequence[str]) -> list[RepositoryState]:
        """Inspect repositories concurrently; results follow input order."""
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _bounded(path: str) -> RepositoryState:
            async with semaphore:
                return await self.inspect(path)

        return list(await asyncio.gather(*(_bounded(p) for p in paths)))
