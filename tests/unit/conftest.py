"""
Shared fixtures for envsnap unit tests.

Provides deterministic collaborators:
- FakeGitClient: scripted repository state per path
- FixedClock: fixed wall clock, stepping monotonic clock
- StaticEnvironmentReader: fixed host identity
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from devenv.envsnap.git.client import GitClientError, GitStatus

FIXED_NOW = datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class FakeGitClient:
    """GitClient with per-path scripted state and injectable failures."""

    def __init__(self) -> None:
        self.repos: dict[str, dict] = {}
        self.failures: set[tuple[str, str]] = set()

    def add_repo(
        self,
        path: str | Path,
        branch: str = "main",
        commit: str = "a" * 40,
        clean: bool = True,
        stashes: int = 0,
        remote: str | None = None,
        changes: int = 0,
        ahead: int = 0,
        behind: int = 0,
    ) -> None:
        self.repos[str(path)] = {
            "branch": branch,
            "commit": commit,
            "clean": clean,
            "stashes": stashes,
            "remote": remote,
            "changes": changes,
            "ahead": ahead,
            "behind": behind,
        }

    def fail(self, path: str | Path, operation: str) -> None:
        self.failures.add((str(path), operation))

    def _repo(self, path: str, operation: str) -> dict:
        if (path, operation) in self.failures:
            raise GitClientError(f"Injected {operation} failure for {path}")
        if path not in self.repos:
            raise GitClientError(f"not a git repository: {path}")
        return self.repos[path]

    async def status(self, path: str) -> GitStatus:
        repo = self._repo(path, "status")
        return GitStatus(
            branch=repo["branch"],
            clean=repo["clean"],
            ahead=repo["ahead"],
            behind=repo["behind"],
        )

    async def current_branch(self, path: str) -> str:
        return self._repo(path, "branch")["branch"]

    async def current_commit(self, path: str) -> str:
        return self._repo(path, "commit")["commit"]

    async def remote_url(self, path: str, remote: str = "origin") -> str | None:
        return self._repo(path, "remote")["remote"]

    async def stash_count(self, path: str) -> int:
        return self._repo(path, "stash")["stashes"]

    async def file_change_count(self, path: str, from_commit: str, to_commit: str = "HEAD") -> int:
        return self._repo(path, "changes")["changes"]


class FixedClock:
    """Clock frozen at FIXED_NOW; monotonic advances 0.25s per read."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self._now = now
        self._ticks = 0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        self._ticks += 1
        return self._ticks * 0.25


class StaticEnvironmentReader:
    """EnvironmentReader returning fixed values."""

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    def platform(self) -> str:
        return "linux"

    def runtime_version(self) -> str:
        return "3.12.1"

    def package_manager_version(self) -> str:
        return "8.15.0"

    def username(self) -> str:
        return "dev"

    def hostname(self) -> str:
        return "devbox"

    def cwd(self) -> str:
        return self._cwd


def make_repo_dir(root: Path, name: str, files: dict[str, str] | None = None) -> Path:
    """Create a directory that looks like a git working tree."""
    repo = root / name
    (repo / ".git").mkdir(parents=True)
    (repo / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    for relative, content in (files or {"README.md": f"# {name}\n"}).items():
        target = repo / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    return repo


@pytest.fixture
def git():
    """Fresh fake git client."""
    return FakeGitClient()


@pytest.fixture
def clock():
    """Fixed clock."""
    return FixedClock()


@pytest.fixture
def reader():
    """Static environment reader."""
    return StaticEnvironmentReader()


@pytest.fixture
def make_repo():
    """Factory creating fake git working trees: make_repo(root, name, files)."""
    return make_repo_dir
