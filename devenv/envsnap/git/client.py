"""Thin async git client used for repository inspection and diffing.

All interaction with the ``git`` binary goes through :func:`subprocess.run`
in a worker thread, with explicit timeouts and structured error handling so
that callers receive :class:`GitClientError` rather than raw subprocess
failures.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from abc import abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30  # seconds

# Hex SHAs (4-40 chars) and safe ref names (branches, tags, HEAD~2, ...).
_GIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")
_GIT_REF_RE = re.compile(r"^[a-zA-Z0-9_./@~^{}\-]+$")


class GitClientError(Exception):
    """Raised when a git operation fails or the path is not a repository."""


def _validate_git_ref(ref: str) -> None:
    """Reject refs that could be interpreted as options or shell syntax."""
    if not ref:
        raise GitClientError("Git ref cannot be empty")
    if ref.startswith("-") or not (_GIT_SHA_RE.match(ref) or _GIT_REF_RE.match(ref)):
        raise GitClientError(f"Invalid git ref: {ref!r}")


@dataclass(frozen=True)
class GitStatus:
    """Branch and working-tree summary of one repository."""

    branch: str
    clean: bool
    ahead: int = 0
    behind: int = 0


@runtime_checkable
class GitClient(Protocol):
    """Protocol for the version-control collaborator."""

    @abstractmethod
    async def status(self, path: str) -> GitStatus:
        """Branch name, clean/dirty flag and ahead/behind counts.

        Raises:
            GitClientError: If path is not a repository
        """
        ...

    @abstractmethod
    async def current_branch(self, path: str) -> str:
        ...

    @abstractmethod
    async def current_commit(self, path: str) -> str:
        ...

    @abstractmethod
    async def remote_url(self, path: str, remote: str = "origin") -> str | None:
        """URL of a remote, or None when the remote is not configured."""
        ...

    @abstractmethod
    async def stash_count(self, path: str) -> int:
        ...

    @abstractmethod
    async def file_change_count(self, path: str, from_commit: str, to_commit: str = "HEAD") -> int:
        """Number of files that differ between two commits.

        Raises:
            GitClientError: If either commit cannot be resolved locally
        """
        ...


class SubprocessGitClient:
    """GitClient backed by the ``git`` executable.

    Example:
        >>> git = SubprocessGitClient()
        >>> status = await git.status("/src/api")
        >>> status.branch
        'main'
    """

    def __init__(self, timeout_seconds: int = _DEFAULT_TIMEOUT, executable: str = "git") -> None:
        self.timeout_seconds = timeout_seconds
        self.executable = executable

    def _run_git(
        self,
        args: list[str],
        cwd: str,
        allowed_exit_codes: tuple[int, ...] = (0,),
    ) -> subprocess.CompletedProcess[str]:
        """Execute a git command and return the completed process.

        Raises:
            GitClientError: On a disallowed exit code, timeout, or if git cannot be started.
        """
        cmd = [self.executable, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitClientError(f"git command timed out after {self.timeout_seconds}s: {' '.join(cmd)}") from exc
        except FileNotFoundError as exc:
            raise GitClientError(f"git executable or directory not found: {exc}") from exc
        except NotADirectoryError as exc:
            raise GitClientError(f"Not a directory: {cwd}") from exc

        if result.returncode not in allowed_exit_codes:
            stderr = (result.stderr or "").strip()
            raise GitClientError(f"git command failed: {' '.join(cmd)}\nExit code {result.returncode}: {stderr}")
        return result

    async def _git(
        self,
        args: list[str],
        cwd: str,
        allowed_exit_codes: tuple[int, ...] = (0,),
    ) -> subprocess.CompletedProcess[str]:
        return await asyncio.get_running_loop().run_in_executor(
            None,
            partial(self._run_git, args, cwd, allowed_exit_codes),
        )

    async def status(self, path: str) -> GitStatus:
        result = await self._git(["status", "--porcelain=v2", "--branch"], path)
        return parse_porcelain_status(result.stdout)

    async def current_branch(self, path: str) -> str:
        result = await self._git(["rev-parse", "--abbrev-ref", "HEAD"], path)
        return result.stdout.strip()

    async def current_commit(self, path: str) -> str:
        result = await self._git(["rev-parse", "HEAD"], path)
        return result.stdout.strip()

    async def remote_url(self, path: str, remote: str = "origin") -> str | None:
        # `git config --get` exits 1 when the key is unset.
        result = await self._git(
            ["config", "--get", f"remote.{remote}.url"],
            path,
            allowed_exit_codes=(0, 1),
        )
        url = result.stdout.strip()
        return url or None

    async def stash_count(self, path: str) -> int:
        result = await self._git(["stash", "list"], path)
        return len([line for line in result.stdout.splitlines() if line.strip()])

    async def file_change_count(self, path: str, from_commit: str, to_commit: str = "HEAD") -> int:
        _validate_git_ref(from_commit)
        _validate_git_ref(to_commit)
        result = await self._git(["diff", "--numstat", f"{from_commit}..{to_commit}"], path)
        return len([line for line in result.stdout.splitlines() if line.strip()])


def parse_porcelain_status(output: str) -> GitStatus:
    """Parse ``git status --porcelain=v2 --branch`` output."""
    branch = ""
    ahead = 0
    behind = 0
    clean = True

    for line in output.splitlines():
        if line.startswith("# branch.head "):
            head = line[len("# branch.head "):].strip()
            branch = "HEAD" if head == "(detached)" else head
        elif line.startswith("# branch.ab "):
            # Format: "# branch.ab +<ahead> -<behind>"
            parts = line.split()
            try:
                ahead = int(parts[2].lstrip("+"))
                behind = int(parts[3].lstrip("-"))
            except (IndexError, ValueError):
                logger.warning("Skipping unparseable branch.ab line: %s", line)
        elif line.startswith("#"):
            continue
        elif line.strip():
            clean = False

    return GitStatus(branch=branch, clean=clean, ahead=ahead, behind=behind)
