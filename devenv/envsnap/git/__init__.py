"""
Git integration for envsnap.

This module reads repository state through the git executable:
- GitClient protocol and SubprocessGitClient
- RepositoryInspector producing RepositoryState

Invariants:
    - Git failures surface as GitClientError from the client
    - The inspector absorbs GitClientError into degraded states
"""

from .client import GitClient, GitClientError, GitStatus, SubprocessGitClient, parse_porcelain_status
from .inspector import RepositoryInspector, RepositoryState, resolve_package_name

__all__ = [
    "GitClient",
    "GitClientError",
    "GitStatus",
    "SubprocessGitClient",
    "parse_porcelain_status",
    "RepositoryInspector",
    "RepositoryState",
    "resolve_package_name",
]
