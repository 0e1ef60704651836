"""
Host and runtime identity for envsnap.

Ambient process state (clock, environment variables, working directory,
tool versions) is read through two injected capabilities so that snapshot
ids, timestamps and environment identity are deterministic under test:

    Clock              - wall-clock and monotonic time
    EnvironmentReader  - OS, runtime, package manager, user, host, cwd

Invariants:
    - EnvironmentIdentity is captured once per snapshot and never mutated
    - Snapshot ids are unique even for identical names and timestamps
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
import socket
import subprocess
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class Clock(Protocol):
    """Source of time."""

    def now(self) -> datetime:
        """Current UTC time (timezone-aware)."""
        ...

    def monotonic(self) -> float:
        """Monotonic seconds, for durations."""
        ...


class SystemClock:
    """Clock backed by the process clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class EnvironmentReader(Protocol):
    """Source of host/runtime facts."""

    def platform(self) -> str: ...

    def runtime_version(self) -> str: ...

    def package_manager_version(self) -> str: ...

    def username(self) -> str: ...

    def hostname(self) -> str: ...

    def cwd(self) -> str: ...


class OsEnvironmentReader:
    """EnvironmentReader backed by the running process.

    Attributes:
        package_manager: Executable queried with ``--version``
    """

    def __init__(self, package_manager: str = "pnpm", timeout_seconds: int = 10) -> None:
        self.package_manager = package_manager
        self.timeout_seconds = timeout_seconds

    def platform(self) -> str:
        return sys.platform

    def runtime_version(self) -> str:
        return platform.python_version()

    def package_manager_version(self) -> str:
        try:
            result = subprocess.run(
                [self.package_manager, "--version"],
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"{self.package_manager} version unavailable: {e}")
            return UNKNOWN
        return result.stdout.strip() or UNKNOWN

    def username(self) -> str:
        user = os.environ.get("USER") or os.environ.get("USERNAME")
        if user:
            return user
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return UNKNOWN

    def hostname(self) -> str:
        return socket.gethostname()

    def cwd(self) -> str:
        return os.getcwd()


@dataclass(frozen=True)
class EnvironmentIdentity:
    """Host/runtime identity recorded in a snapshot.

    Attributes:
        os: Platform string (linux, darwin, win32)
        runtime_version: Language runtime version
        package_manager_version: Package manager version or "unknown"
        username: User who created the snapshot
        hostname: Host the snapshot was created on
    """

    os: str
    runtime_version: str
    package_manager_version: str
    username: str
    hostname: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "os": self.os,
            "runtimeVersion": self.runtime_version,
            "packageManagerVersion": self.package_manager_version,
            "username": self.username,
            "hostname": self.hostname,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EnvironmentIdentity:
        """Create from dictionary.

        Accepts the nodeVersion/pnpmVersion keys written by earlier tooling.
        """
        return cls(
            os=data["os"],
            runtime_version=data.get("runtimeVersion", data.get("nodeVersion", UNKNOWN)),
            package_manager_version=data.get(
                "packageManagerVersion", data.get("pnpmVersion", UNKNOWN)
            ),
            username=data.get("username", UNKNOWN),
            hostname=data.get("hostname", UNKNOWN),
        )


class EnvironmentProbe:
    """Captures EnvironmentIdentity from an EnvironmentReader."""

    def __init__(self, reader: EnvironmentReader) -> None:
        self.reader = reader

    def capture(self) -> EnvironmentIdentity:
        return EnvironmentIdentity(
            os=self.reader.platform(),
            runtime_version=self.reader.runtime_version(),
            package_manager_version=self.reader.package_manager_version(),
            username=self.reader.username(),
            hostname=self.reader.hostname(),
        )


def _random_token() -> str:
    return uuid.uuid4().hex[:8]


def generate_snapshot_id(
    name: str,
    clock: Clock,
    token_factory: Callable[[], str] = _random_token,
) -> str:
    """Build a snapshot id: ``<name>-<epoch ms>-<random suffix>``."""
    epoch_ms = int(clock.now().timestamp() * 1000)
    return f"{name}-{epoch_ms}-{token_factory()}"


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by format_timestamp (or any ISO-8601 string).

    Raises:
        ValueError: If value is not ISO-8601
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
