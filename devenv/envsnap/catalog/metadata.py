"""
Snapshot metadata documents.

A snapshot's metadata goes through two states:

    SnapshotDraft     - assembled during create(); no checksum yet, never
                        uploaded, listed or diffed
    SnapshotMetadata  - finalized with the archive checksum and size; the
                        only form that is persisted or read back

Document format (UTF-8 JSON, 2-space indent):
    {
      "id": "...", "name": "...", "preset": "medium",
      "createdAt": "2026-01-01T00:00:00.000Z",
      "environment": {...},
      "repositories": [{...}],
      "checksum": "<sha256 hex>", "archiveSize": 1234,
      "description": "..."          (optional)
    }

Invariants:
    - SnapshotMetadata cannot be constructed with an empty checksum
    - A document with an empty checksum is a snapshot under construction
      and fails to parse

How to change safely:
    - Add new fields as optional, don't remove existing ones
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..archive.presets import Preset
from ..environment import EnvironmentIdentity, parse_timestamp
from ..errors import InvalidMetadataError
from ..git.inspector import RepositoryState


@dataclass(frozen=True)
class SnapshotDraft:
    """Snapshot metadata before the archive checksum is known."""

    id: str
    name: str
    preset: Preset
    created_at: str
    environment: EnvironmentIdentity
    repositories: tuple[RepositoryState, ...]
    description: str | None = None

    def finalize(self, checksum: str, archive_size: int) -> SnapshotMetadata:
        """Attach the archive digest and size.

        Raises:
            ValueError: If checksum is empty or size is negative
        """
        return SnapshotMetadata(
            id=self.id,
            name=self.name,
            preset=self.preset,
            created_at=self.created_at,
            environment=self.environment,
            repositories=self.repositories,
            checksum=checksum,
            archive_size=archive_size,
            description=self.description,
        )


@dataclass(frozen=True)
class SnapshotMetadata:
    """The durable record of one snapshot.

    Attributes:
        id: Unique snapshot id
        name: Human-readable name
        preset: Preset used at creation
        created_at: ISO-8601 creation timestamp
        environment: Host/runtime identity
        repositories: Repository states at snapshot time, in snapshot order
        checksum: SHA-256 of the compressed archive
        archive_size: Compressed archive size in bytes
        description: Optional free text
    """

    id: str
    name: str
    preset: Preset
    created_at: str
    environment: EnvironmentIdentity
    repositories: tuple[RepositoryState, ...]
    checksum: str
    archive_size: int
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.checksum:
            raise ValueError(f"Snapshot {self.id} has no checksum; it is not finalized")
        if self.archive_size < 0:
            raise ValueError(f"Snapshot {self.id} has a negative archive size")

    @property
    def created_at_datetime(self) -> datetime:
        return parse_timestamp(self.created_at)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "preset": self.preset.value,
            "createdAt": self.created_at,
            "environment": self.environment.to_dict(),
            "repositories": [repo.to_dict() for repo in self.repositories],
            "checksum": self.checksum,
            "archiveSize": self.archive_size,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotMetadata:
        """Create from dictionary.

        Raises:
            InvalidMetadataError: If required fields are missing or invalid
        """
        try:
            metadata = cls(
                id=data["id"],
                name=data["name"],
                preset=Preset(data["preset"]),
                created_at=data["createdAt"],
                environment=EnvironmentIdentity.from_dict(data["environment"]),
                repositories=tuple(RepositoryState.from_dict(r) for r in data["repositories"]),
                checksum=data.get("checksum", ""),
                archive_size=int(data["archiveSize"]),
                description=data.get("description"),
            )
            # createdAt must be ISO-8601; listing sorts on it
            parse_timestamp(metadata.created_at)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidMetadataError(f"Invalid snapshot metadata: {e}") from e
        return metadata

    @classmethod
    def from_json(cls, content: bytes | str) -> SnapshotMetadata:
        """Parse a metadata document.

        Raises:
            InvalidMetadataError: If the document is not valid JSON or not finalized
        """
        try:
            if isinstance(content, bytes):
                content = content.decode("utf-8")
            data = json.loads(content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidMetadataError(f"Metadata is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidMetadataError("Metadata document must be a JSON object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class SnapshotListEntry:
    """Summary row for listing."""

    id: str
    name: str
    preset: Preset
    created_at: str
    size: int
    os: str

    @classmethod
    def from_metadata(cls, metadata: SnapshotMetadata) -> SnapshotListEntry:
        return cls(
            id=metadata.id,
            name=metadata.name,
            preset=metadata.preset,
            created_at=metadata.created_at,
            size=metadata.archive_size,
            os=metadata.environment.os,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "preset": self.preset.value,
            "createdAt": self.created_at,
            "size": self.size,
            "os": self.os,
        }


@dataclass
class SnapshotListing:
    """Result of listing snapshots.

    Attributes:
        snapshots: Entries, newest first
        skipped: Metadata keys that could not be read or parsed
    """

    snapshots: list[SnapshotListEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.snapshots)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshots": [s.to_dict() for s in self.snapshots],
            "count": self.count,
        }
