"""
Catalog module for envsnap.

This module handles snapshot metadata documents in the object store:
- Draft/finalized metadata model and JSON format
- Key layout and lookup by snapshot id
- Listing with tolerance for corrupt documents

Invariants:
    - Only finalized metadata is persisted
    - Listing never fails because of one bad document
"""

from .catalog import (
    ARCHIVE_SUFFIX,
    METADATA_SUFFIX,
    SnapshotCatalog,
    archive_key_for,
)
from .metadata import (
    InvalidMetadataError,
    SnapshotDraft,
    SnapshotListEntry,
    SnapshotListing,
    SnapshotMetadata,
)

__all__ = [
    "SnapshotCatalog",
    "archive_key_for",
    "ARCHIVE_SUFFIX",
    "METADATA_SUFFIX",
    "SnapshotDraft",
    "SnapshotMetadata",
    "SnapshotListEntry",
    "SnapshotListing",
    "InvalidMetadataError",
]
