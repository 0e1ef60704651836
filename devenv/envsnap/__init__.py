"""
envsnap - Point-in-time snapshots of multi-repository development environments.

This package captures the git state (and, depending on preset, dependency
trees) of a set of repositories into one compressed archive stored in an
S3-compatible object store, and later restores or diffs against it:
- Git state inspection per repository
- Preset-driven tar.gz archives
- Checksum-verified, chunked uploads
- JSON metadata documents for listing and diffing

Architecture:
    ┌──────────────┐   ┌──────────────┐   ┌──────────────┐
    │ Environment  │   │  Repository  │   │   Archive    │
    │    Probe     │   │  Inspector   │   │   Builder    │
    └──────┬───────┘   └──────┬───────┘   └──────┬───────┘
           │                  │                  │
           ▼                  ▼                  ▼
    ┌─────────────────────────────────────────────────────┐
    │               SnapshotOrchestrator                  │
    │        create / list / restore / diff / delete      │
    └───────┬───────────────┬──────────────┬──────────────┘
            │               │              │
            ▼               ▼              ▼
    ┌──────────────┐ ┌─────────────┐ ┌──────────────┐
    │   Catalog    │ │  Transfer   │ │ Diff/Restore │
    │  (metadata)  │ │(put/multip.)│ │ coordinators │
    └──────┬───────┘ └──────┬──────┘ └──────────────┘
           │                │
           ▼                ▼
    ┌─────────────────────────────┐
    │  Object store (S3 / MinIO)  │
    └─────────────────────────────┘

Storage layout:
    s3://<bucket>/snapshots/<name>/<id>.tar.gz
    s3://<bucket>/snapshots/<name>/<id>.metadata.json

Invariants:
    - Only finalized metadata (checksum and size present) is ever uploaded
    - Multipart uploads that fail are aborted before the error propagates
    - Per-repository inspection failures never abort a multi-repo operation
    - Temporary working directories are removed on every exit path

How to change safely:
    - Add new metadata fields, don't remove existing ones
    - Keep exclusion matching substring-based
    - Test restore with old snapshots before format changes
"""

from ._version import __version__

__all__ = ["__version__"]
