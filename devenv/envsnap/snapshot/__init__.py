"""
Snapshot lifecycle for envsnap.

This module sequences the snapshot operations:
- SnapshotOrchestrator: create / list / restore / diff / delete
- TransferCoordinator: single-put or multipart uploads with abort on failure
- RestoreCoordinator: download, verify, conflict-check and extract
- DiffEngine: live repository state versus a snapshot

Invariants:
    - Multipart parts are uploaded strictly in order
    - A failed multipart upload is aborted exactly once
"""

from .diff import MISSING, DiffEngine, DiffResult, DiffSummary, RefDiff, RepositoryDiff
from .orchestrator import CreateResult, DeleteResult, SnapshotOrchestrator, validate_snapshot_name
from .restore import RestoreCoordinator, RestoreResult
from .stages import Stage, StageTracker
from .transfer import MULTIPART_THRESHOLD, PART_SIZE, TransferCoordinator, UploadReceipt

__all__ = [
    # Orchestration
    "SnapshotOrchestrator",
    "CreateResult",
    "DeleteResult",
    "validate_snapshot_name",
    # Transfer
    "TransferCoordinator",
    "UploadReceipt",
    "MULTIPART_THRESHOLD",
    "PART_SIZE",
    # Restore
    "RestoreCoordinator",
    "RestoreResult",
    # Diff
    "DiffEngine",
    "DiffResult",
    "DiffSummary",
    "RepositoryDiff",
    "RefDiff",
    "MISSING",
    # Stages
    "Stage",
    "StageTracker",
]
