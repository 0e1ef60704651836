"""Lifecycle stages shared by create and restore.

    Initializing -> Preparing -> Building/Fetching -> Transferring
                 -> Finalizing -> Succeeded | Failed
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Stage(Enum):
    INITIALIZING = "initializing"
    PREPARING = "preparing"
    BUILDING = "building"
    FETCHING = "fetching"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageTracker:
    """Records the current stage of one operation and logs transitions."""

    def __init__(self, operation: str, subject: str) -> None:
        self.operation = operation
        self.subject = subject
        self.stage = Stage.INITIALIZING
        self.failed_stage: Stage | None = None

    def enter(self, stage: Stage) -> None:
        logger.debug(
            f"{self.operation} {self.subject}: {self.stage.value} -> {stage.value}",
            extra={"operation": self.operation, "stage": stage.value},
        )
        self.stage = stage

    def fail(self, error: BaseException) -> None:
        self.failed_stage = self.stage
        logger.error(
            f"{self.operation} {self.subject} failed during {self.stage.value}: {error}",
            extra={"operation": self.operation, "stage": self.stage.value},
        )
        self.stage = Stage.FAILED
