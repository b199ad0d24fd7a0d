"""Task state model and its persistence."""

from .models import (
    AutoCheckpointConfig,
    BudgetConfig,
    Checkpoint,
    CheckpointSettings,
    CheckpointType,
    CriteriaConfig,
    IterationOutcome,
    IterationRecord,
    IterationState,
    Metrics,
    StuckDetectionConfig,
    StuckStrategy,
    TaskInfo,
    TaskState,
    TaskStatus,
)
from .persistence import StatePersistence

__all__ = [
    "AutoCheckpointConfig",
    "BudgetConfig",
    "Checkpoint",
    "CheckpointSettings",
    "CheckpointType",
    "CriteriaConfig",
    "IterationOutcome",
    "IterationRecord",
    "IterationState",
    "Metrics",
    "StatePersistence",
    "StuckDetectionConfig",
    "StuckStrategy",
    "TaskInfo",
    "TaskState",
    "TaskStatus",
]
