"""
iterforge: checkpoints and stuck recovery for iterating agent loops.

This package provides:
- Task state for a long-running agent loop, persisted as JSON
- Working-tree snapshots backed by git stash
- Checkpoints with retention and rollback
- Stuck detection (same output, no progress, repeating error)
- Recovery strategies that steer the next prompt
- A state-file watcher that broadcasts updates to dashboards

Quick Start:
    from iterforge import (
        CheckpointStore,
        Config,
        GitSnapshotAdapter,
        IterationLoop,
        RecoveryEngine,
        StatePersistence,
        StuckDetector,
    )

    config = Config("forge.yaml")
    state = config.build_state("Make the test suite pass")
    persistence = StatePersistence(config.path("state_file"))
    snapshots = GitSnapshotAdapter()
    store = CheckpointStore(snapshots, persistence, config.path("checkpoints_dir"))
    loop = IterationLoop(state, persistence, store, StuckDetector(),
                         RecoveryEngine(store), snapshots)

    decision = loop.complete_iteration(agent_output, criteria_results)
"""

__version__ = "0.1.0"

from iterforge.checkpoints import CheckpointStore
from iterforge.config import Config
from iterforge.criteria import (
    CriteriaMode,
    CriterionDefinition,
    CriterionResult,
    calculate_score,
    is_complete,
)
from iterforge.errors import (
    CheckpointNotFoundError,
    ConfigError,
    ForgeError,
    NoRepoError,
    PersistenceError,
    RestoreConflictError,
    SnapshotError,
)
from iterforge.loop import IterationLoop, LoopAction, LoopDecision
from iterforge.recovery import (
    RecoveryAction,
    RecoveryEngine,
    RecoveryResult,
    StuckDetector,
    StuckPattern,
    StuckResult,
)
from iterforge.snapshots import GitSnapshotAdapter, SnapshotAdapter, SnapshotKind, SnapshotRef
from iterforge.state import (
    Checkpoint,
    CheckpointType,
    IterationOutcome,
    IterationRecord,
    Metrics,
    StatePersistence,
    StuckStrategy,
    TaskState,
    TaskStatus,
)
from iterforge.watcher import StateWatchRegistry

__all__ = [
    "__version__",
    # State
    "Checkpoint",
    "CheckpointType",
    "IterationOutcome",
    "IterationRecord",
    "Metrics",
    "StatePersistence",
    "StuckStrategy",
    "TaskState",
    "TaskStatus",
    # Snapshots and checkpoints
    "CheckpointStore",
    "GitSnapshotAdapter",
    "SnapshotAdapter",
    "SnapshotKind",
    "SnapshotRef",
    # Stuck detection and recovery
    "RecoveryAction",
    "RecoveryEngine",
    "RecoveryResult",
    "StuckDetector",
    "StuckPattern",
    "StuckResult",
    # Criteria
    "CriteriaMode",
    "CriterionDefinition",
    "CriterionResult",
    "calculate_score",
    "is_complete",
    # Loop, config and watcher
    "Config",
    "IterationLoop",
    "LoopAction",
    "LoopDecision",
    "StateWatchRegistry",
    # Errors
    "CheckpointNotFoundError",
    "ConfigError",
    "ForgeError",
    "NoRepoError",
    "PersistenceError",
    "RestoreConflictError",
    "SnapshotError",
]
