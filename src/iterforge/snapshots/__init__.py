"""Working-tree snapshots used as checkpoint rollback targets."""

from .git_snapshot import ChangedPaths, GitSnapshotAdapter, SnapshotAdapter
from .ref import SnapshotKind, SnapshotRef

__all__ = [
    "ChangedPaths",
    "GitSnapshotAdapter",
    "SnapshotAdapter",
    "SnapshotKind",
    "SnapshotRef",
]
