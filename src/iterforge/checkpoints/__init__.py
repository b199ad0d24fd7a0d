"""Checkpoint creation, retention and rollback."""

from .manager import DEFAULT_CHECKPOINTS_DIR, CheckpointStore, snapshot_label

__all__ = ["CheckpointStore", "DEFAULT_CHECKPOINTS_DIR", "snapshot_label"]
