"""
Checkpoint store for iterating tasks.

A checkpoint pairs a working-tree snapshot with a copy of the task's
metrics at a given iteration. Each checkpoint is written to its own JSON
record under the checkpoints directory and is also listed in the task
state; the state file decides ordering and retention, the per-checkpoint
record keeps that checkpoint's metrics.

Create, prune and persist run as one sequential step. Do not interleave
calls for the same task.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional

from ..errors import NoRepoError, SnapshotError
from ..snapshots import SnapshotAdapter, SnapshotRef
from ..state.models import Checkpoint, CheckpointType, Metrics, TaskState, utc_now
from ..state.persistence import StatePersistence, write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINTS_DIR = ".forge/checkpoints"


def snapshot_label(iteration: int) -> str:
    """Label used for the snapshot of a given iteration."""
    return f"forge-checkpoint-iter-{iteration}"


class CheckpointStore:
    """Create, prune, list and roll back to checkpoints.

    Example:
        store = CheckpointStore(snapshots, persistence)
        checkpoint = store.create_checkpoint(state, CheckpointType.MANUAL)
        # ... later, when stuck ...
        store.rollback_to_latest_checkpoint(state)
    """

    def __init__(
        self,
        snapshots: SnapshotAdapter,
        persistence: StatePersistence,
        checkpoints_dir: str = DEFAULT_CHECKPOINTS_DIR,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize the store.

        Args:
            snapshots: Adapter used to capture and restore the working tree
            persistence: Where the task state is saved after each change
            checkpoints_dir: Directory for per-checkpoint records
            id_factory: Generates checkpoint ids (defaults to uuid4)
        """
        self.snapshots = snapshots
        self.persistence = persistence
        self.checkpoints_dir = Path(checkpoints_dir)
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def _get_checkpoint_path(self, checkpoint_id: str) -> Path:
        """Get the file path for a checkpoint record."""
        return self.checkpoints_dir / f"{checkpoint_id}.json"

    def create_checkpoint(
        self,
        state: TaskState,
        checkpoint_type: CheckpointType = CheckpointType.AUTO,
    ) -> Checkpoint:
        """Capture the working tree and record a checkpoint.

        A failed snapshot does not prevent the checkpoint: it is recorded
        with a ``none`` reference so it still restores metrics and
        iteration position.

        Returns:
            The new checkpoint

        Raises:
            PersistenceError: If the record or the state could not be written.
        """
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)

        label = snapshot_label(state.iteration.current)
        try:
            ref = self.snapshots.take_snapshot(label)
        except NoRepoError as e:
            logger.warning(f"No snapshot for checkpoint at iteration {state.iteration.current}: {e}")
            ref = SnapshotRef.none()
        except SnapshotError as e:
            logger.error(f"Snapshot failed for checkpoint at iteration {state.iteration.current}: {e}")
            ref = SnapshotRef.none()

        checkpoint = Checkpoint(
            id=self.id_factory(),
            iteration=state.iteration.current,
            created_at=utc_now(),
            type=checkpoint_type,
            snapshot_ref=ref,
            metrics=state.metrics.copy(),
        )

        write_json_atomic(self._get_checkpoint_path(checkpoint.id), checkpoint.to_dict())

        state.checkpoints.items.append(checkpoint)
        self.prune_old_checkpoints(state)
        self.persistence.save_state(state)

        logger.info(
            f"Created {checkpoint_type.value} checkpoint {checkpoint.id} "
            f"at iteration {checkpoint.iteration} (snapshot: {ref})"
        )
        return checkpoint

    def rollback_to_checkpoint(self, checkpoint_id: str, state: TaskState) -> bool:
        """Roll the task back to a checkpoint.

        If the snapshot does not apply cleanly the state rollback still
        happens, so the working tree can disagree with the restored
        metrics and history. This best-effort behavior is intentional.

        Returns:
            False if no checkpoint has that id (state is left untouched)
        """
        checkpoint = self._find(checkpoint_id, state)
        if checkpoint is None:
            logger.error(f"Checkpoint not found: {checkpoint_id}")
            return False

        if not self.snapshots.restore_snapshot(checkpoint.snapshot_ref):
            logger.error(
                f"Could not restore snapshot {checkpoint.snapshot_ref} for checkpoint "
                f"{checkpoint.id}; rolling back state only"
            )

        state.metrics = self._load_metrics(checkpoint)
        state.iteration.current = checkpoint.iteration
        state.iteration.history = [
            r for r in state.iteration.history if r.n <= checkpoint.iteration
        ]
        self._discard_after(checkpoint, state)

        self.persistence.save_state(state)
        logger.info(f"Rolled back to checkpoint {checkpoint.id} (iteration {checkpoint.iteration})")
        return True

    def rollback_to_latest_checkpoint(self, state: TaskState) -> bool:
        """Roll back to the checkpoint with the highest iteration."""
        if not state.checkpoints.items:
            return False

        latest = max(state.checkpoints.items, key=lambda c: c.iteration)
        return self.rollback_to_checkpoint(latest.id, state)

    def prune_old_checkpoints(self, state: TaskState) -> int:
        """Drop the oldest checkpoints beyond the retention count.

        Returns:
            Number of checkpoints removed
        """
        keep = state.checkpoints.auto.keep
        items = state.checkpoints.items
        if len(items) <= keep:
            return 0

        items.sort(key=lambda c: c.iteration)
        removed = 0
        while len(items) > keep:
            oldest = items.pop(0)
            self._delete_record(oldest)
            removed += 1

        return removed

    def list_checkpoints(self, state: TaskState) -> list[Checkpoint]:
        """All checkpoints, newest iteration first."""
        return sorted(state.checkpoints.items, key=lambda c: c.iteration, reverse=True)

    def _find(self, checkpoint_id: str, state: TaskState) -> Optional[Checkpoint]:
        for checkpoint in state.checkpoints.items:
            if checkpoint.id == checkpoint_id:
                return checkpoint
        return None

    def _discard_after(self, checkpoint: Checkpoint, state: TaskState) -> None:
        """Drop checkpoints taken past the rollback target; their history is gone."""
        kept = []
        for item in state.checkpoints.items:
            if item.iteration > checkpoint.iteration:
                self._delete_record(item)
            else:
                kept.append(item)
        state.checkpoints.items = kept

    def _load_metrics(self, checkpoint: Checkpoint) -> Metrics:
        """Metrics from the checkpoint's own record, falling back to the state copy."""
        path = self._get_checkpoint_path(checkpoint.id)
        if path.exists():
            try:
                with open(path) as f:
                    return Checkpoint.from_dict(json.load(f)).metrics
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Unreadable checkpoint record {path}: {e}")
        return checkpoint.metrics.copy()

    def _delete_record(self, checkpoint: Checkpoint) -> None:
        """Remove a checkpoint's record and its snapshot; either may already be gone."""
        path = self._get_checkpoint_path(checkpoint.id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Checkpoint record already removed: {path}")

        if checkpoint.snapshot_ref.has_snapshot and not self.snapshots.drop_snapshot(
            checkpoint.snapshot_ref
        ):
            logger.debug(f"Snapshot {checkpoint.snapshot_ref} for {checkpoint.id} not dropped")

        logger.info(f"Pruned checkpoint {checkpoint.id} (iteration {checkpoint.iteration})")
