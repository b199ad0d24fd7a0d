"""Shared fixtures for iterforge tests."""

from typing import Optional

import pytest

from iterforge.checkpoints import CheckpointStore
from iterforge.criteria import CriterionResult
from iterforge.snapshots import ChangedPaths, SnapshotAdapter, SnapshotRef
from iterforge.state import IterationOutcome, IterationRecord, StatePersistence, TaskState


class FakeSnapshots(SnapshotAdapter):
    """In-memory snapshot adapter that records every call."""

    def __init__(self):
        self.taken: list[str] = []
        self.restored: list[SnapshotRef] = []
        self.dropped: list[SnapshotRef] = []
        self.restore_result = True
        self.fail_with: Optional[Exception] = None
        self.changes = ChangedPaths()

    def take_snapshot(self, label: str) -> SnapshotRef:
        self.taken.append(label)
        if self.fail_with is not None:
            raise self.fail_with
        return SnapshotRef.stash(f"sha-{len(self.taken)}")

    def restore_snapshot(self, ref: SnapshotRef) -> bool:
        self.restored.append(ref)
        return self.restore_result

    def drop_snapshot(self, ref: SnapshotRef) -> bool:
        self.dropped.append(ref)
        return True

    def changed_paths(self) -> ChangedPaths:
        return self.changes


@pytest.fixture
def fake_snapshots():
    return FakeSnapshots()


@pytest.fixture
def persistence(tmp_path):
    return StatePersistence(str(tmp_path / ".forge" / "forge-state.json"))


@pytest.fixture
def checkpoints_dir(tmp_path):
    return tmp_path / ".forge" / "checkpoints"


@pytest.fixture
def store(fake_snapshots, persistence, checkpoints_dir):
    ids = iter(f"cp-{i}" for i in range(1, 1000))
    return CheckpointStore(
        fake_snapshots,
        persistence,
        checkpoints_dir=str(checkpoints_dir),
        id_factory=lambda: next(ids),
    )


@pytest.fixture
def state():
    return TaskState.create("Make the tests pass", name="tests", task_id="task-1")


@pytest.fixture
def make_record():
    """Factory for iteration records."""

    def _make(
        n: int,
        summary: str = "did something",
        error: Optional[str] = None,
        files_changed: Optional[list] = None,
        passed: Optional[list] = None,
    ) -> IterationRecord:
        results = [
            CriterionResult(criterion_id=f"c{i}", name=f"c{i}", passed=p)
            for i, p in enumerate(passed or [])
        ]
        return IterationRecord(
            n=n,
            started_at="2026-01-01T00:00:00+00:00",
            ended_at="2026-01-01T00:01:00+00:00",
            outcome=IterationOutcome.ERROR if error else IterationOutcome.PROGRESS,
            summary=summary,
            criteria_results=results,
            files_changed=list(files_changed or []),
            error=error,
        )

    return _make


@pytest.fixture
def add_history():
    """Append records to a state, moving the iteration counter along."""

    def _add(state: TaskState, *records: IterationRecord) -> TaskState:
        for record in records:
            state.iteration.current = max(state.iteration.current, record.n)
            state.record_iteration(record)
        return state

    return _add
