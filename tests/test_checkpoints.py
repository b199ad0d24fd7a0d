"""Tests for the checkpoint store."""

import json

import pytest

from iterforge.checkpoints import CheckpointStore, snapshot_label
from iterforge.errors import NoRepoError, PersistenceError, SnapshotError
from iterforge.snapshots import SnapshotRef
from iterforge.state import CheckpointType, Metrics, StatePersistence


def advance_to(state, iteration):
    state.iteration.current = iteration


class TestCreateCheckpoint:
    """Tests for CheckpointStore.create_checkpoint."""

    def test_creates_record_and_persists(self, store, state, fake_snapshots, persistence, checkpoints_dir):
        advance_to(state, 10)
        state.metrics.add_usage(500, 12.0)

        checkpoint = store.create_checkpoint(state)

        assert checkpoint.id == "cp-1"
        assert checkpoint.iteration == 10
        assert checkpoint.type == CheckpointType.AUTO
        assert checkpoint.snapshot_ref == SnapshotRef.stash("sha-1")
        assert checkpoint.metrics.total_tokens == 500
        assert fake_snapshots.taken == ["forge-checkpoint-iter-10"]

        record = json.loads((checkpoints_dir / "cp-1.json").read_text())
        assert record["iteration"] == 10
        assert record["metrics"]["totalTokens"] == 500

        saved = persistence.load_state()
        assert [c.id for c in saved.checkpoints.items] == ["cp-1"]

    def test_metrics_are_a_copy(self, store, state):
        checkpoint = store.create_checkpoint(state)
        state.metrics.add_usage(100, 1.0)
        state.metrics.files_created.append("later.py")
        assert checkpoint.metrics.total_tokens == 0
        assert checkpoint.metrics.files_created == []

    def test_manual_type(self, store, state):
        assert store.create_checkpoint(state, CheckpointType.MANUAL).type == CheckpointType.MANUAL

    @pytest.mark.parametrize("error", [NoRepoError("no repo"), SnapshotError("stash failed")])
    def test_snapshot_failure_still_checkpoints(self, store, state, fake_snapshots, error):
        fake_snapshots.fail_with = error
        checkpoint = store.create_checkpoint(state)
        assert checkpoint.snapshot_ref == SnapshotRef.none()
        assert state.checkpoints.items == [checkpoint]

    def test_persistence_failure_propagates(self, fake_snapshots, state, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = CheckpointStore(
            fake_snapshots,
            StatePersistence(str(blocker / "state.json")),
            checkpoints_dir=str(tmp_path / "checkpoints"),
        )
        with pytest.raises(PersistenceError):
            store.create_checkpoint(state)

    def test_snapshot_label(self):
        assert snapshot_label(20) == "forge-checkpoint-iter-20"


class TestRetention:
    """Tests for pruning."""

    def test_keeps_newest(self, store, state, fake_snapshots, checkpoints_dir):
        for iteration in (10, 20, 30, 40):
            advance_to(state, iteration)
            store.create_checkpoint(state)

        assert [c.iteration for c in state.checkpoints.items] == [20, 30, 40]
        assert not (checkpoints_dir / "cp-1.json").exists()
        assert (checkpoints_dir / "cp-4.json").exists()
        assert fake_snapshots.dropped == [SnapshotRef.stash("sha-1")]

    def test_sixth_checkpoint_drops_smallest_iteration(self, store, state, checkpoints_dir):
        state.checkpoints.auto.keep = 5
        for iteration in (30, 10, 50, 20, 40):
            advance_to(state, iteration)
            store.create_checkpoint(state)

        advance_to(state, 60)
        store.create_checkpoint(state)

        assert len(state.checkpoints.items) == 5
        assert 10 not in [c.iteration for c in state.checkpoints.items]
        assert not (checkpoints_dir / "cp-2.json").exists()
        assert sorted(p.name for p in checkpoints_dir.iterdir()) == [
            "cp-1.json", "cp-3.json", "cp-4.json", "cp-5.json", "cp-6.json",
        ]

    def test_never_exceeds_keep(self, store, state):
        state.checkpoints.auto.keep = 2
        for iteration in range(1, 8):
            advance_to(state, iteration)
            store.create_checkpoint(state)
            assert len(state.checkpoints.items) <= 2

    def test_prune_returns_count_and_tolerates_missing_record(self, store, state, checkpoints_dir):
        state.checkpoints.auto.keep = 5
        for iteration in (1, 2, 3):
            advance_to(state, iteration)
            store.create_checkpoint(state)
        (checkpoints_dir / "cp-1.json").unlink()

        state.checkpoints.auto.keep = 1
        assert store.prune_old_checkpoints(state) == 2
        assert [c.id for c in state.checkpoints.items] == ["cp-3"]

    def test_prune_noop(self, store, state):
        assert store.prune_old_checkpoints(state) == 0

    def test_marker_snapshots_not_dropped(self, store, state, fake_snapshots):
        fake_snapshots.fail_with = NoRepoError("no repo")
        state.checkpoints.auto.keep = 1
        store.create_checkpoint(state)
        advance_to(state, 2)
        store.create_checkpoint(state)
        assert fake_snapshots.dropped == []


class TestRollback:
    """Tests for rollback_to_checkpoint and rollback_to_latest_checkpoint."""

    def _run_to(self, store, state, add_history, make_record, last, checkpoint_at):
        checkpoints = {}
        for n in range(1, last + 1):
            add_history(state, make_record(n, summary=f"step {n}"))
            state.metrics.add_usage(100, 1.0)
            if n in checkpoint_at:
                checkpoints[n] = store.create_checkpoint(state)
        return checkpoints

    def test_rollback_truncates_and_restores(
        self, store, state, add_history, make_record, fake_snapshots, persistence
    ):
        checkpoints = self._run_to(store, state, add_history, make_record, 14, {10})

        assert store.rollback_to_checkpoint(checkpoints[10].id, state)

        assert state.iteration.current == 10
        assert [r.n for r in state.iteration.history] == list(range(1, 11))
        assert state.metrics.total_tokens == 1000
        assert fake_snapshots.restored == [checkpoints[10].snapshot_ref]
        assert persistence.load_state().iteration.current == 10

    def test_unknown_id_leaves_state_untouched(self, store, state, add_history, make_record):
        self._run_to(store, state, add_history, make_record, 5, {3})
        before = state.to_dict()

        assert not store.rollback_to_checkpoint("missing", state)
        assert state.to_dict() == before

    def test_failed_restore_still_rolls_back_state(
        self, store, state, add_history, make_record, fake_snapshots
    ):
        checkpoints = self._run_to(store, state, add_history, make_record, 6, {4})
        fake_snapshots.restore_result = False

        assert store.rollback_to_checkpoint(checkpoints[4].id, state)
        assert state.iteration.current == 4
        assert [r.n for r in state.iteration.history] == [1, 2, 3, 4]

    def test_metrics_read_from_record(self, store, state, checkpoints_dir):
        advance_to(state, 10)
        checkpoint = store.create_checkpoint(state)
        data = json.loads((checkpoints_dir / f"{checkpoint.id}.json").read_text())
        data["metrics"] = Metrics(total_tokens=4242).to_dict()
        (checkpoints_dir / f"{checkpoint.id}.json").write_text(json.dumps(data))

        store.rollback_to_checkpoint(checkpoint.id, state)
        assert state.metrics.total_tokens == 4242

    def test_missing_record_falls_back_to_state_copy(self, store, state, checkpoints_dir):
        state.metrics.add_usage(77, 1.0)
        checkpoint = store.create_checkpoint(state)
        (checkpoints_dir / f"{checkpoint.id}.json").unlink()
        state.metrics.add_usage(1000, 1.0)

        assert store.rollback_to_checkpoint(checkpoint.id, state)
        assert state.metrics.total_tokens == 77

    def test_latest_picks_highest_iteration(self, store, state, add_history, make_record):
        checkpoints = self._run_to(store, state, add_history, make_record, 25, {10, 20})
        assert store.rollback_to_latest_checkpoint(state)
        assert state.iteration.current == 20
        assert state.last_record.n == 20
        assert checkpoints[20].iteration == 20

    def test_latest_without_checkpoints(self, store, state):
        before = state.to_dict()
        assert not store.rollback_to_latest_checkpoint(state)
        assert state.to_dict() == before

    def test_history_can_continue_after_rollback(self, store, state, add_history, make_record):
        self._run_to(store, state, add_history, make_record, 12, {10})
        store.rollback_to_latest_checkpoint(state)
        assert state.advance()
        state.record_iteration(make_record(11))
        assert state.last_record.n == 11

    def test_rollback_discards_later_checkpoints(
        self, store, state, add_history, make_record, fake_snapshots, checkpoints_dir, persistence
    ):
        checkpoints = self._run_to(store, state, add_history, make_record, 4, {2, 4})

        assert store.rollback_to_checkpoint(checkpoints[2].id, state)

        assert [c.id for c in state.checkpoints.items] == [checkpoints[2].id]
        assert not (checkpoints_dir / f"{checkpoints[4].id}.json").exists()
        assert fake_snapshots.dropped == [checkpoints[4].snapshot_ref]
        assert [c.id for c in persistence.load_state().checkpoints.items] == [checkpoints[2].id]

    def test_latest_never_moves_forward_after_targeted_rollback(
        self, store, state, add_history, make_record
    ):
        checkpoints = self._run_to(store, state, add_history, make_record, 4, {2, 4})
        store.rollback_to_checkpoint(checkpoints[2].id, state)
        add_history(state, make_record(3, summary="another step 3"))

        assert store.rollback_to_latest_checkpoint(state)
        assert state.iteration.current == 2
        assert [r.n for r in state.iteration.history] == [1, 2]


class TestListCheckpoints:
    """Tests for list_checkpoints."""

    def test_newest_first(self, store, state):
        for iteration in (5, 15, 10):
            advance_to(state, iteration)
            store.create_checkpoint(state)
        assert [c.iteration for c in store.list_checkpoints(state)] == [15, 10, 5]

    def test_empty(self, store, state):
        assert store.list_checkpoints(state) == []
