"""
Per-iteration coordination.

IterationLoop is called once each time the agent finishes an iteration.
It folds the iteration into the task state, checks budget, completion
and stuck status, takes auto checkpoints, and tells the driver whether to
run another iteration and with which prompt.

Flow:
1. Skip if the task is not running
2. Update token, duration and changed-file metrics
3. Stop on an exhausted budget
4. Record the iteration
5. Stop if the completion criteria are met
6. Detect stuck patterns and apply the recovery strategy
7. Auto-checkpoint on the configured interval
8. Advance, or stop at the iteration cap
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .checkpoints import CheckpointStore
from .criteria import CriterionResult, is_complete
from .recovery import RecoveryAction, RecoveryEngine, StuckDetector, StuckResult
from .snapshots import SnapshotAdapter
from .state.models import (
    Checkpoint,
    CheckpointType,
    IterationOutcome,
    IterationRecord,
    TaskState,
    TaskStatus,
    utc_now,
)
from .state.persistence import StatePersistence
from .summary import KeywordSummaryExtractor, SummaryExtractor

logger = logging.getLogger(__name__)


class LoopAction(Enum):
    CONTINUE = "continue"
    STOP = "stop"


@dataclass
class LoopDecision:
    """What the driver should do after an iteration."""

    action: LoopAction
    prompt: Optional[str] = None
    reason: Optional[str] = None
    stuck: Optional[StuckResult] = None
    checkpoint: Optional[Checkpoint] = None

    @property
    def should_continue(self) -> bool:
        return self.action == LoopAction.CONTINUE


def estimate_tokens(text: str) -> int:
    """Rough token estimate, about four characters per token."""
    return math.ceil(len(text or "") / 4)


def _elapsed_seconds(started_at: str) -> float:
    try:
        started = datetime.fromisoformat(started_at)
    except (TypeError, ValueError):
        return 0.0
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return max(0.0, (datetime.now(timezone.utc) - started).total_seconds())


class IterationLoop:
    """Fold finished iterations into the task state and decide what comes next.

    Example:
        loop = IterationLoop(state, persistence, store, StuckDetector(),
                             RecoveryEngine(store), snapshots)
        decision = loop.complete_iteration(output, criteria_results)
        while decision.should_continue:
            output, criteria_results = run_agent(decision.prompt)
            decision = loop.complete_iteration(output, criteria_results)
    """

    def __init__(
        self,
        state: TaskState,
        persistence: StatePersistence,
        checkpoint_store: CheckpointStore,
        detector: StuckDetector,
        engine: RecoveryEngine,
        snapshots: SnapshotAdapter,
        summarizer: Optional[SummaryExtractor] = None,
    ):
        self.state = state
        self.persistence = persistence
        self.checkpoint_store = checkpoint_store
        self.detector = detector
        self.engine = engine
        self.snapshots = snapshots
        self.summarizer = summarizer or KeywordSummaryExtractor()

    def complete_iteration(
        self,
        output: str,
        criteria_results: list[CriterionResult],
        tokens: Optional[int] = None,
        error: Optional[str] = None,
    ) -> LoopDecision:
        """Process a finished iteration.

        Args:
            output: The agent's output for this iteration
            criteria_results: Evaluated completion criteria
            tokens: Token count, estimated from output when omitted
            error: Error message if the iteration failed

        Returns:
            LoopDecision for the driver

        Raises:
            PersistenceError: If the state could not be saved.
        """
        state = self.state
        if not state.is_running:
            return LoopDecision(
                LoopAction.STOP, reason=f"Task is {state.task.status.value}"
            )

        tokens = estimate_tokens(output) if tokens is None else tokens
        duration = _elapsed_seconds(state.iteration.current_started_at)
        state.metrics.add_usage(tokens, duration)

        changes = self.snapshots.changed_paths()
        # Only paths first seen in this iteration count as its changes
        files_changed = state.metrics.record_changes(changes.created, changes.modified)

        budget_reason = self._check_budget()
        if budget_reason:
            return self._finish(TaskStatus.FAILED, budget_reason)

        record = IterationRecord(
            n=state.iteration.current,
            started_at=state.iteration.current_started_at,
            ended_at=utc_now(),
            duration=duration,
            tokens=tokens,
            outcome=IterationOutcome.ERROR if error else IterationOutcome.PROGRESS,
            summary=self.summarizer.extract(output),
            criteria_results=list(criteria_results),
            files_changed=files_changed,
            error=error,
        )
        state.record_iteration(record)

        if criteria_results and is_complete(
            criteria_results, state.criteria.mode, state.criteria.required_score
        ):
            passed = sum(1 for r in criteria_results if r.passed)
            return self._finish(
                TaskStatus.COMPLETED,
                f"Task complete: {passed}/{len(criteria_results)} criteria passed",
            )

        prompt_suffix = ""
        stuck = self.detector.detect(state)
        if stuck.is_stuck:
            record.outcome = IterationOutcome.STUCK
            recovery = self.engine.apply_recovery(state, stuck)
            if recovery.action == RecoveryAction.ABORT:
                decision = self._finish(
                    TaskStatus.STOPPED, f"Task stuck and aborted: {recovery.reason}"
                )
                decision.stuck = stuck
                return decision
            prompt_suffix = recovery.prompt_suffix or ""

        checkpoint = None
        auto = state.checkpoints.auto
        # A rollback rewound history past this record; its position is already checkpointed
        rolled_back = state.last_record is not record
        if auto.enabled and not rolled_back and state.iteration.current % auto.interval == 0:
            checkpoint = self.checkpoint_store.create_checkpoint(state, CheckpointType.AUTO)

        if not state.advance():
            decision = self._finish(
                TaskStatus.FAILED, f"Max iterations ({state.iteration.max}) reached"
            )
            decision.stuck = stuck if stuck.is_stuck else None
            return decision

        self.persistence.save_state(state)
        logger.info(
            f"Iteration {record.n} done ({record.outcome.value}); "
            f"starting {state.iteration.current}/{state.iteration.max}"
        )

        return LoopDecision(
            LoopAction.CONTINUE,
            prompt=state.task.prompt + prompt_suffix,
            stuck=stuck if stuck.is_stuck else None,
            checkpoint=checkpoint,
        )

    def _check_budget(self) -> Optional[str]:
        budget = self.state.budget
        metrics = self.state.metrics

        if budget.max_duration is not None and metrics.total_duration > budget.max_duration:
            minutes = round(metrics.total_duration / 60)
            max_minutes = round(budget.max_duration / 60)
            return f"Duration exceeded: {minutes}min > {max_minutes}min"

        if budget.max_tokens is not None and metrics.total_tokens > budget.max_tokens:
            return f"Token limit exceeded: {metrics.total_tokens} > {budget.max_tokens}"

        return None

    def _finish(self, status: TaskStatus, reason: str) -> LoopDecision:
        self.state.task.status = status
        self.persistence.save_state(self.state)
        logger.info(f"Task {self.state.task.id} {status.value}: {reason}")
        return LoopDecision(LoopAction.STOP, reason=reason)
