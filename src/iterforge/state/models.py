"""
Task state for an iterating agent loop.

The TaskState aggregate is the single record every component reads and
mutates: iteration counter and history, criteria, budget, checkpoints,
stuck-detection settings and cumulative metrics. It serializes to JSON
with camelCase keys so the persisted file matches what the dashboard
reads.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..criteria import CriteriaMode, CriterionDefinition, CriterionResult
from ..snapshots.ref import SnapshotRef

STATE_VERSION = "1.0.0"


def utc_now() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class TaskStatus(Enum):
    """Status of a task."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"  # Budget, timeout or max iterations
    STOPPED = "stopped"  # Aborted by recovery or by the operator


class IterationOutcome(Enum):
    """Result of a single iteration."""

    PROGRESS = "progress"
    STUCK = "stuck"
    ERROR = "error"
    GATE_FAILED = "gate-failed"


class StuckStrategy(Enum):
    """Known recovery strategies.

    StuckDetectionConfig keeps the strategy as a plain string so an
    unknown value survives a load/save round trip and reaches the
    recovery engine, which degrades it instead of failing.
    """

    RETRY_VARIATION = "retry-variation"
    SIMPLIFY = "simplify"
    ROLLBACK = "rollback"
    ABORT = "abort"


class CheckpointType(Enum):
    """How a checkpoint was created."""

    AUTO = "auto"
    MANUAL = "manual"


@dataclass
class Metrics:
    """Cumulative metrics for a task."""

    total_tokens: int = 0
    total_duration: float = 0.0  # seconds
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)

    def add_usage(self, tokens: int, duration: float) -> None:
        """Add one iteration's token count and duration."""
        self.total_tokens += tokens
        self.total_duration += duration

    def record_changes(self, created: list[str], modified: list[str]) -> list[str]:
        """Merge changed paths, keeping first-seen order without duplicates.

        Returns:
            Paths not seen before, created first.
        """
        fresh = []
        for path in created:
            if path not in self.files_created:
                self.files_created.append(path)
                fresh.append(path)
        for path in modified:
            if path not in self.files_modified:
                self.files_modified.append(path)
                if path not in fresh:
                    fresh.append(path)
        return fresh

    def copy(self) -> "Metrics":
        return Metrics(
            total_tokens=self.total_tokens,
            total_duration=self.total_duration,
            files_created=list(self.files_created),
            files_modified=list(self.files_modified),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTokens": self.total_tokens,
            "totalDuration": self.total_duration,
            "filesCreated": list(self.files_created),
            "filesModified": list(self.files_modified),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Metrics":
        return cls(
            total_tokens=int(data.get("totalTokens", 0)),
            total_duration=float(data.get("totalDuration", 0.0)),
            files_created=list(data.get("filesCreated", [])),
            files_modified=list(data.get("filesModified", [])),
        )


@dataclass
class IterationRecord:
    """Record of a single finished iteration."""

    n: int
    started_at: str
    ended_at: str
    duration: float = 0.0  # seconds
    tokens: int = 0
    outcome: IterationOutcome = IterationOutcome.PROGRESS
    summary: str = ""
    criteria_results: list[CriterionResult] = field(default_factory=list)
    files_changed: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "n": self.n,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "duration": self.duration,
            "tokens": self.tokens,
            "outcome": self.outcome.value,
            "summary": self.summary,
            "criteriaResults": [r.to_dict() for r in self.criteria_results],
            "filesChanged": list(self.files_changed),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IterationRecord":
        return cls(
            n=int(data["n"]),
            started_at=data.get("startedAt", ""),
            ended_at=data.get("endedAt", ""),
            duration=float(data.get("duration", 0.0)),
            tokens=int(data.get("tokens", 0)),
            outcome=IterationOutcome(data.get("outcome", "progress")),
            summary=data.get("summary", ""),
            criteria_results=[
                CriterionResult.from_dict(r) for r in data.get("criteriaResults", [])
            ],
            files_changed=list(data.get("filesChanged", [])),
            error=data.get("error"),
        )


@dataclass
class Checkpoint:
    """A retained rollback target: snapshot reference plus metrics copy."""

    id: str
    iteration: int
    created_at: str
    type: CheckpointType
    snapshot_ref: SnapshotRef
    metrics: Metrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "iteration": self.iteration,
            "createdAt": self.created_at,
            "type": self.type.value,
            "snapshotRef": self.snapshot_ref.to_dict(),
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        return cls(
            id=data["id"],
            iteration=int(data["iteration"]),
            created_at=data.get("createdAt", ""),
            type=CheckpointType(data.get("type", "auto")),
            snapshot_ref=SnapshotRef.from_dict(data.get("snapshotRef")),
            metrics=Metrics.from_dict(data.get("metrics", {})),
        )


@dataclass
class TaskInfo:
    """Identity of the task being iterated on."""

    id: str
    name: str
    prompt: str
    started_at: str = field(default_factory=utc_now)
    status: TaskStatus = TaskStatus.RUNNING


@dataclass
class IterationState:
    """Iteration counter, cap and history."""

    current: int = 1
    max: int = 30
    current_started_at: str = field(default_factory=utc_now)
    history: list[IterationRecord] = field(default_factory=list)


@dataclass
class CriteriaConfig:
    mode: CriteriaMode = CriteriaMode.ALL
    required_score: float = 0.8
    items: list[CriterionDefinition] = field(default_factory=list)


@dataclass
class BudgetConfig:
    """Advisory ceilings; checked by the loop at iteration boundaries."""

    max_duration: Optional[float] = None  # seconds
    max_tokens: Optional[int] = None


@dataclass
class AutoCheckpointConfig:
    enabled: bool = True
    interval: int = 10
    keep: int = 3


@dataclass
class CheckpointSettings:
    auto: AutoCheckpointConfig = field(default_factory=AutoCheckpointConfig)
    items: list[Checkpoint] = field(default_factory=list)


@dataclass
class StuckDetectionConfig:
    enabled: bool = True
    same_output_threshold: int = 3
    no_progress_threshold: int = 5
    strategy: str = StuckStrategy.RETRY_VARIATION.value


@dataclass
class TaskState:
    """
    Complete state of a running task, serializable to JSON.

    Invariants:
    - iteration.current never exceeds iteration.max
    - history entries have strictly increasing n, each <= iteration.current
    """

    task: TaskInfo
    iteration: IterationState = field(default_factory=IterationState)
    criteria: CriteriaConfig = field(default_factory=CriteriaConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    checkpoints: CheckpointSettings = field(default_factory=CheckpointSettings)
    stuck_detection: StuckDetectionConfig = field(default_factory=StuckDetectionConfig)
    metrics: Metrics = field(default_factory=Metrics)
    version: str = STATE_VERSION

    @classmethod
    def create(
        cls,
        prompt: str,
        name: Optional[str] = None,
        task_id: Optional[str] = None,
        max_iterations: int = 30,
    ) -> "TaskState":
        """Create a fresh running task."""
        if max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        return cls(
            task=TaskInfo(
                id=task_id or str(uuid.uuid4()),
                name=name or prompt[:50],
                prompt=prompt,
            ),
            iteration=IterationState(max=max_iterations),
        )

    @property
    def is_running(self) -> bool:
        return self.task.status == TaskStatus.RUNNING

    @property
    def last_record(self) -> Optional[IterationRecord]:
        return self.iteration.history[-1] if self.iteration.history else None

    def record_iteration(self, record: IterationRecord) -> None:
        """Append a finished iteration to the history.

        Raises:
            ValueError: If the record would break history ordering.
        """
        if record.n > self.iteration.current:
            raise ValueError(
                f"Iteration {record.n} is ahead of current iteration {self.iteration.current}"
            )
        last = self.last_record
        if last is not None and record.n <= last.n:
            raise ValueError(f"Iteration {record.n} does not follow iteration {last.n}")
        self.iteration.history.append(record)

    def advance(self) -> bool:
        """Move to the next iteration.

        Returns:
            False without changing anything when already at the cap.
        """
        if self.iteration.current >= self.iteration.max:
            return False
        self.iteration.current += 1
        self.iteration.current_started_at = utc_now()
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "task": {
                "id": self.task.id,
                "name": self.task.name,
                "prompt": self.task.prompt,
                "startedAt": self.task.started_at,
                "status": self.task.status.value,
            },
            "iteration": {
                "current": self.iteration.current,
                "max": self.iteration.max,
                "currentStartedAt": self.iteration.current_started_at,
                "history": [r.to_dict() for r in self.iteration.history],
            },
            "criteria": {
                "mode": self.criteria.mode.value,
                "requiredScore": self.criteria.required_score,
                "items": [c.to_dict() for c in self.criteria.items],
            },
            "budget": {
                "maxDuration": self.budget.max_duration,
                "maxTokens": self.budget.max_tokens,
            },
            "checkpoints": {
                "auto": {
                    "enabled": self.checkpoints.auto.enabled,
                    "interval": self.checkpoints.auto.interval,
                    "keep": self.checkpoints.auto.keep,
                },
                "items": [c.to_dict() for c in self.checkpoints.items],
            },
            "stuckDetection": {
                "enabled": self.stuck_detection.enabled,
                "sameOutputThreshold": self.stuck_detection.same_output_threshold,
                "noProgressThreshold": self.stuck_detection.no_progress_threshold,
                "strategy": self.stuck_detection.strategy,
            },
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskState":
        """Create from dictionary (JSON deserialization)."""
        task = data["task"]
        iteration = data.get("iteration", {})
        criteria = data.get("criteria", {})
        budget = data.get("budget", {})
        checkpoints = data.get("checkpoints", {})
        auto = checkpoints.get("auto", {})
        stuck = data.get("stuckDetection", {})

        return cls(
            version=data.get("version", STATE_VERSION),
            task=TaskInfo(
                id=task["id"],
                name=task.get("name", ""),
                prompt=task.get("prompt", ""),
                started_at=task.get("startedAt", ""),
                status=TaskStatus(task.get("status", "running")),
            ),
            iteration=IterationState(
                current=int(iteration.get("current", 1)),
                max=int(iteration.get("max", 30)),
                current_started_at=iteration.get("currentStartedAt", ""),
                history=[IterationRecord.from_dict(r) for r in iteration.get("history", [])],
            ),
            criteria=CriteriaConfig(
                mode=CriteriaMode(criteria.get("mode", "all")),
                required_score=float(criteria.get("requiredScore", 0.8)),
                items=[CriterionDefinition.from_dict(c) for c in criteria.get("items", [])],
            ),
            budget=BudgetConfig(
                max_duration=budget.get("maxDuration"),
                max_tokens=budget.get("maxTokens"),
            ),
            checkpoints=CheckpointSettings(
                auto=AutoCheckpointConfig(
                    enabled=bool(auto.get("enabled", True)),
                    interval=int(auto.get("interval", 10)),
                    keep=int(auto.get("keep", 3)),
                ),
                items=[Checkpoint.from_dict(c) for c in checkpoints.get("items", [])],
            ),
            stuck_detection=StuckDetectionConfig(
                enabled=bool(stuck.get("enabled", True)),
                same_output_threshold=int(stuck.get("sameOutputThreshold", 3)),
                no_progress_threshold=int(stuck.get("noProgressThreshold", 5)),
                strategy=str(stuck.get("strategy", StuckStrategy.RETRY_VARIATION.value)),
            ),
            metrics=Metrics.from_dict(data.get("metrics", {})),
        )
