"""Completion criteria definitions and scoring.

Evaluating a criterion (running its command, reading a file) belongs to
the driver. This module only holds the definitions, the per-iteration
results and the scoring rules used for completion and progress checks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CriteriaMode(Enum):
    """How criterion results combine into a score."""

    ALL = "all"  # All must pass
    ANY = "any"  # Any one passing is enough
    WEIGHTED = "weighted"  # Weighted score >= required score


@dataclass
class CriterionDefinition:
    """A completion criterion as configured for a task."""

    id: str
    name: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)
    weight: float = 1.0
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "config": dict(self.config),
            "weight": self.weight,
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CriterionDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            type=data.get("type", "command"),
            config=dict(data.get("config", {})),
            weight=float(data.get("weight", 1.0)),
            required=bool(data.get("required", False)),
        )


@dataclass
class CriterionResult:
    """Outcome of evaluating one criterion in one iteration."""

    criterion_id: str
    name: str
    passed: bool
    weight: float = 1.0
    required: bool = False
    current_value: Optional[str] = None
    target_value: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def for_criterion(
        cls, criterion: CriterionDefinition, passed: bool, **kwargs: Any
    ) -> "CriterionResult":
        """Build a result carrying the criterion's identity and weight."""
        return cls(
            criterion_id=criterion.id,
            name=criterion.name,
            passed=passed,
            weight=criterion.weight,
            required=criterion.required,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterionId": self.criterion_id,
            "name": self.name,
            "passed": self.passed,
            "weight": self.weight,
            "required": self.required,
            "currentValue": self.current_value,
            "targetValue": self.target_value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CriterionResult":
        return cls(
            criterion_id=data["criterionId"],
            name=data.get("name", data["criterionId"]),
            passed=bool(data["passed"]),
            weight=float(data.get("weight", 1.0)),
            required=bool(data.get("required", False)),
            current_value=data.get("currentValue"),
            target_value=data.get("targetValue"),
            error=data.get("error"),
        )


def calculate_score(results: list[CriterionResult], mode: CriteriaMode) -> float:
    """Calculate the overall score (0.0-1.0) of a set of results."""
    if not results:
        return 0.0

    if mode == CriteriaMode.ALL:
        return 1.0 if all(r.passed for r in results) else 0.0
    if mode == CriteriaMode.ANY:
        return 1.0 if any(r.passed for r in results) else 0.0

    total_weight = sum(r.weight for r in results)
    passed_weight = sum(r.weight for r in results if r.passed)
    return passed_weight / total_weight if total_weight > 0 else 0.0


def is_complete(
    results: list[CriterionResult],
    mode: CriteriaMode,
    required_score: float,
) -> bool:
    """Check whether the completion conditions are met.

    Every required criterion must pass regardless of mode.
    """
    if not all(r.passed for r in results if r.required):
        return False

    score = calculate_score(results, mode)
    if mode == CriteriaMode.ALL:
        return score == 1.0
    if mode == CriteriaMode.ANY:
        return score > 0.0
    return score >= required_score
