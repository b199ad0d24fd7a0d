"""Stuck pattern matchers.

Each matcher inspects the trailing iteration history and reports one
stuck pattern. The heuristics are literal string comparisons, so they
are kept behind the PatternMatcher interface and can be swapped without
touching the detector or the recovery engine.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..criteria import calculate_score
from ..state.models import IterationRecord, TaskState

Normalizer = Callable[[str], str]

# Score spread below this counts as no improvement
NO_PROGRESS_TOLERANCE = 0.05


class StuckPattern(Enum):
    """Kinds of stall the detector recognizes."""

    SAME_OUTPUT = "same-output"
    NO_PROGRESS = "no-progress"
    REPEATING_ERROR = "repeating-error"


@dataclass
class StuckResult:
    """Classification of the trailing history."""

    is_stuck: bool
    pattern: Optional[StuckPattern] = None
    details: str = ""

    @classmethod
    def not_stuck(cls) -> "StuckResult":
        return cls(is_stuck=False)

    def to_dict(self) -> dict:
        return {
            "isStuck": self.is_stuck,
            "pattern": self.pattern.value if self.pattern else None,
            "details": self.details,
        }


def normalize_text(text: str) -> str:
    """Normalize text for comparison.

    Lowercases, drops timestamp-like runs and collapses whitespace.
    """
    if not text:
        return ""

    text = text.lower()
    # After lowercase, T becomes t
    text = re.sub(r"\d{4}-\d{2}-\d{2}[t ]\d{2}:\d{2}:\d{2}(\.\d+)?", "", text)
    text = re.sub(r"\d{10,13}", "", text)  # Unix timestamps
    return " ".join(text.split())


class PatternMatcher(ABC):
    """Recognizes one stuck pattern in a task's history."""

    pattern: StuckPattern

    def __init__(self, normalizer: Normalizer = normalize_text):
        self.normalizer = normalizer

    @abstractmethod
    def match(self, state: TaskState) -> Optional[StuckResult]:
        """Return a stuck result if the pattern is present, else None."""

    def _stuck(self, details: str) -> StuckResult:
        return StuckResult(is_stuck=True, pattern=self.pattern, details=details)


class RepeatingErrorMatcher(PatternMatcher):
    """The latest failed iterations share one error signature."""

    pattern = StuckPattern.REPEATING_ERROR

    def __init__(self, threshold: int = 2, normalizer: Normalizer = normalize_text):
        super().__init__(normalizer)
        if threshold < 2:
            raise ValueError("threshold must be at least 2")
        self.threshold = threshold

    def match(self, state: TaskState) -> Optional[StuckResult]:
        recent = _trailing(state.iteration.history, self.threshold)
        if recent is None:
            return None
        # A stuck-marked iteration keeps its error message, so match on that
        if any(not r.error for r in recent):
            return None

        signatures = {self.normalizer(r.error) for r in recent}
        if len(signatures) != 1 or not next(iter(signatures)):
            return None

        message = recent[-1].error.strip()
        return self._stuck(f"Same error repeated {self.threshold} times: {message[:50]}")


class SameOutputMatcher(PatternMatcher):
    """The latest iterations produced the same summary."""

    pattern = StuckPattern.SAME_OUTPUT

    def match(self, state: TaskState) -> Optional[StuckResult]:
        threshold = state.stuck_detection.same_output_threshold
        recent = _trailing(state.iteration.history, threshold)
        if recent is None:
            return None

        summaries = {self.normalizer(r.summary) for r in recent}
        if len(summaries) == 1:
            return self._stuck(f"Same output repeated {threshold} times")
        return None


class NoProgressMatcher(PatternMatcher):
    """The latest iterations changed no files and did not move the score."""

    pattern = StuckPattern.NO_PROGRESS

    def match(self, state: TaskState) -> Optional[StuckResult]:
        threshold = state.stuck_detection.no_progress_threshold
        recent = _trailing(state.iteration.history, threshold)
        if recent is None:
            return None

        if any(r.files_changed for r in recent):
            return None

        scores = [calculate_score(r.criteria_results, state.criteria.mode) for r in recent]
        if max(scores) - min(scores) < NO_PROGRESS_TOLERANCE:
            return self._stuck(f"No progress for {threshold} iterations")
        return None


def default_matchers(normalizer: Normalizer = normalize_text) -> list[PatternMatcher]:
    """Matchers in precedence order: most actionable signal first."""
    return [
        RepeatingErrorMatcher(normalizer=normalizer),
        SameOutputMatcher(normalizer=normalizer),
        NoProgressMatcher(normalizer=normalizer),
    ]


def _trailing(history: list[IterationRecord], count: int) -> Optional[list[IterationRecord]]:
    if count <= 0 or len(history) < count:
        return None
    return history[-count:]
