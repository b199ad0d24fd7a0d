"""
Iteration summary extraction.

Builds a one-line summary of an iteration from the agent's output. The
stuck detector compares these summaries, so the heuristic sits behind
SummaryExtractor and can be replaced.
"""

import re
from abc import ABC, abstractmethod

ACTION_KEYWORDS = (
    "created",
    "added",
    "fixed",
    "implemented",
    "updated",
    "refactored",
    "removed",
    "deleted",
    "modified",
    "wrote",
    "built",
    "configured",
    "installed",
    "set up",
    "completed",
)

FILLER_OPENERS = ("i ", "let me", "i'll")

MAX_SUMMARY_LENGTH = 100
SCAN_LINES = 10

_BULLET_PREFIX = re.compile(r"^[\s\-\*•>]+")


class SummaryExtractor(ABC):
    """Turn raw agent output into a short summary line."""

    @abstractmethod
    def extract(self, output: str) -> str:
        """Return a one-line summary of the output."""


class KeywordSummaryExtractor(SummaryExtractor):
    """Pick the first early line that reports an action.

    Scans the first few non-blank lines, skips filler openers such as
    "Let me ...", and returns the first line containing an action keyword.
    Falls back to the first line.
    """

    def __init__(self, keywords: tuple[str, ...] = ACTION_KEYWORDS, scan_lines: int = SCAN_LINES):
        self.keywords = keywords
        self.scan_lines = scan_lines

    def extract(self, output: str) -> str:
        lines = [line for line in (output or "").splitlines() if line.strip()]
        if not lines:
            return "No output"

        for line in lines[: self.scan_lines]:
            lower = line.lower().strip()
            if lower.startswith(FILLER_OPENERS):
                continue
            if any(kw in lower for kw in self.keywords):
                return _clean(line)

        return _clean(lines[0])


def _clean(line: str) -> str:
    text = _BULLET_PREFIX.sub("", line).strip()
    if len(text) > MAX_SUMMARY_LENGTH:
        return text[:MAX_SUMMARY_LENGTH] + "..."
    return text
