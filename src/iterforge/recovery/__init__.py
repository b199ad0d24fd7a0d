"""Stuck detection and recovery for the iteration loop.

- patterns: pluggable matchers for same-output, no-progress and
  repeating-error stalls
- stuck_detector: runs the matchers in precedence order
- recovery_engine: turns a stuck result into continue/abort
"""

from .patterns import (
    NoProgressMatcher,
    PatternMatcher,
    RepeatingErrorMatcher,
    SameOutputMatcher,
    StuckPattern,
    StuckResult,
    default_matchers,
    normalize_text,
)
from .recovery_engine import RecoveryAction, RecoveryEngine, RecoveryResult
from .stuck_detector import StuckDetector

__all__ = [
    "NoProgressMatcher",
    "PatternMatcher",
    "RecoveryAction",
    "RecoveryEngine",
    "RecoveryResult",
    "RepeatingErrorMatcher",
    "SameOutputMatcher",
    "StuckDetector",
    "StuckPattern",
    "StuckResult",
    "default_matchers",
    "normalize_text",
]
