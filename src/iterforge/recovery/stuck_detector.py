"""Stuck detection for the iteration loop.

Classifies the trailing iteration history as stuck or not. The result is
recomputed from the persisted history on every call and never stored.
"""

import logging
from typing import Optional

from ..state.models import TaskState
from .patterns import Normalizer, PatternMatcher, StuckResult, default_matchers, normalize_text

logger = logging.getLogger(__name__)

# Fewer finished iterations than this can never be stuck
MIN_HISTORY = 2


class StuckDetector:
    """Detect when the loop has stopped making progress.

    Matchers are tried in order and the first match wins, so the list
    order is the pattern precedence.

    Args:
        matchers: Pattern matchers in precedence order. Defaults to
            repeating-error, same-output, no-progress.
        normalizer: Text normalizer for the default matchers. Ignored
            when matchers are given.
    """

    def __init__(
        self,
        matchers: Optional[list[PatternMatcher]] = None,
        normalizer: Optional[Normalizer] = None,
    ):
        if matchers is None:
            matchers = default_matchers(normalizer or normalize_text)
        self.matchers = matchers

    def detect(self, state: TaskState) -> StuckResult:
        """Classify the task's trailing history."""
        config = state.stuck_detection
        if not config.enabled or len(state.iteration.history) < MIN_HISTORY:
            return StuckResult.not_stuck()

        for matcher in self.matchers:
            result = matcher.match(state)
            if result is not None and result.is_stuck:
                logger.warning(
                    f"Stuck at iteration {state.iteration.current} "
                    f"({result.pattern.value}): {result.details}"
                )
                return result

        return StuckResult.not_stuck()
