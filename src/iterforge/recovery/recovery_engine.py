"""Recovery engine turning a stuck classification into the next action.

The configured strategy decides what happens once the loop is stuck:

| strategy        | action   | prompt                                          |
|-----------------|----------|-------------------------------------------------|
| retry-variation | continue | try a structurally different approach           |
| simplify        | continue | shrink scope to the single smallest change      |
| rollback        | continue | roll back to the latest checkpoint, start fresh |
| abort           | abort    | none; the stuck details become the reason       |
| anything else   | continue | generic nudge                                   |

Only the rollback strategy has a side effect. Everything else is a pure
function of the strategy and the stuck result. Bounding the number of
retries is the driver's job, through ``iteration.max``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..checkpoints import CheckpointStore
from ..errors import ConfigError
from ..state.models import StuckStrategy, TaskState
from .patterns import StuckResult

logger = logging.getLogger(__name__)


class RecoveryAction(Enum):
    """What the driver should do next."""

    CONTINUE = "continue"
    ABORT = "abort"


@dataclass
class RecoveryResult:
    """Decision for the driver.

    ``continue`` always carries a prompt suffix, ``abort`` always a reason.
    """

    action: RecoveryAction
    prompt_suffix: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "promptSuffix": self.prompt_suffix,
            "reason": self.reason,
        }


ROLLBACK_MARKER = "**ROLLBACK PERFORMED**"
STUCK_MARKER = "**STUCK DETECTED**"
NO_CHECKPOINT_NOTE = "(no checkpoint available for rollback)"


def variation_prompt(stuck: StuckResult) -> str:
    return f"""

{STUCK_MARKER}: {stuck.details}

Your recent attempts keep following the same pattern. Switch to a COMPLETELY DIFFERENT approach:

- If you worked top-down, work bottom-up (or the reverse)
- If tests are failing, read the error output line by line before editing
- Break the problem into smaller pieces you can test on their own
- Look for edge cases and assumptions you have not checked

**DO NOT** repeat your previous approach."""


def simplify_prompt(stuck: StuckResult) -> str:
    return f"""

{STUCK_MARKER}: {stuck.details}

The task is too large to solve in one step. Please:

1. **STOP** and note what already works
2. **LIST** the remaining work and what exactly is failing
3. **PICK** the single smallest change that moves things forward
4. **IMPLEMENT** only that change
5. **VERIFY** it works before continuing

Make incremental progress. Do not try to solve everything at once."""


def rollback_prompt(stuck: StuckResult) -> str:
    return f"""

{ROLLBACK_MARKER}: Reverted to the last checkpoint ({stuck.details}).

The previous approach led to a dead end and its changes have been undone.
Start fresh from this point with a fundamentally different strategy."""


def rollback_fallback_prompt(stuck: StuckResult) -> str:
    return f"""

{STUCK_MARKER} {NO_CHECKPOINT_NOTE}: {stuck.details}

A rollback was requested but no checkpoint could be restored.
Do not repeat your previous approach. Try a completely different one:

- If you worked top-down, work bottom-up (or the reverse)
- Read error output carefully before changing code"""


def default_prompt(stuck: StuckResult) -> str:
    return f"""

{STUCK_MARKER}: {stuck.details}

Progress has stalled. Re-read the task and try another way forward."""


class RecoveryEngine:
    """Map the configured strategy and a stuck result to a RecoveryResult.

    Args:
        checkpoint_store: Store used by the rollback strategy. Without one,
            rollback always falls back to variation guidance.
    """

    def __init__(self, checkpoint_store: Optional[CheckpointStore] = None):
        self.checkpoint_store = checkpoint_store
        self._handlers: dict[str, Callable[[TaskState, StuckResult], RecoveryResult]] = {
            StuckStrategy.RETRY_VARIATION.value: self._retry_with_variation,
            StuckStrategy.SIMPLIFY.value: self._simplify,
            StuckStrategy.ROLLBACK.value: self._rollback_and_retry,
            StuckStrategy.ABORT.value: self._abort,
        }

    def apply_recovery(self, state: TaskState, stuck: StuckResult) -> RecoveryResult:
        """Decide the next action for a stuck task.

        Raises:
            ConfigError: If the strategy is not a string at all.
            PersistenceError: If a rollback could not be persisted.
        """
        strategy = state.stuck_detection.strategy
        if not isinstance(strategy, str):
            raise ConfigError(f"Recovery strategy must be a string, got {strategy!r}")

        handler = self._handlers.get(strategy)
        if handler is None:
            logger.warning(f"Unknown recovery strategy '{strategy}', continuing with default prompt")
            return RecoveryResult(RecoveryAction.CONTINUE, prompt_suffix=default_prompt(stuck))

        result = handler(state, stuck)
        logger.info(f"Recovery '{strategy}' -> {result.action.value}")
        return result

    def _retry_with_variation(self, state: TaskState, stuck: StuckResult) -> RecoveryResult:
        return RecoveryResult(RecoveryAction.CONTINUE, prompt_suffix=variation_prompt(stuck))

    def _simplify(self, state: TaskState, stuck: StuckResult) -> RecoveryResult:
        return RecoveryResult(RecoveryAction.CONTINUE, prompt_suffix=simplify_prompt(stuck))

    def _rollback_and_retry(self, state: TaskState, stuck: StuckResult) -> RecoveryResult:
        rolled_back = (
            self.checkpoint_store is not None
            and self.checkpoint_store.rollback_to_latest_checkpoint(state)
        )
        if rolled_back:
            return RecoveryResult(RecoveryAction.CONTINUE, prompt_suffix=rollback_prompt(stuck))

        logger.warning("Rollback unavailable, falling back to variation guidance")
        return RecoveryResult(
            RecoveryAction.CONTINUE, prompt_suffix=rollback_fallback_prompt(stuck)
        )

    def _abort(self, state: TaskState, stuck: StuckResult) -> RecoveryResult:
        return RecoveryResult(RecoveryAction.ABORT, reason=stuck.details)
