"""
JSON file persistence for task state.

The whole aggregate is rewritten after every mutation. Writes go to a
temporary file that is then renamed over the state file, so a watcher
never observes a half-written document.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from ..errors import PersistenceError
from .models import TaskState, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".forge/forge-state.json"


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON to path via a temp file and rename.

    Raises:
        PersistenceError: If the file could not be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e


class StatePersistence:
    """Load and save the TaskState aggregate.

    Example:
        persistence = StatePersistence(".forge/forge-state.json")
        state = persistence.load_state()
        state.metrics.add_usage(tokens=1200, duration=42.0)
        persistence.save_state(state)
    """

    def __init__(self, state_path: str = DEFAULT_STATE_FILE):
        """Initialize the persistence layer.

        Args:
            state_path: Path to the JSON state file
        """
        self.state_path = Path(state_path)

    def load_state(self) -> Optional[TaskState]:
        """Load state from disk.

        Returns:
            TaskState, or None if the file is missing or unreadable
        """
        if not self.state_path.exists():
            return None

        try:
            with open(self.state_path) as f:
                data = json.load(f)
            return TaskState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Invalid state file {self.state_path}: {e}")
            return None

    def save_state(self, state: TaskState) -> None:
        """Persist the full state.

        Raises:
            PersistenceError: If the write failed.
        """
        write_json_atomic(self.state_path, state.to_dict())
        logger.debug(
            f"Saved state for {state.task.id}: "
            f"iteration {state.iteration.current}/{state.iteration.max}"
        )

    def delete_state(self) -> None:
        """Remove the state file if present."""
        if self.state_path.exists():
            self.state_path.unlink()

    def is_active(self) -> bool:
        """Check whether a persisted task is currently running."""
        state = self.load_state()
        return state is not None and state.task.status == TaskStatus.RUNNING
