"""State-file watcher for dashboards.

Watches the task state file of each registered project and broadcasts an
``execution:update`` message whenever it changes. Bursts of file events
are debounced per project, so one state save produces one message.

The registry owns its observer, its watches and its pending timers.
Nothing is kept at module level, so several registries can coexist and
tests can inject fake timers and observers.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .state.models import IterationOutcome, TaskState
from .state.persistence import StatePersistence

logger = logging.getLogger(__name__)

Broadcast = Callable[[dict[str, Any]], None]

DEFAULT_DEBOUNCE_SECONDS = 0.1

_WATCHED_EVENTS = (EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED)


def build_execution_update(state: TaskState) -> dict[str, Any]:
    """Summarize a task state for the dashboard."""
    last = state.last_record
    update: dict[str, Any] = {
        "status": state.task.status.value,
        "taskId": state.task.id,
        "taskName": state.task.name,
        "iteration": state.iteration.current,
        "maxIterations": state.iteration.max,
        "criteria": [r.to_dict() for r in last.criteria_results] if last else [],
        "error": last.error if last else None,
        "metrics": state.metrics.to_dict(),
    }
    if last is not None and last.outcome == IterationOutcome.STUCK:
        update["stuckDetection"] = {
            "isStuck": True,
            "strategy": state.stuck_detection.strategy,
        }
    return update


class StateWatchRegistry:
    """Watch task state files and broadcast changes.

    Args:
        broadcast: Called with each ``execution:update`` message.
        debounce_seconds: Quiet period before a change is broadcast.
        timer_factory: Builds debounce timers, ``threading.Timer`` signature.
        observer_factory: Builds the file-system observer.

    Example:
        registry = StateWatchRegistry(websocket_hub.send_all)
        registry.start()
        registry.watch("proj-1", "/work/proj-1/.forge/forge-state.json")
        ...
        registry.stop()
    """

    def __init__(
        self,
        broadcast: Broadcast,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.broadcast = broadcast
        self.debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._observer_factory = observer_factory

        self._observer: Optional[Any] = None
        self._paths: dict[str, Path] = {}
        self._watches: dict[str, Any] = {}
        self._timers: dict[str, Any] = {}
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the observer. Safe to call twice."""
        if self._observer is not None:
            return
        self._observer = self._observer_factory()
        self._observer.start()
        logger.info("State watcher started")

    def stop(self) -> None:
        """Unwatch every project, cancel pending timers and stop the observer."""
        for project_id in list(self._paths):
            self.unwatch(project_id)

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info("State watcher stopped")

    def is_running(self) -> bool:
        return self._observer is not None

    def watch(self, project_id: str, state_path: str) -> bool:
        """Start watching a project's state file.

        The file itself may not exist yet, but its directory must.

        Returns:
            True if the project is watched.

        Raises:
            RuntimeError: If the registry has not been started.
        """
        if self._observer is None:
            raise RuntimeError("StateWatchRegistry.start() must be called before watch()")
        if project_id in self._paths:
            return True

        path = Path(state_path).resolve()
        if not path.parent.is_dir():
            logger.info(f"No state directory for project {project_id} at {path.parent}, skipping")
            return False

        handler = _StateFileHandler(self, project_id, path)
        self._watches[project_id] = self._observer.schedule(
            handler, str(path.parent), recursive=False
        )
        self._paths[project_id] = path
        logger.info(f"Watching project {project_id} at {path}")

        # Publish the current state right away
        self.notify(project_id)
        return True

    def unwatch(self, project_id: str) -> None:
        """Stop watching a project and drop any pending broadcast."""
        self._paths.pop(project_id, None)
        watch = self._watches.pop(project_id, None)
        if watch is not None and self._observer is not None:
            self._observer.unschedule(watch)

        with self._lock:
            timer = self._timers.pop(project_id, None)
        if timer is not None:
            timer.cancel()

        logger.info(f"Stopped watching project {project_id}")

    def watched(self) -> dict[str, str]:
        """Watched projects mapped to their state file paths."""
        return {project_id: str(path) for project_id, path in self._paths.items()}

    def notify(self, project_id: str) -> None:
        """Schedule a broadcast for a project, restarting its debounce timer."""
        if project_id not in self._paths:
            return

        timer = self._timer_factory(self.debounce_seconds, self._fire, args=(project_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(project_id, None)
            self._timers[project_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _fire(self, project_id: str) -> None:
        with self._lock:
            self._timers.pop(project_id, None)

        path = self._paths.get(project_id)
        if path is None:
            return

        state = StatePersistence(str(path)).load_state()
        if state is None:
            return

        logger.debug(f"State change for project {project_id}")
        self.broadcast(
            {
                "type": "execution:update",
                "projectId": project_id,
                "execution": build_execution_update(state),
            }
        )


class _StateFileHandler(FileSystemEventHandler):
    """Forwards events on one state file to the registry."""

    def __init__(self, registry: StateWatchRegistry, project_id: str, state_path: Path):
        super().__init__()
        self.registry = registry
        self.project_id = project_id
        self.state_path = state_path

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _WATCHED_EVENTS:
            return

        # Atomic saves arrive as a move onto the state file
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and self._is_state_file(p) for p in paths):
            self.registry.notify(self.project_id)

    def _is_state_file(self, path: Any) -> bool:
        if isinstance(path, bytes):
            path = path.decode()
        return Path(path).resolve() == self.state_path
