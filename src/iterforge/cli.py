"""
Command-line access to a project's checkpoints and stuck status.

Usage:
    python -m iterforge init "Make the test suite pass" --name tests
    python -m iterforge status
    python -m iterforge checkpoints
    python -m iterforge checkpoint
    python -m iterforge rollback --id <checkpoint-id>
    python -m iterforge detect
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .checkpoints import CheckpointStore
from .config import DEFAULT_CONFIG_FILE, Config
from .errors import CheckpointNotFoundError, ForgeError
from .logging_config import setup_logging
from .recovery import StuckDetector
from .snapshots import GitSnapshotAdapter
from .state.models import CheckpointType, TaskState
from .state.persistence import StatePersistence

logger = logging.getLogger(__name__)


class ForgeCommands:
    """Operations behind the CLI, bound to one project root."""

    def __init__(self, root: Path, config: Config):
        self.root = root
        self.config = config
        self.persistence = StatePersistence(str(root / config.path("state_file")))
        self.snapshots = GitSnapshotAdapter(root)
        self.store = CheckpointStore(
            self.snapshots,
            self.persistence,
            checkpoints_dir=str(root / config.path("checkpoints_dir")),
        )

    def load(self) -> TaskState:
        state = self.persistence.load_state()
        if state is None:
            raise ForgeError(f"No task state at {self.persistence.state_path}")
        return state

    def init(self, prompt: str, name: Optional[str] = None) -> dict:
        state = self.config.build_state(prompt, name=name)
        self.persistence.save_state(state)
        logger.info(f"Started task {state.task.id} ({state.task.name})")
        return {"taskId": state.task.id, "name": state.task.name, "maxIterations": state.iteration.max}

    def status(self) -> dict:
        state = self.load()
        last = state.last_record
        return {
            "taskId": state.task.id,
            "name": state.task.name,
            "status": state.task.status.value,
            "iteration": state.iteration.current,
            "maxIterations": state.iteration.max,
            "lastOutcome": last.outcome.value if last else None,
            "checkpoints": len(state.checkpoints.items),
            "metrics": state.metrics.to_dict(),
        }

    def checkpoints(self) -> list:
        state = self.load()
        return [c.to_dict() for c in self.store.list_checkpoints(state)]

    def checkpoint(self) -> dict:
        state = self.load()
        return self.store.create_checkpoint(state, CheckpointType.MANUAL).to_dict()

    def rollback(self, checkpoint_id: Optional[str] = None) -> dict:
        state = self.load()
        if checkpoint_id is None:
            if not self.store.rollback_to_latest_checkpoint(state):
                raise ForgeError("No checkpoint available for rollback")
        elif not self.store.rollback_to_checkpoint(checkpoint_id, state):
            raise CheckpointNotFoundError(checkpoint_id)
        return {"iteration": state.iteration.current, "history": len(state.iteration.history)}

    def detect(self) -> dict:
        state = self.load()
        return StuckDetector().detect(state).to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iterforge",
        description="Checkpoints and stuck recovery for iterating agent tasks",
    )
    parser.add_argument(
        "--root",
        default=".",
        help="Project root holding the .forge directory (default: current directory)"
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_FILE,
        help=f"Config file, relative to the root (default: {DEFAULT_CONFIG_FILE})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Start a new task from the config")
    init.add_argument("prompt", help="Task prompt")
    init.add_argument("--name", help="Short task name (default: start of the prompt)")

    sub.add_parser("status", help="Print the task status")
    sub.add_parser("checkpoints", help="List checkpoints, newest first")
    sub.add_parser("checkpoint", help="Create a manual checkpoint")

    rollback = sub.add_parser("rollback", help="Roll back to a checkpoint")
    rollback.add_argument("--id", dest="checkpoint_id", help="Checkpoint id (default: latest)")

    sub.add_parser("detect", help="Run stuck detection on the current history")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    root = Path(args.root)

    try:
        config = Config(str(root / args.config))
        setup_logging(
            log_file=str(root / config.path("log_file")),
            level=logging.DEBUG if args.verbose else logging.INFO,
        )

        commands = ForgeCommands(root, config)
        if args.command == "init":
            result = commands.init(args.prompt, name=args.name)
        elif args.command == "rollback":
            result = commands.rollback(args.checkpoint_id)
        else:
            result = getattr(commands, args.command)()
    except ForgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0
