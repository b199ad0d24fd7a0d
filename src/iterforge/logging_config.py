"""Logging setup shared by the CLI and long-running drivers."""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_file: Optional[str] = ".forge/forge.log", level: int = logging.INFO) -> None:
    """Configure root logging to stderr and, optionally, a log file.

    Args:
        log_file: Path of the log file. None disables file logging.
        level: Root log level.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
