"""Error taxonomy for the checkpoint and recovery subsystem.

Only PersistenceError and ConfigError are meant to reach the driver.
The others are raised inside the subsystem and downgraded to logged,
non-fatal outcomes by the components that call them.
"""


class ForgeError(Exception):
    """Base class for all iterforge errors."""


class NoRepoError(ForgeError):
    """The working tree is not under version control."""


class SnapshotError(ForgeError):
    """A snapshot command failed."""


class RestoreConflictError(SnapshotError):
    """A snapshot could not be applied on top of the current tree."""


class CheckpointNotFoundError(ForgeError):
    """No checkpoint with the requested id exists."""

    def __init__(self, checkpoint_id: str):
        super().__init__(f"Checkpoint not found: {checkpoint_id}")
        self.checkpoint_id = checkpoint_id


class PersistenceError(ForgeError):
    """A durable write failed."""


class ConfigError(ForgeError):
    """Configuration is malformed."""
