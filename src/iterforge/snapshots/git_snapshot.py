"""
Working-tree snapshots backed by git stash.

A snapshot captures every pending change in the tree, untracked files
included, without leaving the tree modified: the changes are stashed and
immediately re-applied, so the stash entry is a point-in-time copy that
can later be applied again to undo subsequent edits.

All calls shell out to git and block until git exits. Callers must not
issue overlapping snapshot/restore calls against the same tree.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..errors import NoRepoError, RestoreConflictError, SnapshotError
from .ref import SnapshotRef

logger = logging.getLogger(__name__)


@dataclass
class ChangedPaths:
    """Paths with pending changes in the working tree."""

    created: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)

    @property
    def all(self) -> list[str]:
        return self.created + [p for p in self.modified if p not in self.created]


class SnapshotAdapter(ABC):
    """Take and restore opaque captures of a working tree."""

    @abstractmethod
    def take_snapshot(self, label: str) -> SnapshotRef:
        """Capture all pending changes.

        Raises:
            NoRepoError: The tree is not under version control.
            SnapshotError: The capture failed.
        """

    @abstractmethod
    def restore_snapshot(self, ref: SnapshotRef) -> bool:
        """Apply a captured snapshot on top of the current tree."""

    @abstractmethod
    def drop_snapshot(self, ref: SnapshotRef) -> bool:
        """Discard a captured snapshot."""

    @abstractmethod
    def changed_paths(self) -> ChangedPaths:
        """List created and modified paths in the tree."""


class GitSnapshotAdapter(SnapshotAdapter):
    """Snapshot adapter for a git working tree.

    Example:
        snapshots = GitSnapshotAdapter(Path("/work/project"))
        ref = snapshots.take_snapshot("forge-checkpoint-iter-10")
        # ... agent edits the tree ...
        snapshots.restore_snapshot(ref)
    """

    def __init__(self, repo_root: Optional[Path] = None, timeout: int = 60):
        """Initialize the adapter.

        Args:
            repo_root: Root of the working tree (defaults to cwd)
            timeout: Seconds to wait for each git command
        """
        self.repo_root = Path(repo_root) if repo_root else Path.cwd()
        self.timeout = timeout

    def is_repo(self) -> bool:
        """Check if the working tree is inside a git repository."""
        try:
            result = self._run_git(["rev-parse", "--is-inside-work-tree"], check=False)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"git unavailable: {e}")
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def has_changes(self) -> bool:
        """Check for pending changes, untracked files included."""
        result = self._run_git(["status", "--porcelain", "--untracked-files=all"], check=False)
        return bool(result.stdout.strip())

    def take_snapshot(self, label: str) -> SnapshotRef:
        if not self.is_repo():
            raise NoRepoError(f"Not a git repository: {self.repo_root}")

        if not self.has_changes():
            logger.debug(f"Working tree clean, nothing to capture for {label}")
            return SnapshotRef.clean()

        push = self._run_git(
            ["stash", "push", "--include-untracked", "-m", label],
            check=False,
        )
        if push.returncode != 0:
            raise SnapshotError(f"git stash push failed: {push.stderr.strip()}")

        rev = self._run_git(["rev-parse", "stash@{0}"], check=False)
        if rev.returncode != 0:
            self._pop_latest_stash(label)
            raise SnapshotError(f"Could not resolve stash for {label}: {rev.stderr.strip()}")
        handle = rev.stdout.strip()

        # Put the changes back so the tree is unchanged by the capture
        reapply = self._run_git(["stash", "apply", "--index", handle], check=False)
        if reapply.returncode != 0:
            self._pop_latest_stash(label)
            raise SnapshotError(
                f"Captured {label} as {handle} but could not re-apply it: "
                f"{reapply.stderr.strip()}"
            )

        logger.info(f"Captured snapshot {handle[:12]} ({label})")
        return SnapshotRef.stash(handle)

    def _pop_latest_stash(self, label: str) -> None:
        """Return a just-pushed stash to the working tree after a failed capture."""
        for args in (["stash", "pop", "--index"], ["stash", "pop"]):
            result = self._run_git(args, check=False)
            if result.returncode == 0:
                logger.warning(f"Capture of {label} abandoned; pending changes returned to the tree")
                return
        logger.error(
            f"Capture of {label} failed and its changes could not be returned; "
            f"they remain in stash@{{0}}: {result.stderr.strip()}"
        )

    def restore_snapshot(self, ref: SnapshotRef) -> bool:
        if not ref.has_snapshot:
            return True

        try:
            self._apply(ref)
        except RestoreConflictError as e:
            logger.warning(str(e))
            return False
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Could not run git to restore {ref}: {e}")
            return False

        logger.info(f"Restored snapshot {ref}")
        return True

    def _apply(self, ref: SnapshotRef) -> None:
        result = self._run_git(["stash", "apply", ref.handle], check=False)
        if result.returncode != 0:
            raise RestoreConflictError(
                f"Restore of snapshot {ref} failed: {result.stderr.strip()}"
            )

    def drop_snapshot(self, ref: SnapshotRef) -> bool:
        if not ref.has_snapshot:
            return True

        try:
            index = self._stash_index(ref.handle)
            if index is None:
                logger.debug(f"Snapshot {ref} already gone")
                return False
            result = self._run_git(["stash", "drop", f"stash@{{{index}}}"], check=False)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Could not drop snapshot {ref}: {e}")
            return False

        return result.returncode == 0

    def changed_paths(self) -> ChangedPaths:
        """Union of untracked, unstaged-modified and staged-modified paths."""
        changes = ChangedPaths()
        if not self.is_repo():
            return changes

        changes.created = self._lines(["ls-files", "--others", "--exclude-standard"])
        changes.modified = self._lines(["diff", "--name-only"])
        for path in self._lines(["diff", "--cached", "--name-only"]):
            if path not in changes.modified:
                changes.modified.append(path)

        return changes

    def _stash_index(self, handle: str) -> Optional[int]:
        """Find the stash@{n} position of a stash commit."""
        for i, sha in enumerate(self._lines(["stash", "list", "--format=%H"])):
            if sha == handle:
                return i
        return None

    def _lines(self, args: List[str]) -> list[str]:
        result = self._run_git(args, check=False)
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _run_git(
        self,
        args: List[str],
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command.

        Args:
            args: Git command arguments
            check: Whether to check return code

        Returns:
            CompletedProcess result
        """
        cmd = ["git"] + args
        return subprocess.run(
            cmd,
            cwd=self.repo_root,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=check,
        )
