"""Snapshot references.

A checkpoint either points at a real captured snapshot or at one of two
markers: nothing was captured (``none``) or there was nothing to capture
(``clean``). Keeping these as explicit kinds avoids comparing handles
against magic strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class SnapshotKind(Enum):
    """Kind of snapshot a reference points at."""

    NONE = "none"  # Capture failed or was not possible
    CLEAN = "clean"  # Tree had no pending changes
    STASH = "stash"  # Real captured snapshot


@dataclass(frozen=True)
class SnapshotRef:
    """Opaque handle to a working-tree snapshot."""

    kind: SnapshotKind
    handle: Optional[str] = None

    @classmethod
    def none(cls) -> "SnapshotRef":
        return cls(SnapshotKind.NONE)

    @classmethod
    def clean(cls) -> "SnapshotRef":
        return cls(SnapshotKind.CLEAN)

    @classmethod
    def stash(cls, handle: str) -> "SnapshotRef":
        if not handle:
            raise ValueError("stash snapshot requires a handle")
        return cls(SnapshotKind.STASH, handle)

    @property
    def has_snapshot(self) -> bool:
        """True when there is captured content to apply or drop."""
        return self.kind == SnapshotKind.STASH

    def __str__(self) -> str:
        return self.handle if self.has_snapshot else self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"kind": self.kind.value, "handle": self.handle}

    @classmethod
    def from_dict(cls, data: Union[dict[str, Any], str, None]) -> "SnapshotRef":
        """Deserialize from dictionary.

        Plain strings are accepted too: ``"none"``, ``"clean"`` or a stash
        commit hash, the form older state files stored.
        """
        if data is None:
            return cls.none()
        if isinstance(data, str):
            if data in (SnapshotKind.NONE.value, ""):
                return cls.none()
            if data == SnapshotKind.CLEAN.value:
                return cls.clean()
            return cls.stash(data)

        kind = SnapshotKind(data.get("kind", SnapshotKind.NONE.value))
        if kind == SnapshotKind.STASH:
            return cls.stash(data.get("handle") or "")
        return cls(kind)
