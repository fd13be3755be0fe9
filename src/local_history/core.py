"""Core data models for local-history.

A tracked file is never materialized as an object: it is simply the set of
snapshots sharing a storage key. The models here describe one snapshot and
the derived views built from them.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .constants import META_SUFFIX
from .timestamps import parse_timestamp


# ============= Snapshots =============

class Snapshot(BaseModel):
    """One immutable captured copy of a file.

    Layout on disk::

        {store_root}/{storage_key}/{timestamp}_{basename}
        {store_root}/{storage_key}/{timestamp}_{basename}.meta
    """

    model_config = ConfigDict(frozen=True)

    original_path: str   # absolute path at capture time
    storage_key: str     # storage_key(original_path)
    timestamp: str       # YYYY-MM-DD_HH-MM-SS
    content_path: Path   # blob location

    @property
    def meta_path(self) -> Path:
        """Sidecar holding the original path."""
        return self.content_path.with_name(self.content_path.name + META_SUFFIX)

    @property
    def captured_at(self) -> datetime:
        """Capture time as a naive local datetime."""
        return parse_timestamp(self.timestamp)

    @property
    def basename(self) -> str:
        """File name of the original path."""
        return Path(self.original_path).name

    @property
    def name(self) -> str:
        """File name of the content blob."""
        return self.content_path.name


# ============= Derived Views =============

class HistoryGroup(BaseModel):
    """A labelled, ordered bucket of snapshots for display."""

    label: str
    entries: List[Snapshot] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def title(self) -> str:
        """Label with entry count, e.g. 'Today (3)'."""
        return f"{self.label} ({len(self.entries)})"


# ============= Operation Results =============

class GateDecision(str, Enum):
    """Outcome of a change notification passing through the gate."""

    ACCEPTED = "accepted"
    DISABLED = "disabled"
    EXCLUDED = "excluded"
    MISSING = "missing"
    DEBOUNCED = "debounced"
    BUSY = "busy"


class PruneResult(BaseModel):
    """Summary of a retention pass."""

    removed: List[Snapshot] = Field(default_factory=list)
    failed: int = 0
    files: int = 0   # number of tracked files examined

    def merge(self, other: "PruneResult") -> None:
        """Fold another result into this one."""
        self.removed.extend(other.removed)
        self.failed += other.failed
        self.files += other.files

    @property
    def removed_count(self) -> int:
        return len(self.removed)
