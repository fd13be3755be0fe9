"""High-level service for local history operations.

This is the boundary an editor integration talks to:

- ``notify_changed`` on save or on-disk modification
- ``list_for`` / ``latest_for`` for single-file history views
- ``list_all`` for the workspace history view
- ``read_content`` and ``restore`` for compare and rollback
- ``purge`` and ``prune_all`` for explicit cleanup

Per-file failures are logged and turned into "capture skipped" or
"entry omitted"; only an unusable store root raises.
"""

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .config import HistoryConfig
from .core import GateDecision, HistoryGroup, PruneResult, Snapshot
from .errors import CaptureError, SnapshotNotFoundError
from .gate import ChangeGate, DebounceState
from .ignore import ExclusionSpec
from .query import filter_entries, group_by_recency_bucket
from .retention import RetentionPolicy
from .store import SnapshotStore, atomic_write_bytes

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class HistoryDeps:
    """Dependency injection container for testability."""
    now: Callable[[], datetime] = datetime.now
    monotonic: Callable[[], float] = time.monotonic
    debounce: Optional[DebounceState] = None


class LocalHistory:
    """Snapshot capture, listing and retention for one workspace.

    Args:
        config: History configuration
        workspace: Workspace root; exclusions and display paths are
            relative to it
        deps: Clocks and debounce state (for testing)

    Raises:
        StoreUnavailableError: If the store root cannot be created
    """

    def __init__(
        self,
        config: Optional[HistoryConfig] = None,
        workspace: Optional[Path] = None,
        deps: Optional[HistoryDeps] = None,
    ):
        self.config = config or HistoryConfig()
        self.workspace = Path(workspace).resolve() if workspace else None
        self.deps = deps or HistoryDeps()

        self.store = SnapshotStore(self.config.resolved_store_root)
        self.retention = RetentionPolicy(
            self.store,
            max_count=self.config.max_history_entries,
            max_age_days=self.config.max_age_days,
            clock=self.deps.now,
        )
        self.gate = ChangeGate(
            exclusions=ExclusionSpec(
                self.config.excluded_patterns,
                base=self.workspace,
                internal_dirs=[self.store.root],
            ),
            debounce=self.deps.debounce,
            interval=self.config.debounce_seconds,
            clock=self.deps.monotonic,
        )

    # ---- capture ----

    def submit(self, path: PathLike, source: str = "save") -> Tuple[GateDecision, Optional[Snapshot]]:
        """Route a change notification through the gate and capture it.

        Returns:
            The gate decision and, when a capture happened, the snapshot
        """
        if not self.config.enabled:
            return GateDecision.DISABLED, None

        target = os.path.abspath(os.fspath(path))
        decision = self.gate.admit(target)
        if decision is not GateDecision.ACCEPTED:
            return decision, None

        with self.gate.in_flight(f"{source}:{target}") as acquired:
            if not acquired:
                logger.debug("Capture already running for %s (%s)", target, source)
                return GateDecision.BUSY, None
            snapshot = self._capture_and_prune(target)
        return decision, snapshot

    def notify_changed(self, path: PathLike, source: str = "save") -> Optional[Snapshot]:
        """Handle a "file changed" notification.

        Returns:
            The new snapshot, or None when the notification was filtered or
            the capture failed
        """
        _, snapshot = self.submit(path, source)
        return snapshot

    def _capture_and_prune(self, path: str) -> Optional[Snapshot]:
        try:
            snapshot = self.store.capture(path, now=self.deps.now())
        except CaptureError as e:
            logger.warning("Capture skipped: %s", e)
            return None

        try:
            self.retention.prune(path)
        except OSError as e:
            logger.warning("Retention after capture of %s failed: %s", path, e)
        return snapshot

    # ---- queries ----

    def list_for(self, path: PathLike) -> List[Snapshot]:
        """History of one file, newest first."""
        return self.store.entries_for(path)

    def latest_for(self, path: PathLike) -> Optional[Snapshot]:
        """Most recent snapshot of a file, if any."""
        entries = self.list_for(path)
        return entries[0] if entries else None

    def list_all(self, filter_text: Optional[str] = None, now: Optional[datetime] = None) -> List[HistoryGroup]:
        """Workspace history grouped into recency buckets.

        Only snapshots whose original file still exists are included.
        """
        entries = filter_entries(self.store.all_entries(), filter_text, base=self.workspace)
        return group_by_recency_bucket(entries, now or self.deps.now(), base=self.workspace)

    def read_content(self, snapshot: Snapshot) -> Optional[bytes]:
        return self.store.read_content(snapshot)

    # ---- mutation ----

    def restore(self, snapshot: Snapshot, dest: Optional[PathLike] = None) -> Path:
        """Write a snapshot's content back to disk.

        The current file is captured first (outside the debounce window) so
        the restore itself can be undone.

        Args:
            snapshot: Snapshot to restore
            dest: Target file (defaults to the snapshot's original path)

        Returns:
            Path that was written

        Raises:
            SnapshotNotFoundError: If the snapshot content vanished
        """
        data = self.store.read_content(snapshot)
        if data is None:
            raise SnapshotNotFoundError(snapshot.content_path)

        target = Path(dest) if dest else Path(snapshot.original_path)
        if target.is_file() and self.config.enabled and not self.gate.is_excluded(target):
            current = target.read_bytes()
            if current != data:
                self._capture_and_prune(str(target))

        target.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_bytes(target, data)
        logger.info("Restored %s from %s", target, snapshot.timestamp)
        return target

    def purge(self, path: Optional[PathLike] = None) -> int:
        """Delete history for one file, or everything when path is None."""
        if path is not None:
            self.gate.debounce.forget(os.path.abspath(os.fspath(path)))
        else:
            self.gate.debounce.clear()
        return self.store.purge(path)

    def prune_all(self) -> PruneResult:
        """Apply retention to every file in the store."""
        return self.retention.prune_all(self.deps.now())
