"""Retention policy for per-file history.

Two independent limits bound each file's history: a maximum number of
snapshots and a maximum age. A snapshot is evicted when it violates either.
Deletion is best effort; failures are logged and counted, never raised.
"""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .constants import DEFAULT_MAX_AGE_DAYS, DEFAULT_MAX_HISTORY_ENTRIES
from .core import PruneResult, Snapshot
from .store import SnapshotStore

logger = logging.getLogger(__name__)


class RetentionPolicy:
    """Count- and age-based eviction over a SnapshotStore.

    Args:
        store: Store to prune
        max_count: Snapshots kept per file (<= 0 disables the limit)
        max_age_days: Oldest snapshot age kept (<= 0 disables the limit)
        clock: Returns the current local time; injectable for tests
    """

    def __init__(
        self,
        store: SnapshotStore,
        max_count: int = DEFAULT_MAX_HISTORY_ENTRIES,
        max_age_days: int = DEFAULT_MAX_AGE_DAYS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.max_count = max_count
        self.max_age_days = max_age_days
        self.clock = clock

    def cutoff(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Oldest capture time still retained, or None if age is unlimited."""
        if self.max_age_days <= 0:
            return None
        return (now or self.clock()) - timedelta(days=self.max_age_days)

    def expired(self, entries: Sequence[Snapshot], now: Optional[datetime] = None) -> List[Snapshot]:
        """Select the entries to evict.

        Args:
            entries: One file's history, newest first
            now: Reference time for the age limit

        Returns:
            Entries beyond max_count plus entries older than the age cutoff,
            in input order and without duplicates
        """
        cutoff = self.cutoff(now)
        evict = []
        for index, entry in enumerate(entries):
            over_count = self.max_count > 0 and index >= self.max_count
            too_old = cutoff is not None and entry.captured_at < cutoff
            if over_count or too_old:
                evict.append(entry)
        return evict

    def prune(self, path: Union[str, Path], now: Optional[datetime] = None) -> PruneResult:
        """Apply both limits to one file's history."""
        result = PruneResult(files=1)
        for entry in self.expired(self.store.entries_for(path), now):
            if self.store.delete(entry):
                result.removed.append(entry)
            else:
                result.failed += 1
        if result.removed:
            logger.debug("Pruned %d snapshots of %s", len(result.removed), path)
        return result

    def prune_all(self, now: Optional[datetime] = None) -> PruneResult:
        """Apply retention to every file in the store.

        All snapshots under one key belong to the same path, so the first
        readable sidecar of each directory identifies the file.
        """
        now = now or self.clock()
        total = PruneResult()
        for key_dir in self.store.iter_key_dirs():
            original = self.store.resolve_original_path(key_dir)
            if original is None:
                logger.debug("No readable sidecar in %s, skipping", key_dir)
                continue
            try:
                total.merge(self.prune(original, now))
            except OSError as e:
                logger.warning("Retention failed for %s: %s", original, e)
                total.failed += 1
        return total
