"""Change notification gate.

Decides whether a "file changed" notification should become a capture:
excluded paths, vanished files and repeated notifications within the
debounce interval are dropped. The debounce is leading-edge: the first
event of a burst is captured, later ones inside the window are discarded
rather than deferred.
"""

import contextlib
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Set, Union

from .constants import DEFAULT_DEBOUNCE_SECONDS
from .core import GateDecision
from .ignore import ExclusionSpec

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class DebounceState:
    """Last honored capture time per path.

    Kept as an explicit object so each gate (and each test) owns its own
    state. Times come from whatever clock the gate uses.
    """

    def __init__(self):
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_suppress(self, path: str, now: float, interval: float) -> bool:
        """True if ``path`` was honored less than ``interval`` seconds ago."""
        with self._lock:
            last = self._last.get(path)
        return last is not None and now - last < interval

    def record(self, path: str, now: float) -> None:
        with self._lock:
            self._last[path] = now

    def try_acquire(self, path: str, now: float, interval: float) -> bool:
        """Check and record in one step; False when suppressed.

        Entries whose window has closed are dropped on the way, so the map
        only holds paths honored within the last ``interval`` seconds.
        """
        with self._lock:
            last = self._last.get(path)
            if last is not None and now - last < interval:
                return False
            stale = [p for p, t in self._last.items() if now - t >= interval]
            for p in stale:
                del self._last[p]
            self._last[path] = now
            return True

    def forget(self, path: str) -> None:
        with self._lock:
            self._last.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._last.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)


class ChangeGate:
    """Filters change notifications before they reach the store.

    Args:
        exclusions: Exclusion patterns to honor
        debounce: Per-path debounce state (a fresh one by default)
        interval: Debounce window in seconds
        clock: Monotonic seconds; injectable for tests
    """

    def __init__(
        self,
        exclusions: Optional[ExclusionSpec] = None,
        debounce: Optional[DebounceState] = None,
        interval: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.exclusions = exclusions or ExclusionSpec()
        self.debounce = debounce if debounce is not None else DebounceState()
        self.interval = interval
        self.clock = clock
        self._busy: Set[str] = set()
        self._busy_lock = threading.Lock()

    def is_excluded(self, path: PathLike) -> bool:
        return self.exclusions.matches(path)

    def admit(self, path: PathLike) -> GateDecision:
        """Decide whether a notification for ``path`` should be captured.

        Checks run in order: exclusion, existence, debounce. An accepted
        notification starts the debounce window for that path.
        """
        key = os.path.abspath(os.fspath(path))
        if self.is_excluded(key):
            logger.debug("Excluded: %s", key)
            return GateDecision.EXCLUDED
        if not os.path.isfile(key):
            logger.debug("Missing: %s", key)
            return GateDecision.MISSING
        if not self.debounce.try_acquire(key, self.clock(), self.interval):
            logger.debug("Debounced: %s", key)
            return GateDecision.DEBOUNCED
        return GateDecision.ACCEPTED

    def is_busy(self, source: str) -> bool:
        with self._busy_lock:
            return source in self._busy

    @contextlib.contextmanager
    def in_flight(self, source: str) -> Iterator[bool]:
        """Guard a capture for one notification source.

        Yields True when the guard was taken, False when a capture for the
        same source is already running (the caller should skip).
        """
        with self._busy_lock:
            if source in self._busy:
                acquired = False
            else:
                self._busy.add(source)
                acquired = True
        try:
            yield acquired
        finally:
            if acquired:
                with self._busy_lock:
                    self._busy.discard(source)
