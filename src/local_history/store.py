"""On-disk snapshot store.

Each tracked file gets a directory named by the storage key of its absolute
path. Every snapshot is a content blob plus a ``.meta`` sidecar holding the
original path, which is the only way back from a key to a real file.

Directory Structure:
    <store_root>/<storage_key>/<timestamp>_<basename>
    <store_root>/<storage_key>/<timestamp>_<basename>.meta
    <store_root>/<storage_key>/.capture.lock

Technical Considerations:
- Content is written before the sidecar, so a crash leaves at most an
  orphaned blob, never a sidecar pointing at nothing
- Both halves are written via temp file + os.replace, so readers never see
  a partially written snapshot
- Captures of the same key are serialized across processes with portalocker
- Listing never raises on per-entry I/O errors; broken pairs are skipped
"""

from __future__ import annotations
import contextlib
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Union

import portalocker

from .constants import LOCK_FILE, META_SUFFIX
from .core import Snapshot
from .errors import (
    CaptureError,
    CorruptEntryError,
    PermissionDeniedError,
    SourceNotFoundError,
    StoreUnavailableError,
)
from .hashing import is_storage_key, storage_key
from .timestamps import format_timestamp, parse_snapshot_name, snapshot_name

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# ---- Atomic write helpers ---------------------------------------------------

def _fsync_dir(path: Path) -> None:
    """Fsync a directory so new entries are durable (best effort)."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY

        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        # Expected on Windows or filesystems that don't support directory fsync
        logger.debug("Directory fsync not supported for %s", path)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Atomically write bytes to ``path``.

    Writes to a temp file in the same directory, fsyncs it, then renames it
    over the target so the file appears all at once.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="wb",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
    ) as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise
    _fsync_dir(path.parent)


def _absolute(path: PathLike) -> Path:
    """Absolute, normalized path without resolving symlinks."""
    return Path(os.path.abspath(os.fspath(path)))


def _read_sidecar(meta_path: Path) -> str:
    """Read the original path recorded in a sidecar.

    Raises:
        OSError: If the sidecar cannot be read
        CorruptEntryError: If it does not hold an absolute path
    """
    original = meta_path.read_text(encoding="utf-8", errors="surrogateescape").rstrip("\r\n")
    if not original or not os.path.isabs(original):
        raise CorruptEntryError(f"Sidecar {meta_path} does not hold an absolute path")
    return original


def _paired_blobs(names: Iterable[str]) -> List[str]:
    """Content names in a key dir that have a sidecar next to them.

    A name is a blob when it parses as a snapshot name and ``name + .meta``
    exists; the suffix alone says nothing, since a tracked file may be
    called ``notes.meta``.
    """
    present = set(names)
    return sorted(
        name for name in present
        if parse_snapshot_name(name) is not None and name + META_SUFFIX in present
    )


# ---- SnapshotStore ----------------------------------------------------------

class SnapshotStore:
    """Durable capture and retrieval of file snapshots.

    Attributes:
        root: Store root directory; one sub-directory per tracked file

    Thread Safety:
        Captures for the same path are serialized with a per-key file lock.
        Reads and deletes operate on immutable files and tolerate concurrent
        removal.
    """

    def __init__(self, root: PathLike):
        """Open (and create if needed) the store at ``root``.

        Raises:
            StoreUnavailableError: If the root cannot be created or is not a
                directory
        """
        self.root = Path(root).expanduser()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(self.root, str(e)) from e
        if not self.root.is_dir():
            raise StoreUnavailableError(self.root, "not a directory")

    # ---- layout ----

    def key_dir(self, path: PathLike) -> Path:
        """History directory for a file path."""
        return self.root / storage_key(_absolute(path))

    def iter_key_dirs(self) -> Iterator[Path]:
        """Yield every storage-key directory in the store, in name order."""
        try:
            children = sorted(self.root.iterdir())
        except OSError as e:
            logger.warning("Cannot list store root %s: %s", self.root, e)
            return
        for child in children:
            try:
                if child.is_dir() and is_storage_key(child.name):
                    yield child
            except OSError:
                continue

    def _entry(self, key_dir: Path, name: str, original_path: str) -> Optional[Snapshot]:
        parsed = parse_snapshot_name(name)
        if parsed is None:
            return None
        timestamp, _ = parsed
        return Snapshot(
            original_path=original_path,
            storage_key=key_dir.name,
            timestamp=timestamp,
            content_path=key_dir / name,
        )

    # ---- capture ----

    def capture(self, path: PathLike, now: Optional[datetime] = None) -> Snapshot:
        """Capture the current content of ``path`` as a new snapshot.

        Args:
            path: File to capture
            now: Capture time (defaults to the current local time)

        Returns:
            The written Snapshot

        Raises:
            SourceNotFoundError: If the file does not exist or is not a file
            PermissionDeniedError: If reading or writing is refused
            CaptureError: For any other I/O failure
        """
        source = _absolute(path)
        original = str(source)
        if not source.is_file():
            raise SourceNotFoundError(original)

        key_dir = self.root / storage_key(original)
        timestamp = format_timestamp(now)
        name = snapshot_name(timestamp, source.name)
        content_path = key_dir / name
        meta_path = content_path.with_name(name + META_SUFFIX)

        try:
            key_dir.mkdir(parents=True, exist_ok=True)
            with portalocker.Lock(str(key_dir / LOCK_FILE), "w", timeout=30):
                data = source.read_bytes()
                # Content first, then the sidecar that makes it visible
                atomic_write_bytes(content_path, data)
                atomic_write_bytes(
                    meta_path, original.encode("utf-8", errors="surrogateescape")
                )
        except FileNotFoundError as e:
            raise SourceNotFoundError(original) from e
        except PermissionError as e:
            raise PermissionDeniedError(original) from e
        except (OSError, portalocker.LockException) as e:
            raise CaptureError(f"Failed to capture {original}: {e}") from e

        logger.debug("Captured %s -> %s", original, content_path)
        return Snapshot(
            original_path=original,
            storage_key=key_dir.name,
            timestamp=timestamp,
            content_path=content_path,
        )

    # ---- listing ----

    def entries_for(self, path: PathLike) -> List[Snapshot]:
        """List snapshots of one file, newest first.

        Blobs without a sidecar and names that do not parse are skipped.
        Equal timestamps are ordered by file name.
        """
        original = str(_absolute(path))
        key_dir = self.root / storage_key(original)
        try:
            names = [p.name for p in key_dir.iterdir()]
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Cannot list history for %s: %s", original, e)
            return []

        entries = []
        for name in _paired_blobs(names):
            entry = self._entry(key_dir, name, original)
            if entry is not None:
                entries.append(entry)

        # Fixed-width timestamps sort lexicographically
        entries.sort(key=lambda e: (e.timestamp, e.name), reverse=True)
        return entries

    def all_entries(self, include_missing: bool = False) -> List[Snapshot]:
        """List snapshots across the whole store.

        Each entry's original path comes from its own sidecar. Sidecars
        without content, unreadable sidecars and (unless include_missing)
        snapshots of files that no longer exist are skipped.

        Returns:
            Snapshots ordered by timestamp descending, then original path
            and name ascending
        """
        entries: List[Snapshot] = []
        exists_cache = {}

        for key_dir in self.iter_key_dirs():
            try:
                names = sorted(p.name for p in key_dir.iterdir())
            except OSError as e:
                logger.debug("Skipping unreadable key dir %s: %s", key_dir, e)
                continue

            for content_name in _paired_blobs(names):
                meta_name = content_name + META_SUFFIX
                try:
                    original = _read_sidecar(key_dir / meta_name)
                except (OSError, CorruptEntryError) as e:
                    logger.debug("Skipping sidecar %s: %s", key_dir / meta_name, e)
                    continue

                if not include_missing:
                    if original not in exists_cache:
                        exists_cache[original] = os.path.exists(original)
                    if not exists_cache[original]:
                        continue

                entry = self._entry(key_dir, content_name, original)
                if entry is not None:
                    entries.append(entry)

        # Total order: newest first, ties broken by path then name
        entries.sort(key=lambda e: (e.original_path, e.name))
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries

    def resolve_original_path(self, key_dir: Path) -> Optional[str]:
        """Recover the tracked path for a key dir from its first readable sidecar."""
        try:
            blobs = _paired_blobs(p.name for p in key_dir.iterdir())
        except OSError:
            return None
        for meta in (key_dir / (name + META_SUFFIX) for name in blobs):
            try:
                return _read_sidecar(meta)
            except (OSError, CorruptEntryError):
                continue
        return None

    def key_consistency(self, key_dir: Path) -> Set[str]:
        """All original paths recorded by the sidecars in one key dir.

        A healthy directory yields exactly one path.
        """
        paths = set()
        try:
            blobs = _paired_blobs(p.name for p in key_dir.iterdir())
        except OSError:
            return paths
        for meta in (key_dir / (name + META_SUFFIX) for name in blobs):
            try:
                paths.add(_read_sidecar(meta))
            except (OSError, CorruptEntryError):
                continue
        return paths

    # ---- reading ----

    def read_content(self, snapshot: Snapshot) -> Optional[bytes]:
        """Raw snapshot bytes, or None if the blob vanished or is unreadable."""
        try:
            return snapshot.content_path.read_bytes()
        except FileNotFoundError:
            logger.debug("Snapshot content vanished: %s", snapshot.content_path)
            return None
        except OSError as e:
            logger.warning("Cannot read snapshot %s: %s", snapshot.content_path, e)
            return None

    # ---- deletion ----

    def delete(self, snapshot: Snapshot) -> bool:
        """Delete a snapshot's blob and sidecar (best effort).

        Returns:
            True if nothing of the snapshot remains on disk
        """
        ok = True
        for target in (snapshot.content_path, snapshot.meta_path):
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not delete %s: %s", target, e)
                ok = False
        self._remove_if_empty(snapshot.content_path.parent)
        return ok

    def _remove_if_empty(self, key_dir: Path) -> None:
        """Drop a key dir that holds nothing but its lock file."""
        try:
            leftovers = [p for p in key_dir.iterdir() if p.name != LOCK_FILE]
            if leftovers:
                return
            with contextlib.suppress(FileNotFoundError):
                (key_dir / LOCK_FILE).unlink()
            key_dir.rmdir()
        except OSError as e:
            # Another capture may have raced in; the directory stays
            logger.debug("Keeping key dir %s: %s", key_dir, e)

    def purge(self, path: Optional[PathLike] = None) -> int:
        """Delete history for one file, or for every file when path is None.

        Returns:
            Number of snapshots removed
        """
        if path is not None:
            removed = 0
            for entry in self.entries_for(path):
                if self.delete(entry):
                    removed += 1
            # Orphaned blobs and sidecars go too
            key_dir = self.key_dir(path)
            if key_dir.exists():
                shutil.rmtree(key_dir, ignore_errors=True)
            return removed

        removed = 0
        for key_dir in list(self.iter_key_dirs()):
            try:
                removed += len(_paired_blobs(p.name for p in key_dir.iterdir()))
            except OSError:
                pass
            shutil.rmtree(key_dir, ignore_errors=True)
        logger.debug("Purged %d snapshots from %s", removed, self.root)
        return removed
