"""Tests for the on-disk snapshot store."""

import os
from datetime import datetime
from pathlib import Path

import pytest

from local_history.constants import LOCK_FILE, META_SUFFIX
from local_history.errors import (
    CaptureError,
    CorruptEntryError,
    PermissionDeniedError,
    SourceNotFoundError,
    StoreUnavailableError,
)
from local_history.hashing import storage_key
from local_history.store import SnapshotStore, _read_sidecar, atomic_write_bytes

T1 = datetime(2024, 5, 15, 10, 0, 1)
T2 = datetime(2024, 5, 15, 10, 0, 2)
T3 = datetime(2024, 5, 15, 10, 0, 3)


class TestInit:

    def test_creates_root(self, tmp_path):
        root = tmp_path / "a" / "b" / "store"
        SnapshotStore(root)
        assert root.is_dir()

    def test_root_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(StoreUnavailableError):
            SnapshotStore(blocker)

    def test_root_under_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        with pytest.raises(StoreUnavailableError):
            SnapshotStore(blocker / "store")


class TestCapture:

    def test_layout(self, store, write_file):
        src = write_file("b.txt", "hello")
        snap = store.capture(src, now=T1)

        key_dir = store.root / storage_key(str(src))
        assert snap.storage_key == key_dir.name
        assert snap.content_path == key_dir / "2024-05-15_10-00-01_b.txt"
        assert snap.meta_path == key_dir / ("2024-05-15_10-00-01_b.txt" + META_SUFFIX)
        assert snap.content_path.read_bytes() == b"hello"
        assert snap.meta_path.read_text() == str(src)
        assert snap.original_path == str(src)
        assert snap.captured_at == T1

    def test_capture_adds_exactly_one_entry(self, store, write_file):
        src = write_file("b.txt", "v1")
        store.capture(src, now=T1)
        before = store.entries_for(src)
        src.write_text("v2")
        snap = store.capture(src, now=T2)
        after = store.entries_for(src)

        assert len(after) == len(before) + 1
        assert after[0] == snap
        assert store.read_content(snap) == b"v2"

    def test_binary_content(self, store, workspace):
        src = workspace / "blob.bin"
        payload = bytes(range(256)) * 4
        src.write_bytes(payload)
        snap = store.capture(src, now=T1)
        assert store.read_content(snap) == payload

    def test_relative_path_is_absolutized(self, store, workspace, monkeypatch):
        (workspace / "rel.txt").write_text("x")
        monkeypatch.chdir(workspace)
        snap = store.capture("rel.txt", now=T1)
        assert snap.original_path == str(workspace / "rel.txt")

    def test_missing_source(self, store, workspace):
        with pytest.raises(SourceNotFoundError):
            store.capture(workspace / "nope.txt")

    def test_directory_source(self, store, workspace):
        with pytest.raises(SourceNotFoundError):
            store.capture(workspace)

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="needs POSIX permissions")
    def test_unreadable_source(self, store, write_file):
        src = write_file("secret.txt", "x")
        src.chmod(0o000)
        try:
            with pytest.raises(PermissionDeniedError):
                store.capture(src, now=T1)
        finally:
            src.chmod(0o644)

    def test_permission_error_is_a_capture_error(self):
        assert issubclass(PermissionDeniedError, CaptureError)
        assert issubclass(SourceNotFoundError, CaptureError)

    def test_same_second_overwrites(self, store, write_file):
        src = write_file("b.txt", "first")
        store.capture(src, now=T1)
        src.write_text("second")
        store.capture(src, now=T1)

        entries = store.entries_for(src)
        assert len(entries) == 1
        assert store.read_content(entries[0]) == b"second"

    def test_no_temp_files_left(self, store, write_file):
        src = write_file("b.txt")
        snap = store.capture(src, now=T1)
        names = sorted(p.name for p in snap.content_path.parent.iterdir())
        assert names == sorted([LOCK_FILE, snap.name, snap.name + META_SUFFIX])


class TestEntriesFor:

    def test_unknown_file(self, store, workspace):
        assert store.entries_for(workspace / "never.txt") == []

    def test_newest_first(self, store, write_file):
        src = write_file("b.txt")
        for moment in (T2, T1, T3):
            store.capture(src, now=moment)
        stamps = [e.timestamp for e in store.entries_for(src)]
        assert stamps == sorted(stamps, reverse=True)
        assert len(set(stamps)) == 3

    def test_skips_content_without_sidecar(self, store, write_file):
        src = write_file("b.txt")
        snap = store.capture(src, now=T1)
        store.capture(src, now=T2)
        snap.meta_path.unlink()

        entries = store.entries_for(src)
        assert [e.timestamp for e in entries] == ["2024-05-15_10-00-02"]

    def test_skips_sidecar_without_content(self, store, write_file):
        src = write_file("b.txt")
        snap = store.capture(src, now=T1)
        snap.content_path.unlink()
        assert store.entries_for(src) == []

    def test_ignores_foreign_files(self, store, write_file):
        src = write_file("b.txt")
        store.capture(src, now=T1)
        key_dir = store.key_dir(src)
        (key_dir / "README").write_text("stray")
        (key_dir / "2024-99-99_00-00-00_b.txt").write_text("bad date")
        (key_dir / "2024-99-99_00-00-00_b.txt.meta").write_text(str(src))
        assert len(store.entries_for(src)) == 1

    def test_timestamp_ties_broken_by_name(self, store, write_file):
        """Equal timestamps are kept, not collapsed."""
        src = write_file("b.txt")
        key_dir = store.key_dir(src)
        key_dir.mkdir(parents=True)
        for name in ("2024-05-15_10-00-01_a", "2024-05-15_10-00-01_b"):
            (key_dir / name).write_text(name)
            (key_dir / (name + META_SUFFIX)).write_text(str(src))
        names = [e.name for e in store.entries_for(src)]
        assert names == ["2024-05-15_10-00-01_b", "2024-05-15_10-00-01_a"]


class TestAllEntries:

    def test_global_order(self, store, write_file):
        a = write_file("a.txt")
        b = write_file("sub/b.txt")
        store.capture(a, now=T1)
        store.capture(b, now=T2)
        store.capture(a, now=T3)

        entries = store.all_entries()
        assert [(e.original_path, e.timestamp) for e in entries] == [
            (str(a), "2024-05-15_10-00-03"),
            (str(b), "2024-05-15_10-00-02"),
            (str(a), "2024-05-15_10-00-01"),
        ]

    def test_ties_broken_by_path(self, store, write_file):
        """Same second across files gives a deterministic path order."""
        files = [write_file(name) for name in ("z.txt", "a.txt", "m.txt")]
        for f in files:
            store.capture(f, now=T1)
        paths = [e.original_path for e in store.all_entries()]
        assert paths == sorted(str(f) for f in files)

    def test_skips_deleted_originals(self, store, write_file):
        kept = write_file("kept.txt")
        gone = write_file("gone.txt")
        store.capture(kept, now=T1)
        store.capture(gone, now=T1)
        gone.unlink()

        assert [e.original_path for e in store.all_entries()] == [str(kept)]
        assert len(store.all_entries(include_missing=True)) == 2

    def test_skips_corrupt_pairs(self, store, write_file):
        a = write_file("a.txt")
        s1 = store.capture(a, now=T1)
        s2 = store.capture(a, now=T2)
        store.capture(a, now=T3)
        s1.content_path.unlink()
        s2.meta_path.unlink()

        assert [e.timestamp for e in store.all_entries()] == ["2024-05-15_10-00-03"]

    def test_ignores_non_key_entries_in_root(self, store, write_file):
        a = write_file("a.txt")
        store.capture(a, now=T1)
        (store.root / "notes.txt").write_text("stray")
        (store.root / "not-a-key").mkdir()
        assert len(store.all_entries()) == 1

    def test_empty_store(self, store):
        assert store.all_entries() == []


class TestKeyDirs:

    def test_resolve_original_path(self, store, write_file):
        a = write_file("a.txt")
        store.capture(a, now=T1)
        assert store.resolve_original_path(store.key_dir(a)) == str(a)

    def test_resolve_without_sidecars(self, store):
        key_dir = store.root / ("0" * 32)
        key_dir.mkdir()
        assert store.resolve_original_path(key_dir) is None

    def test_sidecars_agree_within_a_key(self, store, write_file):
        """Every sidecar under one key records the same original path."""
        a = write_file("a.txt")
        b = write_file("b.txt")
        for moment in (T1, T2, T3):
            store.capture(a, now=moment)
            store.capture(b, now=moment)
        for key_dir in store.iter_key_dirs():
            assert len(store.key_consistency(key_dir)) == 1


class TestReadAndDelete:

    def test_read_vanished(self, store, write_file):
        snap = store.capture(write_file("a.txt"), now=T1)
        snap.content_path.unlink()
        assert store.read_content(snap) is None

    def test_delete_removes_both_halves(self, store, write_file):
        a = write_file("a.txt")
        s1 = store.capture(a, now=T1)
        store.capture(a, now=T2)
        assert store.delete(s1)
        assert not s1.content_path.exists()
        assert not s1.meta_path.exists()
        assert len(store.entries_for(a)) == 1

    def test_delete_last_removes_key_dir(self, store, write_file):
        a = write_file("a.txt")
        snap = store.capture(a, now=T1)
        assert store.delete(snap)
        assert not store.key_dir(a).exists()

    def test_delete_twice_is_harmless(self, store, write_file):
        snap = store.capture(write_file("a.txt"), now=T1)
        assert store.delete(snap)
        assert store.delete(snap)


class TestPurge:

    def test_purge_one_file(self, store, write_file):
        a = write_file("a.txt")
        b = write_file("b.txt")
        store.capture(a, now=T1)
        store.capture(a, now=T2)
        store.capture(b, now=T1)

        assert store.purge(a) == 2
        assert store.entries_for(a) == []
        assert not store.key_dir(a).exists()
        assert len(store.entries_for(b)) == 1

    def test_purge_everything(self, store, write_file):
        for name in ("a.txt", "b.txt", "c.txt"):
            store.capture(write_file(name), now=T1)
        assert store.purge() == 3
        assert list(store.iter_key_dirs()) == []
        assert store.root.is_dir()


class TestAtomicWrite:

    def test_write_and_overwrite(self, tmp_path):
        target = tmp_path / "deep" / "file.bin"
        atomic_write_bytes(target, b"one")
        atomic_write_bytes(target, b"two")
        assert target.read_bytes() == b"two"
        assert [p.name for p in target.parent.iterdir()] == ["file.bin"]

    def test_no_partial_files_on_error(self, tmp_path, monkeypatch):
        target = tmp_path / "file.bin"

        def boom(*args, **kwargs):
            raise OSError("Simulated rename failure")

        monkeypatch.setattr(os, "replace", boom)
        with pytest.raises(OSError):
            atomic_write_bytes(target, b"data")
        assert list(tmp_path.iterdir()) == []


class TestSidecarPairing:

    def test_file_named_like_a_sidecar(self, store, write_file):
        src = write_file("notes.meta", "remember")
        before = len(store.entries_for(src))
        snap = store.capture(src, now=T1)
        entries = store.entries_for(src)
        assert len(entries) == before + 1
        assert entries[0].content_path == snap.content_path
        assert store.read_content(entries[0]) == b"remember"

    def test_file_named_like_a_sidecar_in_global_listing(self, store, write_file):
        src = write_file("notes.meta")
        store.capture(src, now=T1)
        store.capture(src, now=T2)
        assert [e.basename for e in store.all_entries()] == ["notes.meta", "notes.meta"]
        assert store.resolve_original_path(store.key_dir(src)) == str(src)
        assert store.key_consistency(store.key_dir(src)) == {str(src)}

    def test_purge_counts_files_named_like_sidecars(self, store, write_file):
        src = write_file("notes.meta")
        store.capture(src, now=T1)
        store.capture(src, now=T2)
        assert store.purge() == 2
        assert list(store.root.iterdir()) == []

    def test_corrupt_sidecar_is_skipped(self, store, write_file):
        a = write_file("a.txt")
        bad = store.capture(a, now=T1)
        store.capture(a, now=T2)
        bad.meta_path.write_text("relative/path.txt")
        assert [e.timestamp for e in store.all_entries()] == ["2024-05-15_10-00-02"]
        assert store.key_consistency(store.key_dir(a)) == {str(a)}

    def test_empty_sidecar_is_rejected(self, store, write_file):
        snap = store.capture(write_file("a.txt"), now=T1)
        snap.meta_path.write_text("")
        with pytest.raises(CorruptEntryError):
            _read_sidecar(snap.meta_path)
