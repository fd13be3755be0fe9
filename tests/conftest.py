"""Shared test fixtures and utilities."""

from datetime import datetime, timedelta
from pathlib import Path
import pytest

from local_history.config import HistoryConfig
from local_history.constants import STORE_ENV_VAR
from local_history.gate import DebounceState
from local_history.service import HistoryDeps, LocalHistory
from local_history.store import SnapshotStore


class FakeClock:
    """Controllable wall clock and monotonic clock for tests."""

    def __init__(self, start: datetime = datetime(2024, 5, 15, 14, 30, 0)):
        self.current = start
        self.ticks = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.ticks

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.ticks += seconds


@pytest.fixture(autouse=True)
def no_store_override(monkeypatch):
    """Keep a developer's LOCAL_HISTORY_STORE out of the tests."""
    monkeypatch.delenv(STORE_ENV_VAR, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_root(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def store(store_root):
    return SnapshotStore(store_root)


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def write_file(workspace):
    """Factory fixture to write files relative to the workspace."""
    def _write(path: str, content: str = "test content") -> Path:
        file_path = workspace / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def make_history(store_root, workspace, clock):
    """Factory fixture building a LocalHistory on fake clocks."""
    def _make(**overrides) -> LocalHistory:
        config = HistoryConfig(store_root=store_root, **overrides)
        deps = HistoryDeps(now=clock.now, monotonic=clock.monotonic, debounce=DebounceState())
        return LocalHistory(config, workspace=workspace, deps=deps)
    return _make
