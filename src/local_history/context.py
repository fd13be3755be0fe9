"""Workspace context for managing paths and workspace discovery."""

import os
from pathlib import Path
from typing import Optional, Union

from .config import HistoryConfig, config_path_for, load_history_config
from .constants import LOCAL_HISTORY_DIR


class WorkspaceContext:
    """Manages workspace root discovery and path resolution.

    A workspace is any directory holding a ``.local-history`` marker. Without
    one, the starting directory itself is used with default configuration.
    """

    def __init__(self, start_path: Optional[Path] = None):
        """Initialize context by finding the workspace root.

        Args:
            start_path: Path to start searching for the workspace root
        """
        start = (start_path or Path.cwd()).resolve()
        found = self._find_root(start)
        self.root = found or start
        self.initialized = found is not None
        self._config: Optional[HistoryConfig] = None

    @classmethod
    def is_initialized(cls, path: Optional[Path] = None) -> bool:
        """Check if a specific directory is initialized (without traversing up)."""
        target = path or Path.cwd()
        return (target / LOCAL_HISTORY_DIR).exists()

    @classmethod
    def init(cls, path: Optional[Path] = None) -> "WorkspaceContext":
        """Initialize a new workspace at the given path."""
        target = path or Path.cwd()
        marker = target / LOCAL_HISTORY_DIR
        marker.mkdir(parents=True, exist_ok=True)
        return cls(target)

    def _find_root(self, start: Path) -> Optional[Path]:
        """Walk up directory tree to find the workspace root."""
        current = start

        while current != current.parent:
            if (current / LOCAL_HISTORY_DIR).is_dir():
                return current
            current = current.parent

        # Check root directory
        if (current / LOCAL_HISTORY_DIR).is_dir():
            return current
        return None

    def absolute(self, path: Union[str, Path]) -> Path:
        """Absolute form of a path given relative to the current directory."""
        return Path(os.path.abspath(Path(path).expanduser()))

    @property
    def storage_dir(self) -> Path:
        """Get the workspace marker directory."""
        return self.root / LOCAL_HISTORY_DIR

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return config_path_for(self.root)

    @property
    def config(self) -> HistoryConfig:
        """Workspace configuration (memoized)."""
        if self._config is None:
            self._config = load_history_config(self.root)
        return self._config
