"""Glob-style exclusion matching for change notifications."""

import logging
import os
import re
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Union

from pathspec import PathSpec
from pathspec.patterns import GitWildMatchPattern

from .constants import LOCAL_HISTORY_DIR

logger = logging.getLogger(__name__)

# Always excluded, whatever the configured patterns say
INTERNAL = [
    # local-history metadata
    f"{LOCAL_HISTORY_DIR}/",
]

# "**/<name>/**" with a plain directory name
_DIR_ANYWHERE = re.compile(r"^\*\*/([^/*?\[\]!\\]+)/\*\*$")


def _is_under(path: str, directory: str) -> bool:
    try:
        return os.path.commonpath([path, directory]) == directory
    except ValueError:
        return False


def _compile_one(pattern: str) -> Optional[GitWildMatchPattern]:
    """Compile a single pattern, or None if it cannot be parsed."""
    try:
        return GitWildMatchPattern(pattern)
    except (ValueError, TypeError) as e:
        logger.warning("Ignoring invalid exclusion pattern %r: %s", pattern, e)
        return None


class ExclusionSpec:
    """Decides whether a path is excluded from history.

    Paths are matched relative to ``base`` when they live under it, and as
    root-stripped absolute POSIX paths otherwise. Unparsable patterns never
    match. The history metadata directory and any ``internal_dirs`` (the
    snapshot store itself) are excluded regardless of the patterns.

    Patterns of the form ``**/<dir>/**`` (version-control internals,
    dependency directories, the history directory) are answered by a path
    segment test instead of the compiled spec. Both give the same answer.
    """

    def __init__(
        self,
        patterns: Iterable[str] = (),
        base: Optional[Path] = None,
        internal_dirs: Iterable[Union[str, Path]] = (),
    ):
        """Initialize with exclusion patterns.

        Args:
            patterns: gitignore-style glob patterns
            base: Workspace root that relative matching is anchored at
            internal_dirs: Absolute directories whose contents are never
                tracked
        """
        self.base = Path(base).resolve() if base else None
        self.internal_dirs = set()
        for directory in internal_dirs:
            self.internal_dirs.add(os.path.abspath(directory))
            self.internal_dirs.add(str(Path(directory).resolve()))
        self._internal = PathSpec.from_lines(GitWildMatchPattern, INTERNAL)
        self.patterns: List[str] = []
        for pattern in patterns:
            if _compile_one(pattern) is not None:
                self.patterns.append(pattern)

        # Compile patterns once for efficiency
        self.spec = PathSpec.from_lines(GitWildMatchPattern, self.patterns)

        # Negations make evaluation order significant; skip the shortcut then
        has_negation = any(p.startswith("!") for p in self.patterns)
        self._fast_dirs = set()
        if not has_negation:
            for pattern in self.patterns:
                match = _DIR_ANYWHERE.match(pattern)
                if match:
                    self._fast_dirs.add(match.group(1))

    def relative(self, path: Union[str, Path]) -> str:
        """POSIX form of ``path`` used for matching."""
        p = Path(path)
        if self.base is not None and p.is_absolute():
            try:
                return p.relative_to(self.base).as_posix()
            except ValueError:
                pass
        posix = p.as_posix()
        # Absolute paths outside the workspace match as if rooted at "/"
        return posix.lstrip("/") if p.is_absolute() else posix

    def matches(self, path: Union[str, Path]) -> bool:
        """Check if a path is excluded.

        Args:
            path: Absolute path, or a path already relative to ``base``

        Returns:
            True if the path matches any exclusion pattern
        """
        if self.internal_dirs and Path(path).is_absolute():
            absolute = os.path.abspath(path)
            if any(_is_under(absolute, d) for d in self.internal_dirs):
                return True

        relpath = self.relative(path)
        if not relpath or relpath == ".":
            return False
        if self._internal.match_file(relpath):
            return True

        if self._fast_dirs:
            dirs = PurePosixPath(relpath).parts[:-1]
            if any(part in self._fast_dirs for part in dirs):
                return True

        return self.spec.match_file(relpath)

    def __bool__(self) -> bool:
        return bool(self.patterns)
