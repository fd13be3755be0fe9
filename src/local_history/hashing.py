"""Path hashing for storage keys.

Each tracked file's history lives in a directory named after a digest of
its absolute path. The key is one-way: the original path is recovered from
snapshot sidecars, never from the key itself.
"""

from pathlib import Path
from typing import Union
import hashlib
import re


STORAGE_KEY_LENGTH = 32

_HEX32 = re.compile(r"^[0-9a-f]{32}$")


def storage_key(path: Union[str, Path]) -> str:
    """Compute the storage key for a file path.

    MD5 is used as a 128-bit spreading function, not for integrity.
    Collisions between distinct paths are accepted as a known risk.

    Args:
        path: Absolute path of the tracked file

    Returns:
        32-character lowercase hex digest

    Example:
        >>> storage_key("/home/user/project/main.py")
        '...'  # always the same 32 hex chars for this path
    """
    # surrogateescape keeps undecodable filename bytes hashable
    data = str(path).encode("utf-8", errors="surrogateescape")
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def is_storage_key(name: str) -> bool:
    """Check whether a directory name looks like a storage key."""
    return bool(_HEX32.fullmatch(name))


__all__ = [
    "STORAGE_KEY_LENGTH",
    "storage_key",
    "is_storage_key",
]
