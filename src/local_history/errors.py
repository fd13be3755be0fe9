"""Custom exceptions for local-history.

Most of these never escape the package: listing and retention convert
per-entry failures into skipped entries. Only StoreUnavailableError is
meant to reach the caller as a fatal condition.
"""


class HistoryError(RuntimeError):
    """Base class for all history-related errors."""
    pass


# Store Errors
class StoreUnavailableError(HistoryError):
    """The store root cannot be created or accessed."""

    def __init__(self, root, reason: str):
        self.root = root
        super().__init__(
            f"History store at {root} is not usable: {reason}"
        )


# Capture Errors
class CaptureError(HistoryError):
    """Base class for failures while capturing a snapshot."""
    pass


class SourceNotFoundError(CaptureError):
    """The file to capture does not exist (or is not a regular file)."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cannot capture {path}: file does not exist")


class PermissionDeniedError(CaptureError):
    """Reading the source or writing the snapshot was refused by the OS."""

    def __init__(self, path: str, operation: str = "capture"):
        self.path = path
        self.operation = operation
        super().__init__(f"Permission denied during {operation} of {path}")


# Snapshot Errors
class SnapshotNotFoundError(HistoryError):
    """Snapshot content vanished between listing and reading."""

    def __init__(self, location):
        self.location = location
        super().__init__(f"Snapshot no longer exists: {location}")


class CorruptEntryError(HistoryError):
    """Sidecar does not record a usable (absolute) original path."""
    pass


# Configuration Errors
class ConfigInvalidError(HistoryError):
    """Configuration value could not be parsed or validated."""
    pass
