"""Snapshot timestamp and file name encoding.

Timestamps use local time at second granularity in a fixed-width form
(``YYYY-MM-DD_HH-MM-SS``), so lexicographic order equals chronological
order. Snapshot files are named ``{timestamp}_{basename}``.
"""

from datetime import datetime
from typing import Optional, Tuple
import re

from .constants import TIMESTAMP_FORMAT

_SNAPSHOT_NAME = re.compile(r"^(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})_(.+)$")


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Encode a datetime (default: now, local time) as a snapshot timestamp."""
    moment = moment or datetime.now()
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(timestamp: str) -> datetime:
    """Decode a snapshot timestamp into a naive local datetime.

    Raises:
        ValueError: If the string is not a valid timestamp
    """
    return datetime.strptime(timestamp, TIMESTAMP_FORMAT)


def snapshot_name(timestamp: str, basename: str) -> str:
    """Build the content file name for a snapshot."""
    return f"{timestamp}_{basename}"


def parse_snapshot_name(name: str) -> Optional[Tuple[str, str]]:
    """Split a content file name into (timestamp, original basename).

    Returns None for lock files and any name without a valid timestamp
    prefix, including timestamps that are not real calendar dates. A
    sidecar name parses too (a tracked file may itself end in ``.meta``);
    the store tells blobs from sidecars by pairing.
    """
    match = _SNAPSHOT_NAME.match(name)
    if not match:
        return None
    timestamp, basename = match.group(1), match.group(2)
    try:
        parse_timestamp(timestamp)
    except ValueError:
        return None
    return timestamp, basename
