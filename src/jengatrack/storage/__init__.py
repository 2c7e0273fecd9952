"""
JengaTrack Storage

Models mapping the hosted database schema and the repository used by the
webhook, dashboard and CLI.
"""

from jengatrack.storage.repository import (
    DataAccessError,
    DataResult,
    JengaTrackRepository,
    normalize_phone,
)

__all__ = [
    "DataAccessError",
    "DataResult",
    "JengaTrackRepository",
    "normalize_phone",
]
