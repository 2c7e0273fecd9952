"""
JengaTrack Core

Settings, database session, logging and Redis helpers shared by every
entry point (web app, CLI).
"""

from jengatrack.core.settings import ConfigurationError, Settings, get_settings

__all__ = [
    "ConfigurationError",
    "Settings",
    "get_settings",
]
