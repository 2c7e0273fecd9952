"""Logging setup shared by the web app and the CLI."""

import logging
import sys

from jengatrack.core.settings import ConfigurationError, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once.

    Args:
        level: Log level name. Defaults to LOG_LEVEL from settings, or INFO
            when settings cannot be loaded yet.
    """
    global _configured

    if level is None:
        try:
            level = get_settings().LOG_LEVEL
        except ConfigurationError:
            level = "INFO"

    root = logging.getLogger()
    root.setLevel(level.upper())

    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
