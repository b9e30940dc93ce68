import logging
import os
from typing import Optional

from ..core.exceptions import ConfigError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "NUGET_PROTOCOL_LOG_LEVEL"

_handler: Optional[logging.Handler] = None


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the package logger.

    The level comes from the argument, then the NUGET_PROTOCOL_LOG_LEVEL
    environment variable, then INFO. Calling this again only updates the level.
    An unknown level name raises ConfigError.
    """
    global _handler

    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    root = logging.getLogger("nuget_protocol")
    try:
        root.setLevel(level_name)
    except ValueError as e:
        raise ConfigError(f"Invalid log level: {str(e)}") from e

    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_handler)
