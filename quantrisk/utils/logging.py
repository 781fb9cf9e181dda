# quantrisk/utils/logging.py

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_installed_handlers = []


def setup_logging(level: Union[int, str] = logging.INFO,
                  log_file: Optional[Union[str, Path]] = None,
                  console: bool = True):
    """
    Sets up logging to the console (stderr) and optionally to a file.

    Calling it again replaces the handlers installed by the previous call.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    root.setLevel(level)
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    if console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        _installed_handlers.append(handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path)
        handler.setFormatter(formatter)
        _installed_handlers.append(handler)

    for handler in _installed_handlers:
        root.addHandler(handler)


def setup_logging_from_config(config):
    """Apply a LoggingConfig section."""
    setup_logging(config.log_level, config.log_file, config.console_logging)
