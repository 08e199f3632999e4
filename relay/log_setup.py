"""Logging configuration: console plus a size-capped log file."""
from __future__ import annotations

import logging
import logging.handlers
import os
from typing import Any

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _level(name: str, default: int = logging.INFO) -> int:
    return getattr(logging, str(name).upper(), default)


def configure_logging(config: dict[str, Any], debug: bool = False) -> list[logging.Handler]:
    """Replace the root logger's handlers according to the [logging] section.

    Returns the installed handlers (empty when silent).
    """
    log_cfg = config.get('logging', {})
    general = config.get('general', {})
    root = logging.getLogger()

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if log_cfg.get('silent', False):
        root.addHandler(logging.NullHandler())
        return []

    console_level = logging.DEBUG if debug else _level(log_cfg.get('console_level', general.get('log_level', 'INFO')))
    file_level = logging.DEBUG if debug else _level(log_cfg.get('file_level', 'INFO'))
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)
    handlers.append(console)

    log_file = log_cfg.get('file', '')
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=log_cfg.get('file_max_bytes', 100 * 1024),
                backupCount=1,
            )
        except OSError as e:
            logging.getLogger(__name__).warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.setLevel(file_level)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))
    return handlers
