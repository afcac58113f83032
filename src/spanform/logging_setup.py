"""
Logging setup for spanform.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import List

from .config import LoggingConfig


def setup_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Configure root logging from a LoggingConfig."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    level = logging.DEBUG if debug else getattr(logging, config.level, logging.INFO)
    logging.basicConfig(
        level=level, format=config.format, handlers=handlers, force=True
    )

    # Client libraries are chatty at DEBUG
    for noisy in ("google", "urllib3", "grpc"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
