"""
Package logging.

Modules log through `get_logger(__name__)` and stay silent until the CLI
calls `configure_logging()` once at startup. The level comes from
`--verbose`, else AMAZON_LEDGER_SYNC_LOG_LEVEL, else INFO.
"""
import logging
import os
import sys
from typing import IO, Optional

PACKAGE = "amazon_ledger_sync"
LEVEL_ENV_VAR = "AMAZON_LEDGER_SYNC_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_package_logger = logging.getLogger(PACKAGE)
_package_logger.addHandler(logging.NullHandler())


def configure_logging(level: Optional[str] = None, stream: IO[str] = sys.stderr) -> None:
    """
    Send package records to stderr.

    Args:
        level: Level name such as "DEBUG". Unknown names fall back to INFO.
        stream: Where records go
    """
    if any(isinstance(h, logging.StreamHandler) for h in _package_logger.handlers):
        return

    name = (level or os.getenv(LEVEL_ENV_VAR) or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _package_logger.addHandler(handler)
    _package_logger.setLevel(resolved)
    _package_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
