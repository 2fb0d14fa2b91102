"""Logging setup for the API, CLI and background capture threads."""

import logging
import sys

from guardian.core.config import get_config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """
    Configure application logging.

    Invariants:
    - The root logger level comes from the explicit level argument, else Settings.log_level.
    - Exactly one stdout handler is installed; calling again replaces it instead of duplicating.
    - Capture threads log through the same root handler, so background failures show up
      next to the request that started them.
    """
    cfg = get_config()
    level_name = (level or cfg.log_level or "INFO").upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(resolved)
    # Remove existing handlers so we don't duplicate when called again
    for h in root.handlers[:]:
        root.removeHandler(h)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(resolved)
    console.setFormatter(formatter)
    root.addHandler(console)
