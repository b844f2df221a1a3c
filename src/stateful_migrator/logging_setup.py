"""
Shared logging configuration for the stateful-migrator commands.

Console handler (INFO by default, DEBUG when verbose) and an optional
file handler that always captures DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime


def setup_logging(
    verbose: bool = False,
    log_prefix: str = "stateful_migrator",
    log_dir: str = "",
) -> str:
    """Configure the root logger.

    - Console handler on stderr: INFO+, DEBUG when *verbose* is True.
    - File handler: only when *log_dir* is set; always DEBUG, writes to
      ``<log_dir>/<prefix>_<timestamp>.log``.

    Returns the path to the log file, or ``""`` when logging to console only.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers (e.g. from basicConfig)
    root_logger.handlers.clear()

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.INFO)

    log_path = ""
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
        log_path = os.path.join(log_dir, f"{log_prefix}_{timestamp}.log")
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-8s  %(threadName)s  %(name)s  %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    ))
    root_logger.addHandler(console_handler)

    return log_path
