"""
weighbridge/services/logging.py

Centralised logging for the weighing station. Falls back to a temporary
directory, and finally to console only, when the home directory is not
writable.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "weighbridge"


def _resolve_log_file() -> Optional[Path]:
    candidates = []
    env_dir = os.environ.get("WEIGHBRIDGE_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(Path.home() / ".weighbridge" / "logs")
    candidates.append(Path("/tmp") / "weighbridge_logs")
    for directory in candidates:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            print(f"Warning: cannot create log directory {directory}: {exc}", file=sys.stderr)
            continue
        return directory / "weighbridge.log"
    return None


def setup_logging(level=logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure rotating logging for the ``weighbridge`` logger tree.
    - Default level: INFO
    - Max size: 1 MB
    - 3 rotated files kept
    Calling it again returns the already configured logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    target = log_file or _resolve_log_file()
    if target is not None:
        try:
            file_handler = RotatingFileHandler(
                target, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: cannot write log file: {e}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.info("Logging initialised")
    return logger
