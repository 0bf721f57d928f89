"""
Logging setup.
"""

from __future__ import annotations

import logging
import os

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(log_path: str, log_level: str) -> None:
    """
    Configure the root logger with a file handler and a console handler.

    Args:
        log_path: Log file; its directory is created if missing.
        log_level: One of VALID_LOG_LEVELS (case-insensitive).
    """
    level_name = str(log_level).upper()
    if level_name not in VALID_LOG_LEVELS:
        raise ValueError(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level_name),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler(),
        ],
        force=True,
    )
    # Per-request access lines drown out pipeline logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
