"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# Pillow logs every chunk it parses at DEBUG.
NOISY_LOGGERS = ("PIL",)


def parse_level(level: str) -> int:
    """Translate a string log level into logging constant."""
    value = getattr(logging, level.upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure root logger for CLI tools."""
    logging.basicConfig(level=parse_level(level), format=LOG_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
