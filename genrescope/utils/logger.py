"""Logging utilities."""

import logging
from pathlib import Path

from genrescope.core.config import LoggingConfig


def setup_logging(config: LoggingConfig) -> None:
    """Setup application logging.

    Args:
        config: Logging configuration
    """
    level = getattr(logging, config.level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")

    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
        force=True,
    )
    # librosa/audioread report decoding problems as warnings
    logging.captureWarnings(True)
