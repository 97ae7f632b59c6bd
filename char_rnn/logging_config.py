"""Logging configuration for the training and sampling scripts."""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from char_rnn.exceptions import ConfigurationError

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    format_string: Optional[str] = None,
) -> None:
    """Replace loguru's default handler with a stderr sink and an optional file sink.

    Args:
        level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL').
        log_file: If given, also write plain (uncolored) logs to this file.
        format_string: Custom format string.
    """
    format_string = format_string or DEFAULT_FORMAT
    try:
        logger.remove()
        logger.add(sys.stderr, format=format_string, level=level.upper(), colorize=True)

        if log_file is not None:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(log_path, format=format_string, level=level.upper(), colorize=False)
            logger.info(f"Logging to file: {log_path}")
    except (ValueError, OSError) as e:
        raise ConfigurationError(f"Failed to setup logging: {e}") from e

    logger.debug(f"Logging initialized at level: {level.upper()}")
