# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/system/logging_setup.py

import sys

from loguru import logger

from devbox.config.manager import Config


def setup_logging(config: Config | None = None, debug: bool = False, verbose: bool = False) -> None:
    """Setup loguru logging for the entire application.

    Configures:
    - Console output: WARNING+ (INFO+ with verbose, DEBUG+ with debug)
    - File output: DEBUG+ if local_log is configured in user config
    """
    logger.remove()

    console_level = "DEBUG" if debug else "INFO" if verbose else "WARNING"
    logger.add(
        sys.stderr,
        level=console_level,
        format="<level>{level}</level>: {message}",
        colorize=True
    )

    if config is None or config.user.local_log is None:
        return

    try:
        log_dir = config.user.local_log
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "devbox.log"

        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="30 days",
            compression="gz"
        )
        logger.debug(f"File logging enabled: {log_file}")

    except Exception as e:
        # Don't fail the entire application if logging setup fails
        logger.warning(f"Failed to setup file logging: {e}")
