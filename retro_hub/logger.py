import logging
import sys
from pathlib import Path

import appdirs

LOGGER_NAME = "RetroHub"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"


def get_log_path(log_file_name="retro_hub.log") -> Path:
    """Per-user log file location."""
    return Path(appdirs.user_log_dir("retro-gaming-hub", False)) / log_file_name


def setup_logger(log_file_name="retro_hub.log"):
    """
    Setups the initial logger.
    param: log_file_name: filename to be used for the logfile.
    return: logger instance created.
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Check if the logger has already been configured
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        log_format = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(log_format)
        logger.addHandler(console_handler)

        log_file_path = get_log_path(log_file_name)
        try:
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {log_file_path}: {e}")
        else:
            file_handler.setFormatter(log_format)
            logger.addHandler(file_handler)

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    return logger


def set_log_level(level):
    """
    Apply a level (name or number) to the shared logger.
    @param: level: e.g. "INFO" or logging.DEBUG.
    """
    logger = setup_logger()
    if isinstance(level, str):
        level = level.upper()
    logger.setLevel(level)
    return logger
