# sessionguard/core/logging_config.py
"""Logging configuration for sessionguard"""

import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_NAME = 'sessionguard.log'


def setup_logging():
    """
    Configure the root logger once: console output, plus a rotating
    file under LOG_DIR unless LOG_DIR is set to an empty value.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    if not any(isinstance(h, logging.StreamHandler) for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    log_dir = os.getenv("LOG_DIR", "logs")
    if log_dir:
        log_file = Path(log_dir) / LOG_FILE_NAME
        if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == os.path.abspath(log_file) for h in root_logger.handlers):
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_file),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    # One line per request already comes from the app's own request logger
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return root_logger
