"""Logging configuration for the command line and TUI front ends."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .platform_utils import get_data_dir

LOG_FILE_NAME = 'ssh-conn.log'


def setup_logging(verbose: bool = False, console: bool = True, log_dir: Optional[str] = None) -> str:
    """Set up logging configuration and return the log file path.

    The file handler always records INFO and above (DEBUG when *verbose*);
    the console only shows warnings unless *verbose* is set so that it does
    not interleave with the ssh session output.
    """
    log_dir = log_dir or get_data_dir()
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, LOG_FILE_NAME)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    # Clear any existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    effective_level = logging.DEBUG if verbose else logging.INFO

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(effective_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.setLevel(effective_level)
    logging.getLogger('asyncio').setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger('keyring').setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger('sshconn').setLevel(effective_level)
    return log_path
