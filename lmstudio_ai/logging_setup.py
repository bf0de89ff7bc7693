"""
Logging configuration for the LM Studio AI helpers.
"""

import datetime
import logging
import os
import sys
from typing import Optional
from .config import AppConfig


def setup_logging(config: AppConfig, log_prefix: Optional[str] = None) -> None:
    """
    Configure logging based on settings.

    Args:
        config: Application configuration
        log_prefix: Optional prefix for the log file name
    """
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    log_file = config.log_file

    # Timestamped log file if a prefix is given but no explicit file
    if not log_file and log_prefix and config.debug_mode:
        timestamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        log_file = f"{log_prefix}_{timestamp}.log"

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        logging.basicConfig(
            filename=log_file,
            level=log_level,
            format=log_format
        )

        if config.debug_mode:
            console = logging.StreamHandler(sys.stderr)
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(log_format))
            logging.getLogger('').addHandler(console)
    else:
        logging.basicConfig(
            level=log_level,
            format=log_format,
            stream=sys.stderr
        )

    # Third-party loggers are noisy at DEBUG
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)

    logging.debug(f"Logging initialized. Using AI provider: {config.llm.provider_type}")

    if config.debug_mode:
        logging.debug("Debug mode enabled")
        logging.debug(f"Python version: {sys.version}")
        logging.debug(f"Platform: {sys.platform}")
        logging.debug("Configuration summary:")
        logging.debug(f"  Endpoint: {config.llm.api_url}")
        logging.debug(f"  Model: {config.llm.model or '(server default)'}")
        logging.debug(f"  Max retries: {config.max_retries}")
        logging.debug(f"  Preferences database: {config.preferences_db_path or '(default)'}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: Name for the logger

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
