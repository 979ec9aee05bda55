"""
logger.py - Logging utilities for the ACR122U bridge.

All loggers of the application live under the 'acr122u_bridge' logger, which
setup_logger configures once at startup (console plus optional rotating file).
"""

import logging
import os
from logging.handlers import RotatingFileHandler

ROOT_LOGGER_NAME = 'acr122u_bridge'

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def parse_level(level):
    """
    Convert a level name ('debug', 'INFO', ...) or number to a logging level.

    Raises:
        ValueError: If the name is not a logging level
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logger(name=ROOT_LOGGER_NAME, log_file=None, level=logging.INFO,
                 max_bytes=10 * 1024 * 1024, backup_count=5):
    """
    Set up a logger with consistent formatting.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        name (str): Logger name, the application root logger by default
        log_file (str, optional): Path to log file, if None logs to console only
        level (int or str, optional): Logging level
        max_bytes (int): Size at which the log file is rotated
        backup_count (int): Number of rotated files kept

    Returns:
        Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))

    for handler in list(logger.handlers):
        if getattr(handler, '_bridge_handler', False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler._bridge_handler = True
    logger.addHandler(console_handler)

    if log_file:
        log_file = os.path.expanduser(log_file)
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(formatter)
        file_handler._bridge_handler = True
        logger.addHandler(file_handler)

    return logger


def get_logger(name):
    """
    Get an application logger.

    Names outside the application namespace are placed under it, so every
    logger shares the handlers installed by setup_logger.

    Args:
        name (str): Logger name

    Returns:
        Logger: Logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + '.'):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_global_log_level(level):
    """
    Set the log level for all application loggers.

    Args:
        level (int or str): Logging level (e.g., logging.INFO or 'debug')
    """
    level = parse_level(level)
    for logger_name in list(logging.root.manager.loggerDict):
        if logger_name == ROOT_LOGGER_NAME or logger_name.startswith(ROOT_LOGGER_NAME + '.'):
            logging.getLogger(logger_name).setLevel(level)


class LoggerMixin:
    """
    Mixin class to add logging capabilities to any class.

    Usage:
        class MyClass(LoggerMixin):
            def __init__(self):
                self.setup_logger()

            def some_method(self):
                self.logger.info("Some message")
    """

    def setup_logger(self, name=None):
        """
        Set up logger for this instance.

        Args:
            name (str, optional): Logger name, defaults to class name
        """
        if not name:
            name = self.__class__.__name__

        self.logger = get_logger(name)
