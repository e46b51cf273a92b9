"""
Logging setup for the rifa system
Console output for operators, optional rotating file with call-site detail
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

CONSOLE_FORMAT = '[%(asctime)s] %(levelname)-8s %(message)s'
FILE_FORMAT = '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'

# Loggers configured alongside the main one (helpers log under their own names)
COMPANION_LOGGERS = ('utils',)


def _file_handler(log_file, level):
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(app_name='rifa_system', log_level=None, log_file=None):
    """
    Configure the rifa_system logger tree (and the helper loggers)

    Module loggers such as rifa_system.draw are children of app_name, so
    one call covers the whole package.

    Args:
        app_name: Root logger name to configure
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (env LOG_LEVEL)
        log_file: Path of a rotating log file (env LOG_FILE); console only if unset

    Returns:
        logging.Logger: the configured app_name logger
    """
    log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_file = log_file or os.getenv('LOG_FILE') or None
    level = getattr(logging, log_level, logging.INFO)

    handlers = []
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    handlers.append(console)

    file_error = None
    if log_file:
        try:
            handlers.append(_file_handler(log_file, level))
        except OSError as e:
            file_error = e

    for name in (app_name,) + COMPANION_LOGGERS:
        target = logging.getLogger(name)
        target.setLevel(level)
        target.handlers.clear()
        for handler in handlers:
            target.addHandler(handler)
        target.propagate = False

    logger = logging.getLogger(app_name)
    if file_error:
        logger.error(f"Failed to setup file logging at {log_file}: {file_error}")
    elif log_file:
        logger.info(f"File logging enabled: {log_file}")
    return logger


def log_api_call(logger, api_name, endpoint, status_code=None, duration=None):
    """Log an outbound HTTP call; non-2xx answers are logged as warnings"""
    msg = f"API Call: {api_name} -> {endpoint}"
    if status_code:
        msg += f" [HTTP {status_code}]"
    if duration:
        msg += f" ({duration:.2f}s)"

    if status_code and not 200 <= status_code < 300:
        logger.warning(msg)
    else:
        logger.info(msg)


def log_error(logger, error, context=None):
    """Log error with optional context and its traceback"""
    if context:
        logger.error(f"{context}: {error}", exc_info=error)
    else:
        logger.error(str(error), exc_info=error)
