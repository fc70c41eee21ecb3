"""
Logging configuration for the groups provider.

The provider runs inside a host application, so handlers are only ever attached
to the ``crowd_groups`` package logger. Root logger handlers and levels belong
to the host and are left alone.
"""

import os
import re
import logging
import logging.handlers
from typing import Dict, Any, List

PACKAGE_LOGGER = 'crowd_groups'

_installed_handlers: List[logging.Handler] = []


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub directory credentials from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'application_password', 'bind_password', 'token', 'secret',
        'credential', 'pwd', 'api_key', 'client_secret', 'access_token'
    ]

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = record.getMessage()

            for keyword in self.SENSITIVE_KEYWORDS:
                # key=value
                msg = re.sub(rf'({keyword}\s*=\s*)[^\s,}}\]]+', r'\1****', msg, flags=re.IGNORECASE)
                # "key": "value" and 'key': 'value'
                msg = re.sub(rf'([\'"]{keyword}[\'"]\s*:\s*[\'"])[^\'"]*([\'"])', r'\1****\2', msg,
                             flags=re.IGNORECASE)

            msg = re.sub(r'(Authorization[\'"]?:\s*[\'"]?(?:Basic|Bearer)\s+)[^\s,\'"}\]]+', r'\1****', msg,
                         flags=re.IGNORECASE)

            record.msg = msg
            record.args = ()

        return True


def _file_handler(log_file: str, rotation: str, retention_days: int) -> logging.Handler:
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    if rotation.lower() in ('daily', 'midnight'):
        # backupCount prunes rotated files, so retention needs no separate sweep
        handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_file,
            when='midnight',
            backupCount=retention_days,
            encoding='utf-8'
        )
        handler.suffix = '%Y-%m-%d'
        return handler
    return logging.FileHandler(log_file, encoding='utf-8')


def setup_logging(config: Dict[str, Any]) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        config: Logging configuration dictionary with optional keys level,
            log_file, rotation, retention_days, console_output and propagate

    Returns:
        The package logger
    """
    config = config or {}
    reset_logging()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    level = getattr(logging, str(config.get('level', 'INFO')).upper(), logging.INFO)
    package_logger.setLevel(level)
    package_logger.propagate = config.get('propagate', True)

    handlers = []
    log_file = config.get('log_file')
    if log_file:
        handlers.append(_file_handler(log_file, config.get('rotation', 'daily'), config.get('retention_days', 7)))
    if config.get('console_output', False):
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    sensitive_filter = SensitiveDataFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(sensitive_filter)
        package_logger.addHandler(handler)
        _installed_handlers.append(handler)

    package_logger.debug(f"Logging configured: level={logging.getLevelName(level)}, "
                         f"file={log_file}, propagate={package_logger.propagate}")
    return package_logger


def reset_logging() -> None:
    """Remove the handlers installed by setup_logging."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        package_logger.removeHandler(handler)
        handler.close()
