# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tagmigrate Logging

Console and rotating file logging for the deployment and migration
components. Component modules log through ``logging.getLogger("tagmigrate.*")``;
this module only decides where those records go.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional


class TagMigrateLogger:
    """
    Configures one named logger with console and file output.

    Features:
    - Console and file logging
    - Automatic log rotation
    - Structured log format with timestamps
    """

    def __init__(
        self,
        name: str = "tagmigrate",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        console_output: bool = True,
        file_output: bool = True
    ):
        self.name = name
        self.logger = logging.getLogger(name)

        # Clear any existing handlers
        self.logger.handlers.clear()

        self.logger.setLevel(self._parse_level(level))

        console_formatter = logging.Formatter(
            fmt='[%(asctime)s] [%(name)s:%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(console_formatter)
            console_handler.setLevel(self._parse_level(level))
            self.logger.addHandler(console_handler)

        if file_output:
            if log_dir is None:
                log_dir = Path.home() / ".tagmigrate" / "logs"

            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"{name}.log"

            # Rotate after 10MB, keep 5 backup files
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(file_formatter)
            file_handler.setLevel(logging.DEBUG)  # File gets everything
            self.logger.addHandler(file_handler)

    def _parse_level(self, level: str) -> int:
        """Convert string level to logging constant"""
        levels = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL
        }
        return levels.get(level.upper(), logging.INFO)

    def set_level(self, level: str):
        """Change log level dynamically"""
        self.logger.setLevel(self._parse_level(level))


_loggers: Dict[str, TagMigrateLogger] = {}


def get_logger(
    name: str = "tagmigrate",
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    file_output: Optional[bool] = None,
) -> TagMigrateLogger:
    """
    Get or create a configured logger.

    Args:
        name: Logger name, "tagmigrate" configures every component
        level: Log level, defaults to TAGMIGRATE_LOG_LEVEL or INFO
        log_dir: Directory for rotating log files
        file_output: Whether to log to files, defaults to
            not TAGMIGRATE_NO_FILE_LOGS
    """
    if name not in _loggers:
        log_level = level or os.getenv("TAGMIGRATE_LOG_LEVEL", "INFO")

        if file_output is None:
            file_output = os.getenv("TAGMIGRATE_NO_FILE_LOGS", "false").lower() != "true"

        _loggers[name] = TagMigrateLogger(
            name=name,
            level=log_level,
            log_dir=log_dir,
            file_output=file_output,
        )
    elif level:
        _loggers[name].set_level(level)

    return _loggers[name]


def setup_logging(config=None) -> TagMigrateLogger:
    """Configure the package logger from a TagMigrateConfig"""
    if config is None:
        from .config import get_config

        config = get_config()

    # Rebuild handlers so they write to the current stderr
    _loggers.pop("tagmigrate", None)
    return get_logger(
        "tagmigrate",
        level=config.observability.log_level,
        log_dir=config.paths.log_dir,
        file_output=config.observability.file_logs,
    )
