# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging configuration for BugScout."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "logger",
    "setup_logger",
    "configure_logging",
    "LogFormat",
]

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "message", "taskName",
    "thread", "threadName",
})


class LogFormat(str, Enum):
    """Supported log output formats."""

    JSON = "json"              # Structured JSON (default)
    HUMAN = "human"            # Colored terminal output
    TEXT = "text"              # Plain text


class JsonFormatter(logging.Formatter):
    """
    Structured log formatter.

    Emits one JSON object per line. Anything passed through ``extra=`` is
    collected under the ``extra`` key.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname and record.lineno:
            payload["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Terminal formatter with ANSI level colors."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            prefix = f"{self.DIM}{timestamp}{self.RESET} {color}{self.BOLD}[{level:>8}]{self.RESET}"
        else:
            prefix = f"{timestamp} [{level:>8}]"

        output = f"{prefix} {record.getMessage()}"

        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            if self.use_colors:
                exc_text = f"{self.COLORS['ERROR']}{exc_text}{self.RESET}"
            output += f"\n{exc_text}"

        return output


class TextFormatter(logging.Formatter):
    """Plain ``asctime - name - level - message`` formatter."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def get_log_level(level_str: str) -> int:
    """
    Convert a log level name to its logging constant.

    Unknown names fall back to INFO.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_str.upper(), logging.INFO)


def get_formatter(log_format: LogFormat, use_colors: bool = True) -> logging.Formatter:
    """Return the formatter for ``log_format``."""
    if log_format == LogFormat.JSON:
        return JsonFormatter()
    elif log_format == LogFormat.HUMAN:
        return HumanFormatter(use_colors=use_colors)
    else:
        return TextFormatter()


def configure_logging(
    level: str = "INFO",
    log_format: LogFormat = LogFormat.JSON,
    human_readable: bool = False,
) -> None:
    """
    Reconfigure the package logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format
        human_readable: Force the human format regardless of ``log_format``
    """
    if human_readable:
        log_format = LogFormat.HUMAN

    log_level = get_log_level(level)

    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(get_formatter(log_format))
    logger.addHandler(handler)


def setup_logger(
    name: str = "bugscout",
    level: int = logging.INFO,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Create the package logger.

    ``BUGSCOUT_LOG_FORMAT`` (json, human, text) and ``BUGSCOUT_LOG_LEVEL``
    override the defaults.

    Args:
        name: Logger name
        level: Logging level
        format_string: Custom format string, takes precedence over the env format

    Returns:
        Configured logger instance
    """
    log = logging.getLogger(name)
    log.setLevel(level)
    log.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    env_format = os.environ.get("BUGSCOUT_LOG_FORMAT", "json").lower()
    env_level = os.environ.get("BUGSCOUT_LOG_LEVEL", "")

    if env_level:
        level = get_log_level(env_level)
        log.setLevel(level)
        handler.setLevel(level)

    if format_string is not None:
        formatter = logging.Formatter(format_string)
    elif env_format == LogFormat.HUMAN.value:
        formatter = HumanFormatter()
    elif env_format == LogFormat.TEXT.value:
        formatter = TextFormatter()
    else:
        formatter = JsonFormatter()

    handler.setFormatter(formatter)
    log.addHandler(handler)

    return log


# Default logger instance
logger = setup_logger()
