from __future__ import annotations

import logging
import sys
import time
from typing import Optional

from relayer.configuration.config import settings

APP_NAMESPACE = "relayer"

_RESET = "\033[0m"
_DIM = "\033[2m"

# level -> (emoji, ANSI color)
_LEVEL_STYLE = {
    "DEBUG": ("🔍", "\033[36m"),
    "INFO": ("ℹ️", "\033[32m"),
    "WARNING": ("⚠️", "\033[33m"),
    "ERROR": ("❌", "\033[31m"),
    "CRITICAL": ("🛑", "\033[35m"),
}

# library logger -> setting holding its level
_LIBRARY_LEVELS = {
    "httpx": "LOG_LEVEL_LIB_HTTPX",
    "httpcore": "LOG_LEVEL_LIB_HTTPCORE",
    "asyncio": "LOG_LEVEL_LIB_ASYNCIO",
    "sqlalchemy.engine": "LOG_LEVEL_LIB_SQLALCHEMY",
}


def _level(value: str) -> int:
    level = logging.getLevelName((value or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ColorFormatter(logging.Formatter):
    """
    One line per record: UTC timestamp, level emoji, logger name, message.

      2025-10-02 01:36:22.123+0000 ℹ️ INFO     relayer.core.fees.quote_calculator - [QUOTE][FEE] ... winner=oracle
    """

    converter = time.gmtime

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime("%Y-%m-%d %H:%M:%S", self.converter(record.created))
        timestamp = f"{timestamp}.{int(record.msecs):03d}+0000"
        level_name = record.levelname.upper()
        emoji, color = _LEVEL_STYLE.get(level_name, ("", ""))

        if self.use_color:
            line = (f"{_DIM}{timestamp}{_RESET} {color}{emoji} {level_name:<8}{_RESET} "
                    f"{record.name} {_DIM}- {record.getMessage()}{_RESET}")
        else:
            line = f"{timestamp} {emoji} {level_name:<8} {record.name} - {record.getMessage()}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def init_logging() -> None:
    """Install the console handler once and apply the LOG_LEVEL_* settings."""
    root = logging.getLogger()
    root.setLevel(_level(settings.LOG_LEVEL))

    if not any(getattr(handler, "_relayer_handler", False) for handler in root.handlers):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler._relayer_handler = True
        handler.setFormatter(ColorFormatter(use_color=sys.stderr.isatty() and not settings.NO_COLOR))
        root.addHandler(handler)

    logging.getLogger(APP_NAMESPACE).setLevel(_level(settings.LOG_LEVEL_RELAYER))
    for name, setting in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(_level(getattr(settings, setting)))

    # uvicorn installs its own handlers; route everything through ours instead
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the 'relayer.*' namespace."""
    name = name or APP_NAMESPACE
    if name != APP_NAMESPACE and not name.startswith(APP_NAMESPACE + "."):
        name = f"{APP_NAMESPACE}.{name}"
    return logging.getLogger(name)
