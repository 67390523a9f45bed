import logging
import sys
import os
from datetime import datetime

from gobuild.core.config import LOG_DIR, LOG_LEVEL

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood DEBUG with HTTP round trips to the daemon
_CHATTY = ["urllib3", "docker"]


class ColoredFormatter(logging.Formatter):
    """Console formatter; colors by level when attached to a terminal."""

    cyan = "\x1b[36m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: cyan,
        logging.INFO: green,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def __init__(self, use_color: bool = True):
        super().__init__(_FORMAT, datefmt=_DATEFMT)
        self.use_color = use_color

    def format(self, record):
        message = super().format(record)
        color = self.COLORS.get(record.levelno)
        if not self.use_color or not color:
            return message
        return f"{color}{message}{self.reset}"


def _file_handler(log_dir: str) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(
        os.path.join(log_dir, f"gobuild_{datetime.now().strftime('%Y%m%d')}.log")
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    return handler


def setup_logging(level=None, log_dir=LOG_DIR):
    """
    Configure the root logger: colored console on stderr plus a dated file
    under ``log_dir``. ``level`` defaults to LOG_LEVEL from the environment.
    """
    if level is None:
        level = logging.getLevelName(LOG_LEVEL.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    # stderr keeps stdout free for command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(use_color=sys.stderr.isatty()))
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_file_handler(log_dir))

    for name in _CHATTY:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    for logger_name in ["gobuild", "uvicorn", "uvicorn.error", "uvicorn.access", "main"]:
        l = logging.getLogger(logger_name)
        l.setLevel(level)
        l.propagate = True

    root_logger.info("Logging initialized (level=%s, file logs in %s).",
                     logging.getLevelName(level), log_dir)
