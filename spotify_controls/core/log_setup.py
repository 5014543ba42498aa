import os
import logging
from logging.handlers import RotatingFileHandler
from typing import List
import structlog
from structlog.stdlib import ProcessorFormatter, BoundLogger, add_logger_name
from structlog.processors import (
    JSONRenderer,
    TimeStamper,
    add_log_level,
    StackInfoRenderer,
    format_exc_info,
)
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer


XDG_STATE_HOME = os.environ.get("XDG_STATE_HOME") or os.path.expanduser(
    "~/.local/state"
)
APP_DIR = "spotify-controls"

LOG_FILE_PATH = os.path.join(XDG_STATE_HOME, APP_DIR, "spotify-controls.log")

LOGGER_NAME = None


class SpamFilter(logging.Filter):
    """Drops consecutive duplicates of the 'PropertiesChanged ignored' line.

    Spotify re-broadcasts the same foreign-interface signal several times per
    track change, which buries everything else in debug mode.
    """

    _last_ignored: str = ""

    def filter(self, record):
        message = record.getMessage()
        if record.levelno == logging.DEBUG and message.startswith(
            "PropertiesChanged ignored"
        ):
            if message == SpamFilter._last_ignored:
                return False
            SpamFilter._last_ignored = message
        else:
            SpamFilter._last_ignored = ""
        return True


def _shared_processors() -> List:
    return [
        add_log_level,
        TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        StackInfoRenderer(),
        format_exc_info,
    ]


def _file_handler(log_file: str, level: int) -> logging.Handler:
    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=1024 * 1024,
        backupCount=2,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=_shared_processors() + [add_logger_name],
            processor=JSONRenderer(),
        )
    )
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_path=False,
        show_time=False,
    )
    handler.setLevel(level)
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processor=ConsoleRenderer(colors=False),
            fmt="%(message)s",
        )
    )
    return handler


def setup_logging(
    level: int = logging.DEBUG, log_file: str = LOG_FILE_PATH
) -> BoundLogger:
    """Route structlog through stdlib logging: JSON to a rotating file, plain
    text to the terminal through rich."""
    structlog.configure(
        processors=_shared_processors()
        + [
            add_logger_name,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    std_logger = logging.getLogger(LOGGER_NAME)
    std_logger.setLevel(level)
    std_logger.propagate = False
    for handler in std_logger.handlers[:]:
        std_logger.removeHandler(handler)
    spam_filter = SpamFilter()
    for handler in (_file_handler(log_file, level), _console_handler(level)):
        handler.addFilter(spam_filter)
        std_logger.addHandler(handler)
    return structlog.get_logger(LOGGER_NAME)
