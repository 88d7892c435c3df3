import logging
import logging.config
import os
import re
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILENAME = "categorizer.log"

_TAG = re.compile(r"^\[[A-Z0-9_]+\]")


class ColourizedFormatter(logging.Formatter):
    """
    Colours level names and the leading ``[TAG]`` of a message.

    Colours are dropped when ``NO_COLOR`` is set so piped output stays readable.
    """
    GREY = "\x1b[90m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    BOLD_RED = "\x1b[31;1m"
    CYAN = "\x1b[36m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, use_colors: bool | None = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = use_colors if use_colors is not None else not os.getenv("NO_COLOR")

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        orig_levelname = record.levelname
        orig_msg = record.msg

        if record.levelno in self.LEVEL_COLORS:
            record.levelname = f"{self.LEVEL_COLORS[record.levelno]}{record.levelname}{self.RESET}"
        if isinstance(record.msg, str):
            record.msg = _TAG.sub(lambda m: f"{self.CYAN}{m.group(0)}{self.RESET}", record.msg, count=1)

        try:
            return super().format(record)
        finally:
            # Other handlers share the record
            record.levelname = orig_levelname
            record.msg = orig_msg


def get_logging_config(level: str | None = None, log_dir: str | None = None) -> dict[str, Any]:
    log_level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_dir = log_dir if log_dir is not None else os.getenv("LOG_DIR")

    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "default",
        },
    }
    root_handlers = ["console"]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": os.path.join(log_dir, LOG_FILENAME),
            "formatter": "plain",
        }
        root_handlers.append("file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "spend_categorizer.logger.ColourizedFormatter",
                "fmt": LOG_FORMAT,
            },
            "plain": {
                "format": LOG_FORMAT,
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": root_handlers,
                "level": log_level_name,
            },
            "uvicorn": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": root_handlers,
                "level": "WARNING",
                "propagate": False
            },
        },
    }


def setup_logging(level: str | None = None) -> None:
    logging.config.dictConfig(get_logging_config(level=level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
