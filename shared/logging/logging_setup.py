from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
from logging import Logger

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# transport loggers that flood the console with one line per backend request
NOISY_LOGGERS = ("httpx", "httpcore")

_LEVEL_PREFIX: dict[int, str] = {
    logging.CRITICAL: "⛔ ",
    logging.ERROR: "⛔ ",
    logging.WARNING: "⚠️ ",
}

_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "white": "\033[37m",
}


def resolve_level(level_name: str | None = None) -> int:
    """Map LOG_LEVEL (or level_name) to a logging level. Anything but "debug" logs at INFO."""
    name = (level_name or os.getenv("LOG_LEVEL", "info")).strip().lower()
    return logging.DEBUG if name == "debug" else logging.INFO


class TimezoneFormatter(logging.Formatter):
    """Renders timestamps in a fixed timezone and prefixes warnings and errors with a marker."""

    def __init__(self, tz_name: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # a malformed %-format from a third-party logger, keep the raw template
            message = str(record.msg)

        record.msg = _LEVEL_PREFIX.get(record.levelno, "") + message
        record.args = ()
        return super().format(record)


class ColoredFormatter(TimezoneFormatter):
    """Console formatter. Wraps a line in ANSI color when its record carries a known ``color`` attribute."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi and line else line


class ColorLogger:
    """Wraps a :class:`logging.Logger` and adds an optional ``color=`` keyword to every log method.

    Usage::

        logger.info("Stored entity '%s'", entity_id)
        logger.info("Brain runtime ready", color="green")
        logger.warning("Performing expensive scan", color="yellow")

    Only the console handler renders colors; the log file stays plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def log(self, level: int, msg, *args, color: str | None = None, **kwargs):
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        # keep the caller's frame as the record origin, not this wrapper
        kwargs.setdefault("stacklevel", 2)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.DEBUG, msg, *args, color=color, stacklevel=3, **kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.INFO, msg, *args, color=color, stacklevel=3, **kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.WARNING, msg, *args, color=color, stacklevel=3, **kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.ERROR, msg, *args, color=color, stacklevel=3, **kwargs)

    def critical(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.CRITICAL, msg, *args, color=color, stacklevel=3, **kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        self.log(logging.ERROR, msg, *args, color=color, exc_info=True, stacklevel=3, **kwargs)

    def __getattr__(self, name):
        """Delegate everything else (setLevel, handlers, isEnabledFor...) to the wrapped logger."""
        return getattr(self._logger, name)


def build_logging_config(log_file: str, level: int, tz_name: str) -> dict:
    """dictConfig schema: colored console on stderr plus a plain file handler, both on the root logger."""
    formatter = {"format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"()": TimezoneFormatter, **formatter},
            "colored": {"()": ColoredFormatter, **formatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "colored",
                "level": level,
                # stdout is reserved for command output such as the analytics JSON
                "stream": "ext://sys.stderr",
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "standard",
                "level": level,
                "filename": log_file,
                "encoding": "utf-8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    }


def setup_logging(root_dir: str | None = None, level_name: str | None = None) -> ColorLogger:
    """Configure process-wide logging and return the brain logger.

    Args:
        root_dir (str | None): Parent of the ``logs/`` directory. Defaults to ROOT_DIR, else the working directory.
        level_name (str | None): Overrides LOG_LEVEL.

    Returns:
        ColorLogger: The "brain" logger.
    """
    log_dir = os.path.join(root_dir or os.getenv("ROOT_DIR", os.getcwd()), "logs")
    os.makedirs(log_dir, exist_ok=True)
    level = resolve_level(level_name)

    logging.config.dictConfig(
        build_logging_config(
            log_file=os.path.join(log_dir, "app.log"),
            level=level,
            tz_name=os.getenv("TIMEZONE", "Europe/Berlin"),
        )
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level == logging.DEBUG else logging.WARNING)

    return ColorLogger(logging.getLogger("brain"))
