#!/usr/bin/env python3

# standards
from collections.abc import Iterator
from dataclasses import dataclass
import logging
from typing import Dict, List, Optional, Union

LOGGER = logging.getLogger("relais")

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS: Dict[str, int] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "none": logging.CRITICAL + 10,
}


class LoggerFacade:
    """
    The leveled logger handed to interceptors, transformers and features. It writes to a stdlib `logging.Logger`, but drops
    anything below its own minimum level, so that each request can be more or less verbose than the logger's global setting.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, minimum_level: str = "trace") -> None:
        if minimum_level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {minimum_level!r}")
        self.logger = logger if logger is not None else LOGGER
        self.minimum_level = minimum_level

    def with_minimum_level(self, level: str) -> "LoggerFacade":
        return LoggerFacade(self.logger, level)

    def is_enabled_for(self, level: str) -> bool:
        return LOG_LEVELS[level] >= LOG_LEVELS[self.minimum_level]

    def log(self, level: str, msg: str, *args) -> None:
        if level != "none" and self.is_enabled_for(level):
            self.logger.log(LOG_LEVELS[level], msg, *args)

    def trace(self, msg: str, *args) -> None:
        self.log("trace", msg, *args)

    def debug(self, msg: str, *args) -> None:
        self.log("debug", msg, *args)

    def info(self, msg: str, *args) -> None:
        self.log("info", msg, *args)

    def warn(self, msg: str, *args) -> None:
        self.log("warn", msg, *args)

    warning = warn

    def error(self, msg: str, *args) -> None:
        self.log("error", msg, *args)

    def fatal(self, msg: str, *args) -> None:
        self.log("fatal", msg, *args)

    def __repr__(self) -> str:
        return f"LoggerFacade({self.logger.name!r}, {self.minimum_level!r})"


def as_logger_facade(logger: Union[LoggerFacade, logging.Logger, None]) -> LoggerFacade:
    if isinstance(logger, LoggerFacade):
        return logger
    return LoggerFacade(logger)


@dataclass(frozen=False)
class LogEntry:
    method: str
    url: str
    body_size: Optional[int] = None
    status_code: Optional[int] = None
    engine_short_code: Optional[str] = None
    short_circuited: bool = False
    error: Optional[str] = None

    def _compose_line(self) -> Iterator[str]:
        engine = self._compose_engine()
        if engine:
            yield f"{engine:8s} "
        else:
            yield "         "
        yield self.url
        if self.body_size is not None:
            yield f" [{self.method} {self.body_size} bytes]"
        elif self.method != "GET":
            yield f" [{self.method}]"
        if self.status_code is not None:
            yield f" -> {self.status_code}"
        if self.error:
            yield f" !! {self.error}"

    def _compose_engine(self) -> Optional[str]:
        if self.short_circuited:
            return "[interc]"
        parts: List[str] = []
        if self.engine_short_code:
            parts.append(self.engine_short_code)
        if not parts:
            return None
        return "[%s]" % "+".join(parts)  # noqa: UP031

    def __str__(self) -> str:
        return "".join(self._compose_line())


def basic_logging_config(level: Union[int, str] = "INFO", propagate: bool = False) -> None:
    """
    Sets up logging for the common use case. Calls `logging.basicConfig`, lowers verbosity for the `urllib3` logger. If `propagate`
    is False (the default), a new handler will be attached to `relais.LOGGER` that logs in a simple format to stderr, and does not
    propagate log events to the root logger.
    """
    if not isinstance(level, int):
        level = getattr(logging, level)
    logging.basicConfig(level=level)
    logging.getLogger("urllib3").setLevel(max(logging.WARNING, level))
    if not propagate and not LOGGER.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(message)s", None, "%")
        handler.setFormatter(formatter)
        LOGGER.addHandler(handler)
        LOGGER.propagate = False
