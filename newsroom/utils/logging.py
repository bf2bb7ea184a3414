"""Root logger setup for the CLI, the cron endpoint and the API server.

Settings come from ``LOG_*`` environment variables, read when
:func:`configure_logging` runs so a ``.env`` loaded by ``main`` applies.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import List, Literal, Optional

LogOutput = Literal["stdout", "file", "both"]
LogFormat = Literal["text", "json"]

DEFAULT_LOG_FILE = "logs/newsroom.log"

_TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(threadName)s | %(message)s"
_JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"thread": "%(threadName)s", "message": "%(message)s"}'
)

# Chatty third-party loggers that drown pipeline output at DEBUG
_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "multipart", "uvicorn.access")


def _in_kubernetes() -> bool:
    return bool(
        os.environ.get("K8S_CLUSTER")
        or os.environ.get("KUBERNETES_SERVICE_HOST")
        or os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount")
    )


@dataclass(slots=True)
class LogSettings:
    level: str = "INFO"
    output: str = "stdout"
    file_path: str = DEFAULT_LOG_FILE
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "LogSettings":
        output = os.environ.get("LOG_OUTPUT", "").lower() or "stdout"
        # Containers log to stdout unless told otherwise
        if _in_kubernetes() and "LOG_OUTPUT" not in os.environ:
            output = "stdout"
        return cls(
            level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
            output=output,
            file_path=os.environ.get("LOG_FILE_PATH") or DEFAULT_LOG_FILE,
            log_format=(os.environ.get("LOG_FORMAT") or "text").lower(),
        )


def _handlers(settings: LogSettings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if settings.output in ("stdout", "both"):
        handlers.append(logging.StreamHandler(sys.stdout))
    if settings.output in ("file", "both"):
        log_dir = os.path.dirname(settings.file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(settings.file_path, maxBytes=10 * 1024 * 1024, backupCount=5))
    return handlers


def configure_logging(
    level: str | int | None = None,
    output: LogOutput | None = None,
    file_path: str | None = None,
    log_format: LogFormat | None = None,
    module: Optional[str] = None,
) -> None:
    """Replace the root handlers according to the arguments and ``LOG_*`` env.

    Explicit arguments win over the environment. ``module`` additionally
    sets the level on that named logger.
    """
    settings = LogSettings.from_env()
    if level is not None:
        settings.level = level.upper() if isinstance(level, str) else logging.getLevelName(level)
    if output is not None:
        settings.output = output
    if file_path is not None:
        settings.file_path = file_path
    if log_format is not None:
        settings.log_format = log_format

    formatter = logging.Formatter(_JSON_FORMAT if settings.log_format == "json" else _TEXT_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.level)
    root_logger.handlers.clear()
    for handler in _handlers(settings):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if module:
        logging.getLogger(module).setLevel(settings.level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
