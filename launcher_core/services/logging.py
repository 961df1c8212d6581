"""Logging configuration service for the launcher core."""

import logging
import logging.handlers
import os
import sys
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import structlog

SENSITIVE_KEYS = frozenset({"access_token", "auth_access_token", "refresh_token", "xuid"})
REDACTED = "***"

# (file name, max bytes, backups, minimum level or None for the configured level)
LOG_FILES = (
    ("launcher.log", 10 * 1024 * 1024, 5, None),
    ("error.log", 5 * 1024 * 1024, 3, logging.ERROR),
)

# Per-request chatter from the HTTP stack is only useful when debugging
NOISY_LOGGERS = ("httpx", "httpcore")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that masks credential fields."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


class LoggingService:
    """Routes structlog events through stdlib handlers.

    Development mode without a log directory renders colourised console
    lines; everything else is rendered as one JSON object per line so the
    rotating files under ``log_dir`` stay machine-readable.
    """

    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Path | None = None,
        console: bool = True,
    ) -> None:
        """
        Args:
            log_level: The minimum log level to capture
            log_dir: Directory for rotating log files (None for console only)
            console: If False, suppress the stderr handler (game output owns the terminal)
        """
        self.log_level = log_level.upper()
        self.log_dir = log_dir
        self.console = console
        self.is_development = os.getenv("ENVIRONMENT", "development") == "development"

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)

    def configure(self) -> None:
        self._install_handlers()

        structlog.configure(
            processors=self._get_processors(),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _install_handlers(self) -> None:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(self.numeric_level)

        if self.console:
            root_logger.addHandler(self._console_handler())
        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            for filename, max_bytes, backups, min_level in LOG_FILES:
                handler = logging.handlers.RotatingFileHandler(
                    filename=self.log_dir / filename,
                    maxBytes=max_bytes,
                    backupCount=backups,
                    encoding="utf-8",
                )
                handler.setLevel(min_level or self.numeric_level)
                handler.setFormatter(logging.Formatter("%(message)s"))
                root_logger.addHandler(handler)

        quiet_level = logging.DEBUG if self.numeric_level <= logging.DEBUG else logging.WARNING
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(quiet_level)

    def _console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(self.numeric_level)
        if self.is_development:
            handler.setFormatter(logging.Formatter(
                fmt="%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            ))
        else:
            handler.setFormatter(logging.Formatter("%(message)s"))
        return handler

    def _get_processors(self) -> list[Any]:
        processors: list[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
        if self.is_development and not self.log_dir:
            processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
        else:
            processors.append(structlog.processors.JSONRenderer())
        return processors

    def get_logger(self, name: str | None = None) -> structlog.stdlib.BoundLogger:
        return structlog.stdlib.get_logger(name)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    environment: str | None = None,
    console: bool = True,
) -> LoggingService:
    """Configure launcher logging once at startup.

    Args:
        log_level: Minimum log level to capture
        log_dir: Directory for log files (None for console only)
        environment: Environment name (development/production); exported as ENVIRONMENT
        console: If False, do not log to the terminal

    Returns:
        Configured LoggingService instance
    """
    if environment:
        os.environ["ENVIRONMENT"] = environment

    service = LoggingService(log_level=log_level, log_dir=log_dir, console=console)
    service.configure()
    return service
