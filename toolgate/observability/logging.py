"""Structured logging configuration using structlog.

JSON output for production, console output for development. Credential
material (tokens, API keys, Authorization headers) is masked before
rendering.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any, cast

import structlog
from structlog.types import EventDict, WrappedLogger

REDACTED = "[REDACTED]"

CREDENTIAL_KEYS: frozenset[str] = frozenset({
    "authorization",
    "proxy-authorization",
    "token",
    "access_token",
    "refresh_token",
    "bearer",
    "api_key",
    "apikey",
    "x-api-key",
    "key_value",
    "password",
    "passwd",
    "secret",
    "client_secret",
    "private_key",
})


class CredentialRedactor:
    """Processor that masks values stored under credential-like keys.

    Nested mappings and lists (headers, login bodies) are walked recursively.
    """

    def __init__(self, keys: frozenset[str] = CREDENTIAL_KEYS) -> None:
        self._keys = keys

    def __call__(self, _logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
        return cast(EventDict, self._redact(event_dict))

    def _redact(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                key: REDACTED if isinstance(key, str) and key.lower() in self._keys else self._redact(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._redact(item) for item in value]
        return value


def setup_logging(level: str = "INFO", format: str = "json", redact_credentials: bool = True) -> None:
    """Configure structured logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json" for production, "console" for development
        redact_credentials: Whether to mask credential values
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if redact_credentials:
        processors.append(CredentialRedactor())

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    level_num = logging.getLevelName(level.upper())
    if not isinstance(level_num, int):
        level_num = logging.INFO

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to the given name.

    Args:
        name: Logger name (typically __name__ of the module)
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
