"""Structured logging configuration with turn correlation and credential redaction."""

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import orjson
import structlog
from structlog.processors import CallsiteParameter

# Context variables for turn tracking
turn_id_var: ContextVar[str] = ContextVar("turn_id", default="")
session_id_var: ContextVar[str] = ContextVar("session_id", default="")


class CredentialRedactor:
    """Redact credentials from log values."""

    API_KEY_PATTERN = re.compile(r"\b(sk-|sk-ant-|AIza|api[_-]?key[\s=:]+)[\w-]{16,}", re.IGNORECASE)
    BEARER_PATTERN = re.compile(r"\bBearer\s+[\w\-.~+/]+=*", re.IGNORECASE)
    JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\b")
    QUERY_KEY_PATTERN = re.compile(r"([?&](?:key|api-key|api_key)=)[^&\s]+", re.IGNORECASE)

    @classmethod
    def redact(cls, value: Any) -> Any:
        """Redact credentials from value."""
        if not isinstance(value, str):
            return value

        value = cls.JWT_PATTERN.sub("[JWT_REDACTED]", value)
        value = cls.BEARER_PATTERN.sub("Bearer [TOKEN_REDACTED]", value)
        value = cls.API_KEY_PATTERN.sub("[API_KEY_REDACTED]", value)
        value = cls.QUERY_KEY_PATTERN.sub(r"\1[REDACTED]", value)

        return value


def add_context_vars(logger, method_name, event_dict):
    """Add turn context variables to log events."""
    if turn_id := turn_id_var.get():
        event_dict["turn_id"] = turn_id
    if session_id := session_id_var.get():
        event_dict["session_id"] = session_id
    return event_dict


def redact_sensitive_data(logger, method_name, event_dict):
    """Redact credentials from logs."""
    for key, value in event_dict.items():
        if key in ("timestamp", "level", "logger", "turn_id", "session_id"):
            continue
        if isinstance(value, str):
            event_dict[key] = CredentialRedactor.redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {k: CredentialRedactor.redact(v) for k, v in value.items()}

    return event_dict


def setup_logging(
    level: str | None = None,
    format: str | None = None,
) -> None:
    """Configure structured logging for the gateway."""
    if level is None or format is None:
        from assistant_gateway.config import get_settings

        settings = get_settings()
        level = level or settings.log_level
        format = format or settings.log_format

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_vars,
        redact_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                CallsiteParameter.FILENAME,
                CallsiteParameter.FUNC_NAME,
                CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
    ]

    if format == "json":
        processors.append(
            structlog.processors.JSONRenderer(serializer=lambda obj, **kw: orjson.dumps(obj).decode())
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class TurnContext:
    """Context manager binding turn and session ids for log correlation."""

    def __init__(self, turn_id: str | None = None, session_id: str | None = None):
        self.turn_id = turn_id or str(uuid4())
        self.session_id = session_id
        self.tokens = []

    def __enter__(self):
        self.tokens.append((turn_id_var, turn_id_var.set(self.turn_id)))
        if self.session_id:
            self.tokens.append((session_id_var, session_id_var.set(self.session_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self.tokens):
            var.reset(token)
        self.tokens.clear()
        return False
