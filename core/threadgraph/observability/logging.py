"""
Structured logging with automatic session context propagation.

Key Features:
- Standard logger.info() calls pick up session context automatically
- ContextVar-based propagation: safe across concurrently running sessions
- Dual output modes: JSON for production, human-readable for development

Architecture:
    GraphExecutor.invoke()/resume() → sets session_id and graph_id
        ↓ (automatic propagation via ContextVar)
    run_steps() → adds node_id and step before each node runs
        ↓ (automatic propagation)
    Node code → logger.info("message") → gets ALL context automatically
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

_EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "node_id", "model")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Session context (session_id, graph_id, node_id, step)
    - Custom fields from extra dict
    """

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized level plus a short session/node prefix for correlation.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        session_id = context.get("session_id", "")
        node_id = context.get("node_id", "")
        step = context.get("step")

        prefix_parts = []
        if session_id:
            prefix_parts.append(f"session:{session_id[-8:]}")
        if node_id:
            prefix_parts.append(f"node:{node_id}")
        if step is not None:
            prefix_parts.append(f"step:{step}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        line = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure structured logging for the application.

    Call once at startup (CLI entry point, service main, test fixture).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _disable_third_party_colors()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Route model-client loggers through the root handler so they share the format
    if format == "json":
        for logger_name in ("LiteLLM", "httpcore", "httpx", "openai"):
            logger = logging.getLogger(logger_name)
            logger.handlers.clear()
            logger.propagate = True


def _disable_third_party_colors() -> None:
    """Disable color output in third-party libraries for clean JSON logging."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    try:
        import litellm

        litellm.suppress_debug_info = True
    except ImportError:
        pass


def set_trace_context(**kwargs: Any) -> None:
    """
    Add fields to the trace context of the current execution.

    Called by the executor (session_id, graph_id) and the step loop
    (node_id, step). Fields merge into whatever is already set.
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def restore_trace_context(context: dict[str, Any] | None) -> None:
    """Put back a context captured earlier with ``get_trace_context``."""
    trace_context.set(dict(context) if context else None)


def get_trace_context() -> dict:
    """
    Get current trace context.

    Returns:
        Dict with session_id, graph_id, node_id, step. Empty if unset.
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (between tests or before an unrelated execution)."""
    trace_context.set(None)
