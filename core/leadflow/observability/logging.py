"""
Structured logging with automatic test-run context.

Every log line emitted while a test run is being submitted, polled, or
simulated carries the run's identifiers without any caller passing them:

    WorkflowTestRunner.start() → sets workflow_id, lead_id
        ↓ (ContextVar propagates into the polling task)
    submission accepted → adds test_run_id
        ↓
    InProcessTestRunService task → sets the same fields for the simulation
        ↓
    DryRunExecutor → logger.info("...") carries all of them
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# Matches \033[...m or \x1b[...m
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Test-run context (workflow_id, test_run_id, lead_id)
    - ``event``, ``node_id`` and ``status`` from the record's extra dict
    """

    EXTRA_FIELDS = ("event", "node_id", "status", "latency_ms")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in self.EXTRA_FIELDS:
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

    Colorized level, then a short context prefix such as
    ``[wf:welcome | run:3f2a9c1b]``.
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
        workflow_id = context.get("workflow_id", "")
        test_run_id = context.get("test_run_id", "")
        lead_id = context.get("lead_id", "")

        prefix_parts = []
        if workflow_id:
            prefix_parts.append(f"wf:{workflow_id}")
        if test_run_id:
            prefix_parts.append(f"run:{test_run_id[-8:]}")
        if lead_id:
            prefix_parts.append(f"lead:{lead_id}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        message = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def resolve_format(format: str = "auto") -> str:
    """Resolve ``"auto"`` to ``"json"`` or ``"human"`` from LOG_FORMAT / ENV."""
    if format != "auto":
        return format
    log_format_env = os.getenv("LOG_FORMAT", "").lower()
    env = os.getenv("ENV", "development").lower()
    if log_format_env == "json" or env == "production":
        return "json"
    return "human"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure structured logging for the application.

    Call once at startup (the CLI does this before running a command).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
    """
    format = resolve_format(format)

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # httpx logs every request at INFO; keep the transport quiet unless debugging
    for logger_name in ("httpx", "httpcore"):
        third_party = logging.getLogger(logger_name)
        third_party.handlers.clear()
        third_party.propagate = True
        if root_logger.level > logging.DEBUG:
            third_party.setLevel(logging.WARNING)


def set_trace_context(**kwargs: Any) -> None:
    """
    Add fields to the trace context of the current execution context.

    Fields set inside an asyncio task stay local to that task (and the
    tasks it creates), so concurrent test runs never see each other's ids.

    Args:
        **kwargs: Context fields (workflow_id, test_run_id, lead_id, ...)
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """
    Get current trace context.

    Returns:
        Copy of the context dict, empty if nothing is set
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (between tests, or before an unrelated run)."""
    trace_context.set(None)
