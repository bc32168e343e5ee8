"""StartSet — structlog setup shared by the CLI and the service.

Every record carries an ISO timestamp, its level and the logger name.  While
the engine works through a trigger, the trigger kind, payload class and
username are attached as well (see ``bind_run_context``).
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

# Context variables: automatically injected into log records when set.
_ctx_trigger: ContextVar[str | None] = ContextVar("trigger", default=None)
_ctx_payload_class: ContextVar[str | None] = ContextVar("payload_class", default=None)
_ctx_username: ContextVar[str | None] = ContextVar("username", default=None)


def bind_run_context(
    trigger: str | None = None,
    payload_class: str | None = None,
    username: str | None = None,
) -> None:
    """Bind engine-run context to the current async task / thread."""
    if trigger is not None:
        _ctx_trigger.set(trigger)
    if payload_class is not None:
        _ctx_payload_class.set(payload_class)
    if username is not None:
        _ctx_username.set(username)


def clear_run_context() -> None:
    _ctx_trigger.set(None)
    _ctx_payload_class.set(None)
    _ctx_username.set(None)


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Copy the bound run context into the event dict."""
    if (trigger := _ctx_trigger.get()) is not None:
        event_dict["trigger"] = trigger
    if (payload_class := _ctx_payload_class.get()) is not None:
        event_dict["payload_class"] = payload_class
    if (username := _ctx_username.get()) is not None:
        event_dict["username"] = username
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def resolve_level(verbose: bool = False, debug: bool = False, explicit: str | None = None) -> str:
    """Map the preference flags to a log level name.

    An explicit ``log_level`` preference wins; otherwise ``debug`` beats
    ``verbose`` which beats the quiet default.
    """
    if explicit:
        return explicit.lower()
    if debug:
        return "debug"
    if verbose:
        return "info"
    return "warning"


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | Path | None = None,
) -> None:
    """Route structlog through stdlib logging to stderr and, optionally, a file.

    *format* is ``"console"`` (coloured when stderr is a tty) or ``"json"``.
    Calling it again replaces the root handlers, so the CLI may reconfigure
    after loading a preferences file.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []

    # stdout is reserved for command output (tables, JSON listings).
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as exc:
            sys.stderr.write(f"startset: cannot open log file {path}: {exc}\n")
        else:
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    # asyncio and watchfiles are chatty at debug level.
    for noisy in ("asyncio", "watchfiles"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("script_completed", script="a.ps1", exit_code=0)
    """
    return structlog.get_logger(name)
