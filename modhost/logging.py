"""modhost — Structured logging configuration.

Uses structlog for structured, levelled logging with consistent key names
across the runtime and the modules it hosts.  All log entries include:
    - timestamp (ISO-8601)
    - level
    - logger (Python logger name)
    - module_id (bound via a context variable while a module hook runs)

Modules do not import this file directly.  They receive a
:class:`ModuleLogger` through the ``logger`` system module in their
injected context.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, WrappedLogger

MODULE_LOGGER_NAMESPACE = "modhost.modules"

_LEVELS = ("debug", "info", "warning", "error", "critical")

# Context variable — injected into every log record while a module hook runs.
_ctx_module_id: ContextVar[str | None] = ContextVar("module_id", default=None)


@contextmanager
def module_log_context(module_id: str) -> Iterator[None]:
    """Attribute every record emitted inside the block to *module_id*.

    Nested blocks restore the outer module on exit, so a hook that loads
    another module on demand keeps its own attribution afterwards.
    """
    token = _ctx_module_id.set(module_id)
    try:
        yield
    finally:
        _ctx_module_id.reset(token)


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Add ContextVar values to every log record."""
    if (module_id := _ctx_module_id.get()) is not None:
        event_dict.setdefault("module_id", module_id)
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Call once at host startup, before any module is loaded.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stdout.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
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

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("module_loaded", module_id="mqtt", version="1.0.0")
    """
    return structlog.get_logger(name)


# ---------------------------------------------------------------------------
# Logger system module
# ---------------------------------------------------------------------------


class ModuleLogger:
    """Logger capability handed to every module as the ``logger`` system module.

    Each call accepts an optional ``context`` or ``prefix`` hint that ends up
    in the ``source`` field of the record.  ``prefix`` wins over ``context``;
    without either, the owning module id is used.

    Usage inside a module::

        async def initialize(context):
            log = context["logger"]["api"]
            log.info("connecting", context="connection", broker="localhost")
    """

    def __init__(self, owner: str | None = None) -> None:
        self._owner = owner
        name = f"{MODULE_LOGGER_NAMESPACE}.{owner}" if owner else MODULE_LOGGER_NAMESPACE
        self._log = get_logger(name)

    @property
    def owner(self) -> str | None:
        return self._owner

    def bind(self, owner: str) -> "ModuleLogger":
        """Return a logger attributed to *owner*."""
        return ModuleLogger(owner)

    def _source(self, context: str | None, prefix: str | None) -> str | None:
        if prefix:
            return prefix
        if context:
            return f"{self._owner}:{context}" if self._owner else context
        return self._owner

    def _emit(
        self,
        method: str,
        message: str,
        error: BaseException | str | None,
        context: str | None,
        prefix: str | None,
        fields: dict[str, Any],
    ) -> None:
        source = self._source(context, prefix)
        if source is not None:
            fields["source"] = source
        if error is not None:
            fields["error"] = str(error)
        getattr(self._log, method)(message, **fields)

    def debug(
        self,
        message: str,
        *,
        error: BaseException | str | None = None,
        context: str | None = None,
        prefix: str | None = None,
        **fields: Any,
    ) -> None:
        self._emit("debug", message, error, context, prefix, fields)

    def info(
        self,
        message: str,
        *,
        error: BaseException | str | None = None,
        context: str | None = None,
        prefix: str | None = None,
        **fields: Any,
    ) -> None:
        self._emit("info", message, error, context, prefix, fields)

    def warning(
        self,
        message: str,
        *,
        error: BaseException | str | None = None,
        context: str | None = None,
        prefix: str | None = None,
        **fields: Any,
    ) -> None:
        self._emit("warning", message, error, context, prefix, fields)

    warn = warning

    def error(
        self,
        message: str,
        *,
        error: BaseException | str | None = None,
        context: str | None = None,
        prefix: str | None = None,
        **fields: Any,
    ) -> None:
        self._emit("error", message, error, context, prefix, fields)

    @staticmethod
    def set_log_level(level: str) -> None:
        """Change the level shared by every module logger."""
        if level.lower() not in _LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Expected one of {list(_LEVELS)}.")
        logging.getLogger(MODULE_LOGGER_NAMESPACE).setLevel(level.upper())

    @staticmethod
    def get_log_level() -> str:
        level = logging.getLogger(MODULE_LOGGER_NAMESPACE).getEffectiveLevel()
        return logging.getLevelName(level).lower()
