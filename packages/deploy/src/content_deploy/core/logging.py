from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

import structlog
from rich.logging import RichHandler
from structlog.contextvars import (
    bind_contextvars,
    bound_contextvars,
    merge_contextvars,
)

_CONFIGURED = False


@runtime_checkable
class ILogger(Protocol):
    def debug(self, event: str, **kw: Any) -> Any: ...
    def info(self, event: str, **kw: Any) -> Any: ...
    def warning(self, event: str, **kw: Any) -> Any: ...
    def error(self, event: str, **kw: Any) -> Any: ...
    def exception(self, event: str, **kw: Any) -> Any: ...
    def bind(self, **kw: Any) -> "ILogger": ...


def _shared_processors() -> list[Any]:
    return [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(*, level: str = "INFO", fmt: str = "console") -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    if fmt == "console":
        handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=False,
            show_path=False,
            log_time_format="%H:%M:%S",
            console=None,
        )
        renderer: Any = structlog.processors.KeyValueRenderer(sort_keys=True)
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        renderer = structlog.processors.JSONRenderer()

    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level.upper())
    root.addHandler(handler)

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level.upper()),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_logger(name: str = "content_deploy") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind(**values: Any) -> None:
    bind_contextvars(**values)


def bound(**values: Any) -> AbstractContextManager[None]:
    """
    Bind context vars for the duration of a block (one pipeline run).
    """
    return bound_contextvars(**values)
