"""structlog setup for coderecall.

All events go through the stdlib root logger so that every configured
output (console or file, JSON or human readable) is an ordinary
``logging.Handler`` with its own level. Each index build and context query
runs under an operation id that is stamped onto every event it emits.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from coderecall.core.progress import is_console_suppressed

if TYPE_CHECKING:
    from coderecall.config.models import LoggingConfig, LogOutputConfig

_operation_id: ContextVar[str | None] = ContextVar("operation_id", default=None)
_log_file_path: Path | None = None

_CONSOLE_DESTINATIONS = {"stderr": sys.stderr, "stdout": sys.stdout}

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "fastembed")


def get_operation_id() -> str | None:
    return _operation_id.get()


def set_operation_id(operation_id: str | None = None) -> str:
    """Bind ``operation_id`` (or a fresh 12-hex id) to the current context."""
    oid = operation_id or uuid4().hex[:12]
    _operation_id.set(oid)
    return oid


def clear_operation_id() -> None:
    _operation_id.set(None)


def get_log_file_path() -> Path | None:
    """First file output of the active configuration, if any."""
    return _log_file_path


def _stamp_operation_id(
    _logger: structlog.types.WrappedLogger, _method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    oid = _operation_id.get()
    if oid is not None:
        event_dict["operation_id"] = oid
    return event_dict


class _LiveDisplayFilter(logging.Filter):
    """Drops console records while a spinner owns the terminal."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        return not is_console_suppressed()


def _level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _build_handler(
    output: LogOutputConfig, level: int, pre_chain: list[structlog.types.Processor]
) -> logging.Handler:
    stream = _CONSOLE_DESTINATIONS.get(output.destination)
    handler: logging.Handler
    if stream is not None:
        handler = logging.StreamHandler(stream)
        handler.addFilter(_LiveDisplayFilter())
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream is not None and stream.isatty(), pad_event_to=0, pad_level=False
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    handler.setLevel(level)
    return handler


def configure_logging(*, config: LoggingConfig | None = None, level: str = "INFO") -> None:
    """Route structlog through stdlib handlers built from ``config``.

    Without a config a single console output on stderr at ``level`` is used.
    Calling again replaces the previous handlers.
    """
    global _log_file_path
    from coderecall.config.models import LoggingConfig

    if config is None:
        config = LoggingConfig(level=level)  # type: ignore[arg-type]
    root_level = _level(config.level)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _stamp_operation_id,  # type: ignore[list-item]
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
        old.close()
    root.setLevel(root_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _log_file_path = None
    for output in config.outputs:
        if output.destination not in _CONSOLE_DESTINATIONS and _log_file_path is None:
            _log_file_path = Path(output.destination)
        output_level = _level(output.level) if output.level else root_level
        root.addHandler(_build_handler(output, output_level, pre_chain))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    return logger.bind(logger=name) if name else logger  # type: ignore[no-any-return]
