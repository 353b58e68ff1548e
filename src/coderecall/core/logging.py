"""structlog on top of stdlib logging.

Each configured output gets its own handler, renderer (console or JSON) and
level. structlog events and records from third-party libraries go through the
same processor chain, so both end up in the same format.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from coderecall.config.models import LoggingConfig, LogOutputConfig

# First file destination of the active configuration, shown by the CLI on errors
_log_file_path: Path | None = None

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Per-request or per-event chatter from dependencies
_NOISY_LOGGERS = ("httpx", "httpcore", "watchfiles.main", "qdrant_client")

_CONSOLE_DESTINATIONS = ("stderr", "stdout")


def get_log_file_path() -> Path | None:
    return _log_file_path


def _level(name: str | None, default: int) -> int:
    return _LEVELS.get(name.upper(), default) if name else default


class _StdStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler bound to ``sys.stdout``/``sys.stderr`` by name.

    The stream is looked up on every write, so redirected streams (test
    runners, CLI capture) keep working after configuration.
    """

    def __init__(self, name: str) -> None:
        self._stream_name = name
        super().__init__()

    @property  # type: ignore[override]
    def stream(self):  # noqa: ANN201
        return getattr(sys, self._stream_name)

    @stream.setter
    def stream(self, _value) -> None:  # noqa: ANN001
        pass


def _build_handler(output: LogOutputConfig) -> logging.Handler:
    if output.destination in _CONSOLE_DESTINATIONS:
        return _StdStreamHandler(output.destination)
    path = Path(output.destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


def _build_renderer(output: LogOutputConfig) -> structlog.types.Processor:
    if output.format == "json":
        return structlog.processors.JSONRenderer()
    stream = getattr(sys, output.destination, None)
    colors = stream is not None and hasattr(stream, "isatty") and stream.isatty()
    return structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install handlers for every output and point structlog at stdlib.

    Args:
        config: Full multi-output configuration. Takes precedence.
        json_format: Single stderr output rendered as JSON instead of console.
        level: Level for the single-output form.
    """
    global _log_file_path
    from coderecall.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = _level(config.level, logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration must reach loggers created earlier
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _log_file_path = next(
        (Path(o.destination) for o in config.outputs if o.destination not in _CONSOLE_DESTINATIONS),
        None,
    )

    for output in config.outputs:
        handler = _build_handler(output)
        handler.setLevel(_level(output.level, root_level))
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(processor=_build_renderer(output), foreign_pre_chain=pre_chain)
        )
        root.addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    return logger.bind(logger=name) if name else logger  # type: ignore[no-any-return]
