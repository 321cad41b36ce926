import logging
import sys
from pathlib import Path
from typing import Any

import structlog

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def render_log_line(_logger: Any, method_name: str, event_dict: dict[str, Any]) -> str:
    """Render ``<timestamp> [LEVEL] <event> key=value ...`` for the deployment log file."""

    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", method_name)).upper()
    event = event_dict.pop("event", "")
    event_dict.pop("logger", None)
    exception = event_dict.pop("exception", None)

    fields = " ".join(f"{key}={value}" for key, value in event_dict.items())
    line = f"{timestamp} [{level}] {event}"
    if fields:
        line = f"{line} {fields}"
    if exception:
        line = f"{line}\n{exception}"
    return line


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    verbose: bool = False,
) -> None:
    """Configure structlog/standard logging bridge.

    Console output goes to stderr as JSON (warnings and above unless
    ``verbose``); when ``log_file`` is given every record at ``level`` or
    above is appended to it, one line per event.
    """

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    root.addHandler(console_handler)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    render_log_line,
                ],
                foreign_pre_chain=_SHARED_PROCESSORS,
            )
        )
        root.addHandler(file_handler)

    root.setLevel(level)


def bind_context(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    """Bind contextual fields for downstream logs."""

    logger = structlog.get_logger("lakedeploy.run")
    return logger.bind(**kwargs)
