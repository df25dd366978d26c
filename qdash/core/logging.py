import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog


def configure_logging(
    level: str | None = None,
    json_logs: bool | None = None,
    log_file: Path | None = Path("logs/qdash.log"),
) -> None:
    """Route stdlib and structlog loggers through one structlog renderer.

    Library code logs with ``logging.getLogger(__name__)``; the web
    middleware logs events with ``structlog.get_logger()``. Both end up in
    the same handlers with timestamp, level, logger name and any bound
    request context.

    Args:
        level: Log level name (default: LOG_LEVEL env, then INFO)
        json_logs: JSON output instead of console output (default: JSON_LOGS env)
        log_file: Additional file handler target, used only when its
            directory exists
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = os.getenv("JSON_LOGS", "false").lower() == "true"

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_logs:
        # Production: JSON lines, Korean labels kept readable
        renderers: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None and log_file.parent.exists():
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
