"""
JSON logging for the billing service.

structlog renders every record, including plain ``logging.getLogger``
calls, as one JSON object per line on stderr and in a rotating
``billing.jsonl`` file. Request and correlation ids set by
CorrelationMiddleware are attached automatically.
"""
from __future__ import annotations

import logging
import logging.handlers
import sys
import time
from contextvars import ContextVar
from pathlib import Path
from typing import List, Optional

import structlog

APP_VERSION = "0.3.0"
SERVICE_NAME = "billing-sync"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Per-request client logs drown out billing events at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "watchfiles")

_started_at = time.monotonic()


def get_uptime_s() -> float:
    return time.monotonic() - _started_at


def _add_service(_, __, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", APP_VERSION)
    return event_dict


def _add_request_ids(_, __, event_dict: dict) -> dict:
    for key, var in (("request_id", request_id_var), ("correlation_id", correlation_id_var)):
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def _lowercase_level(_, __, event_dict: dict) -> dict:
    if "level" in event_dict:
        event_dict["level"] = str(event_dict["level"]).lower()
    return event_dict


def _build_handlers(
    log_dir: str, log_file: str, max_bytes: int, backup_count: int
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    try:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                Path(log_dir) / log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    except OSError as exc:
        # read-only filesystem: stderr only
        print(f"billing-sync: file logging disabled ({exc})", file=sys.stderr)
    return handlers


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "billing.jsonl",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    log_level: int = logging.INFO,
    handlers: Optional[List[logging.Handler]] = None,
) -> None:
    """Configure structlog and the root logger. Call once, before logging."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _lowercase_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        _add_request_ids,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(default=str),
        ],
    )

    if handlers is None:
        handlers = _build_handlers(log_dir, log_file, max_bytes, backup_count)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
