"""Loguru configuration shared by the API process and the tickers."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Dict

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib record carries; anything else came in through ``extra=``.
_STANDARD_RECORD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "apscheduler.executors.default": logging.WARNING,
    "apscheduler.scheduler": logging.INFO,
    "aiosqlite": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}

_PRETTY_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level> {extra}"
)


class InterceptHandler(logging.Handler):
    """Forward stdlib records (uvicorn, apscheduler, sqlalchemy) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        context = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_ATTRS}
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.bind(**context).opt(depth=6, exception=record.exc_info).log(level, message)


def _trace_context() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {"trace_id": f"{span_context.trace_id:032x}", "span_id": f"{span_context.span_id:016x}"}


def _json_sink(metadata: Dict[str, str]) -> Callable[[Any], None]:
    def _write(message: Any) -> None:
        record = message.record
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **metadata,
            **_trace_context(),
            **record["extra"],
        }
        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)
        sys.stdout.write(json.dumps(payload, default=str) + "\n")

    return _write


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Install the Loguru sink and route stdlib logging through it.

    Summaries bound with ``logger.bind(summary=...)`` and keyword context
    (``user_id``, ``booking_id``, ``job_id``) land as top-level JSON fields.
    """

    logger.remove()
    if json_output:
        metadata = {"service": service_name, "environment": environment, "version": version}
        logger.add(_json_sink(metadata), level=level, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=level, format=_PRETTY_FORMAT, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, floor in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(floor)


__all__ = ["InterceptHandler", "configure_logging"]
