from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Keys whose values must never reach the log stream verbatim.
_REDACTED_FIELDS = frozenset({"signature", "webhook_secret", "api_key", "authorization", "x-admin-key"})

_STDLIB_NOISE = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.INFO,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib records (uvicorn, sqlalchemy, httpx) to Loguru at the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(stdlib_logger=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage().replace("{", "{{").replace("}", "}}")
        )


def _redact(extra: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: ("***" if key.lower() in _REDACTED_FIELDS and value else value)
        for key, value in extra.items()
    }


def _attach_trace_context(record: Dict[str, Any]) -> None:
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        record["extra"]["trace_id"] = f"{span_context.trace_id:032x}"
        record["extra"]["span_id"] = f"{span_context.span_id:016x}"


def _write_json(message: "logger.Message") -> None:
    record = message.record
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
    }
    payload.update(_redact(record["extra"]))

    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)

    sys.stdout.write(json.dumps(payload, default=str) + "\n")


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Route Loguru and stdlib logging into one JSON line stream.

    Every entry carries the service identity, and the active trace/span ids when
    a pass engine span is open.
    """

    logger.remove()
    logger.configure(
        extra={"service": service_name, "environment": environment, "version": version},
        patcher=_attach_trace_context,
    )
    logger.add(_write_json, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in _STDLIB_NOISE.items():
        logging.getLogger(name).setLevel(level)


def audit_log(event: str, **fields: Any) -> None:
    """Emit an audit-trail entry that operators can filter on ``audit=true``."""

    logger.bind(audit=True, audit_event=event, **fields).warning("Audit: {}", event)
