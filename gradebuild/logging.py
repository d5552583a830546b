"""Structured JSON event log for gradebuild.

Each module takes a `ComponentLogger` once at import time and emits dotted
event names through it:

    sources       collect.complete
    toolchain     toolchain.start, toolchain.complete, toolchain.crash,
                  toolchain.skip, scratch.allocate, scratch.release
    conformance   conformance.complete, conformance.inconsistent
    factory       factory.written, factory.failed, factory.skip,
                  factory.duplicate, factory.mixed_packages
    pipeline      pipeline.start, pipeline.transition, pipeline.complete

A record is a flat dict: `ts`, `component`, `event`, `level`, `message`,
then the fields of the enclosing request (`request_id`, `mode`,
`strategy`) and the event's own fields. Fields whose value is None are
dropped. Records go to every sink installed with `log_sink` in the current
context and, when GRADEBUILD_LOG_PATH is set, are appended to that file as
JSON lines.
"""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, TypeAlias

LogRecord: TypeAlias = dict[str, object]
LogSink: TypeAlias = Callable[[LogRecord], object]
LogLevel: TypeAlias = Literal["debug", "info", "warning", "error"]

LOG_PATH_ENV = "GRADEBUILD_LOG_PATH"
DEFAULT_COMPONENT = "gradebuild"

_request_fields: ContextVar[LogRecord] = ContextVar("gradebuild_request_fields", default={})
_sinks: ContextVar[tuple[LogSink, ...]] = ContextVar("gradebuild_log_sinks", default=())
_file_lock = threading.Lock()


@contextmanager
def bind_request_context(
    *,
    request_id: str,
    mode: str,
    strategy: str,
) -> Iterator[None]:
    """Stamp every record emitted inside the block with the request's identity."""
    token = _request_fields.set(
        {"request_id": request_id, "mode": mode, "strategy": str(strategy)}
    )
    try:
        yield
    finally:
        _request_fields.reset(token)


@contextmanager
def log_sink(sink: LogSink) -> Iterator[None]:
    """Also deliver records to `sink` while the block runs."""
    token = _sinks.set((*_sinks.get(), sink))
    try:
        yield
    finally:
        _sinks.reset(token)


def _append_json_line(record: LogRecord) -> None:
    raw_path = os.environ.get(LOG_PATH_ENV, "").strip()
    if not raw_path:
        return
    target = Path(raw_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(record, ensure_ascii=False, default=str)
    with _file_lock, target.open("a", encoding="utf-8") as handle:
        _ = handle.write(line + "\n")


def log_event(
    *,
    component: str = DEFAULT_COMPONENT,
    event: str,
    message: str = "",
    level: LogLevel = "info",
    **fields: object,
) -> LogRecord:
    record: LogRecord = {
        "ts": datetime.now(UTC).isoformat(),
        "component": component.strip() or DEFAULT_COMPONENT,
        "event": event,
        "level": level,
        "message": message,
        **_request_fields.get(),
    }
    record.update((key, value) for key, value in fields.items() if value is not None)

    for sink in _sinks.get():
        try:
            _ = sink(record)
        except Exception:
            # Sink errors never reach the caller.
            pass
    _append_json_line(record)
    return record


class ComponentLogger:
    """Emitter bound to one component name; call it with an event name."""

    def __init__(self, component: str):
        self.component = component

    def __call__(
        self,
        event: str,
        *,
        message: str = "",
        level: LogLevel = "info",
        **fields: object,
    ) -> None:
        _ = log_event(
            component=self.component,
            event=event,
            message=message,
            level=level,
            **fields,
        )

    def __repr__(self) -> str:
        return f"ComponentLogger({self.component!r})"


def component_logger(component: str) -> ComponentLogger:
    return ComponentLogger(component)
