from __future__ import annotations

"""
taskrun.core.log
================

Structured logging for the run client:
- Context propagation via contextvars (task_id, run_id, worker_id).
- JSON formatter for production; human formatter for local debugging.
- LoggerAdapter that accepts arbitrary keyword fields.
- Utilities to enable/disable stdout logging and set levels.

Importing the package is silent: the `taskrun` logger only carries a
NullHandler until an application (or the test suite) enables output.
"""

import contextvars
import json
import logging
import os
import sys
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, ClassVar, Final

__all__ = [
    "bind_context",
    "configure_from_env",
    "disable_stdout_logging",
    "enable_stdout_logging",
    "get_logger",
    "log_context",
    "set_level",
    "swallow",
    "warn_once",
]

# ---------- Context ----------

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar("taskrun_log_ctx", default=None)

# Keys shown by the human formatter, in this order.
_HUMAN_CONTEXT_KEYS: Final[tuple[str, ...]] = ("task_id", "run_id", "worker_group", "worker_id")


def _ctx_copy() -> dict[str, Any]:
    ctx = _log_context.get()
    return dict(ctx) if ctx else {}


def bind_context(**fields: Any) -> None:
    """
    Merge fields into the current structured log context.
    Use from long-lived code (e.g., once per worker process).
    """
    ctx = _ctx_copy()
    ctx.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(ctx)


@contextmanager
def log_context(**fields: Any):
    """
    Temporarily add fields to the structured log context.
    Restores the previous context on exit.
    """
    token = _log_context.set({**_ctx_copy(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _log_context.reset(token)


# ---------- Formatters ----------

_STD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "asctime",
    }
)


def _iso_utc_ms(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=UTC)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line. Merges:
      - ts, level, logger
      - message and event (if provided as a keyword field)
      - contextvars (task_id, run_id, worker_id, ...)
      - keyword/extra fields
      - exception info when present
    """

    def __init__(self, *, include_stack: bool = False) -> None:
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": _iso_utc_ms(record.created),
            "level": record.levelname,
            "logger": record.name,
        }

        msg = record.getMessage()
        if msg:
            out["message"] = msg

        ctx = _log_context.get()
        if ctx:
            out.update(ctx)

        for k, v in record.__dict__.items():
            if k in _STD_ATTRS or k in out:
                continue
            out[k] = v

        if record.exc_info:
            exc_type, exc, _tb = record.exc_info
            err: dict[str, Any] = {
                "type": exc_type.__name__ if exc_type else "Exception",
                "message": str(exc) if exc else None,
            }
            if self.include_stack:
                err["stack"] = self.formatException(record.exc_info)
            out["error"] = err

        return json.dumps(out, ensure_ascii=False, separators=(",", ":"), default=str)


class HumanFormatter(logging.Formatter):
    """Compact human-friendly formatter for local debugging."""

    default_time_format = "%Y-%m-%d %H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        s = f"{self.formatTime(record)} {record.levelname:<5} {record.name}: {record.getMessage()}"
        ctx = _log_context.get()
        if ctx:
            compact = {k: ctx[k] for k in _HUMAN_CONTEXT_KEYS if ctx.get(k) is not None}
            if compact:
                s += "  [" + ", ".join(f"{k}={v}" for k, v in compact.items()) + "]"
        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)
        return s


# ---------- Filters / adapter ----------


class ContextFilter(logging.Filter):
    """Copy current context fields onto the record (without overwriting)."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        if ctx:
            for k, v in ctx.items():
                record.__dict__.setdefault(k, v)
        return True


class _LevelRangeFilter(logging.Filter):
    def __init__(self, *, min_level: int = logging.NOTSET, max_level: int = logging.CRITICAL) -> None:
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return self.min_level <= record.levelno <= self.max_level


class _KwExtraAdapter(logging.LoggerAdapter):
    """
    Logger adapter that moves unknown kwargs into `extra={...}` so you can write:
        log.info("run.reclaim.ok", event="run.reclaim.ok", task_id=..., run_id=...)
    without TypeError from logging.
    """

    _passthrough: ClassVar[frozenset[str]] = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def process(self, msg, kwargs):
        extra = kwargs.get("extra")
        if not isinstance(extra, dict):
            extra = {}
        for k in [k for k in kwargs if k not in self._passthrough]:
            v = kwargs.pop(k)
            key = f"field_{k}" if k in _STD_ATTRS else k
            extra.setdefault(key, v)
        kwargs["extra"] = extra
        return msg, kwargs


# One-shot warning registry (per-process).
_WARN_ONCE_SEEN: set[str] = set()
_WARN_ONCE_LOCK = threading.Lock()


def _adapt(logger: logging.Logger | logging.LoggerAdapter) -> logging.LoggerAdapter:
    if isinstance(logger, logging.LoggerAdapter):
        return logger
    return _KwExtraAdapter(logger, {})


def warn_once(
    logger: logging.Logger | logging.LoggerAdapter,
    code: str,
    msg: str,
    *,
    level: int = logging.WARNING,
    **extra: Any,
) -> None:
    """Log a warning (or any level) only once per process for the given code."""
    with _WARN_ONCE_LOCK:
        if code in _WARN_ONCE_SEEN:
            return
        _WARN_ONCE_SEEN.add(code)
    _adapt(logger).log(level, msg, code=code, **extra)


# ---------- Public configuration API ----------

_ROOT_LOGGER_NAME = "taskrun"
_configured = False
_stdout_handler_key = "_taskrun_stdout_handler"
_stderr_handler_key = "_taskrun_stderr_handler"


def _truthy_env(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes", "on")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Invalid level name: {level!r}")
    return resolved


def _bootstrap_minimal() -> None:
    """Install a NullHandler and the context filter once."""
    global _configured
    if _configured:
        return
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    lg.setLevel(logging.DEBUG)
    if not any(isinstance(h, logging.NullHandler) for h in lg.handlers):
        lg.addHandler(logging.NullHandler())
    if not any(isinstance(f, ContextFilter) for f in lg.filters):
        lg.addFilter(ContextFilter())
    _configured = True


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """
    Return a namespaced logger adapter that accepts arbitrary keyword fields.
    Silent by default (NullHandler).
    """
    _bootstrap_minimal()
    base = logging.getLogger(_ROOT_LOGGER_NAME)
    return _KwExtraAdapter(base.getChild(name) if name else base, {})


def set_level(level: int | str) -> None:
    """Change the package logger level at runtime (affects children)."""
    logging.getLogger(_ROOT_LOGGER_NAME).setLevel(_resolve_level(level))


def enable_stdout_logging(
    *,
    level: int | str = logging.DEBUG,
    json_output: bool = True,
    include_stack: bool = False,
    pretty: bool = False,
    route_errors_to_stderr: bool = False,
) -> None:
    """
    Attach stream handlers for tests/local/containers.
    - json_output=True -> JsonFormatter; pretty=True -> HumanFormatter
    - route_errors_to_stderr=True -> ERROR+ to stderr, others to stdout
    """
    lvl = _resolve_level(level)
    _bootstrap_minimal()
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    disable_stdout_logging()

    fmt: logging.Formatter
    if pretty:
        fmt = HumanFormatter()
    elif json_output:
        fmt = JsonFormatter(include_stack=include_stack)
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    out = logging.StreamHandler(sys.stdout)
    out.set_name(_stdout_handler_key)
    out.setLevel(lvl)
    out.setFormatter(fmt)
    lg.addHandler(out)

    if route_errors_to_stderr:
        out.addFilter(_LevelRangeFilter(max_level=logging.WARNING))
        err = logging.StreamHandler(sys.stderr)
        err.set_name(_stderr_handler_key)
        err.setLevel(max(lvl, logging.ERROR))
        err.addFilter(_LevelRangeFilter(min_level=logging.ERROR))
        err.setFormatter(fmt)
        lg.addHandler(err)


def disable_stdout_logging() -> None:
    """Detach previously installed stdout/stderr handlers, if present."""
    lg = logging.getLogger(_ROOT_LOGGER_NAME)
    for h in list(lg.handlers):
        if h.get_name() in (_stdout_handler_key, _stderr_handler_key):
            lg.removeHandler(h)


def configure_from_env() -> None:
    """
    Call once in worker entrypoints/tests.
    Honors:
      - TASKRUN_LOG_STDOUT=1|true -> enable stdout
      - TASKRUN_LOG_LEVEL=DEBUG|INFO|...
      - TASKRUN_LOG_PRETTY=1 -> human formatter instead of JSON
      - TASKRUN_LOG_STACK=1 -> include stack in JSON logs
    """
    level = os.getenv("TASKRUN_LOG_LEVEL", "DEBUG")
    pretty = _truthy_env("TASKRUN_LOG_PRETTY")

    _bootstrap_minimal()
    set_level(level)

    if _truthy_env("TASKRUN_LOG_STDOUT"):
        enable_stdout_logging(
            level=level,
            json_output=not pretty,
            include_stack=_truthy_env("TASKRUN_LOG_STACK"),
            pretty=pretty,
        )
    else:
        disable_stdout_logging()


# ---------- Exception swallowing with trace ----------


@contextmanager
def swallow(
    *,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    level: int = logging.DEBUG,
    code: str,
    msg: str | None = None,
    reraise: bool = False,
    extra: Mapping[str, Any] | None = None,
):
    """
    Replace `try/except: pass` with structured logging.
    Example:
        with swallow(logger=log, code="lease.on_abort", msg="abort callback failed", level=logging.ERROR):
            await on_abort(result)
    If reraise=True, exception is rethrown after logging.
    """
    log_adapter = _adapt(logger or get_logger("swallow"))
    try:
        yield
    except Exception as e:
        payload: dict[str, Any] = {"code": code}
        if extra:
            payload.update(dict(extra))
        log_adapter.log(level, msg or "Suppressed exception", exc_info=e, **payload)
        if reraise:
            raise


_bootstrap_minimal()
