from __future__ import annotations

import json
import logging

import pytest

from taskrun.core.log import JsonFormatter, get_logger, log_context, swallow, warn_once

pytestmark = [pytest.mark.unit]


def _record(logger_name: str, msg: str, **extra) -> logging.LogRecord:
    rec = logging.LogRecord(logger_name, logging.INFO, __file__, 1, msg, None, None)
    rec.__dict__.update(extra)
    return rec


def test_json_formatter_merges_context_and_fields():
    fmt = JsonFormatter()
    with log_context(task_id="T1", run_id=2):
        out = json.loads(fmt.format(_record("taskrun.worker.run", "run.reclaim.ok", event="run.reclaim.ok")))
    assert out["message"] == "run.reclaim.ok"
    assert out["event"] == "run.reclaim.ok"
    assert out["task_id"] == "T1"
    assert out["run_id"] == 2
    assert out["level"] == "INFO"
    assert out["ts"].endswith("Z")


def test_log_context_is_restored():
    fmt = JsonFormatter()
    with log_context(task_id="T1"):
        pass
    out = json.loads(fmt.format(_record("taskrun", "x")))
    assert "task_id" not in out


def test_adapter_accepts_keyword_fields(caplog):
    caplog.set_level(logging.DEBUG, logger="taskrun")
    get_logger("unit").info("hello", event="unit.hello", lineno=7)
    rec = next(r for r in caplog.records if r.getMessage() == "hello")
    assert rec.event == "unit.hello"
    # reserved LogRecord attribute names are prefixed instead of clobbered
    assert rec.field_lineno == 7


def test_warn_once_logs_a_code_once(caplog):
    caplog.set_level(logging.DEBUG, logger="taskrun")
    log = get_logger("unit")
    for _ in range(3):
        warn_once(log, "unit.warn_once.only", "only once")
    assert sum(1 for r in caplog.records if r.getMessage() == "only once") == 1


def test_swallow_logs_and_suppresses(caplog):
    caplog.set_level(logging.DEBUG, logger="taskrun")
    with swallow(logger=get_logger("unit"), code="unit.boom", msg="boom suppressed", level=logging.ERROR):
        raise RuntimeError("boom")
    rec = next(r for r in caplog.records if r.getMessage() == "boom suppressed")
    assert rec.code == "unit.boom"
    assert rec.levelno == logging.ERROR


def test_swallow_reraise():
    with pytest.raises(RuntimeError):
        with swallow(code="unit.reraise", reraise=True):
            raise RuntimeError("again")
