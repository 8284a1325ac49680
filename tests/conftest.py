# conftest.py
from __future__ import annotations

import os
import uuid
from typing import Any

import httpx
import pytest
import pytest_asyncio

from taskrun.core.config import QueueConfig
from taskrun.core.log import (
    bind_context,
    configure_from_env,
    enable_stdout_logging,
    get_logger,
    log_context,
)
from taskrun.core.time import Clock
from taskrun.core.utils import ms_to_iso
from taskrun.transport.queue import QueueClient
from taskrun.worker.runner import TaskRun
from taskrun.worker.state import RunClaim
from tests.helpers import (
    DEFAULT_TTL_MS,
    QUEUE_HOST,
    QUEUE_PORT,
    FakeQueue,
    RecordingClock,
    claim_reply,
)


def pytest_addoption(parser):
    parser.addoption(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit taskrun logs in JSON format during tests",
    )


@pytest.fixture(scope="session", autouse=True)
def _configure_taskrun_logging(request):
    configure_from_env()
    prefer_json = request.config.getoption("--log-json")
    # Unless stdout was requested via env, turn it on here (human-readable by default)
    if os.getenv("TASKRUN_LOG_STDOUT", "").lower() not in ("1", "true", "yes", "on"):
        enable_stdout_logging(
            level="DEBUG",
            json_output=prefer_json,
            pretty=not prefer_json,
            route_errors_to_stderr=True,
        )
    bind_context(role="pytest")


@pytest.fixture(scope="session")
def session_run_id():
    return uuid.uuid4().hex[:8]


@pytest.fixture(autouse=True)
def _test_log_context(request, session_run_id):
    log = get_logger("test")
    with log_context(test=request.node.name, test_run=session_run_id):
        log.debug("pytest.test.start", event="pytest.test.start")
        yield
        log.debug("pytest.test.finish", event="pytest.test.finish")


@pytest.fixture
def tlog():
    return get_logger("test")


@pytest.fixture
def queue_env(monkeypatch):
    monkeypatch.setenv("QUEUE_HOST", QUEUE_HOST)
    monkeypatch.setenv("QUEUE_PORT", str(QUEUE_PORT))


@pytest.fixture
def queue_cfg(queue_env):
    return QueueConfig.load()


@pytest.fixture
def clock():
    return RecordingClock()


@pytest.fixture
def fake_queue(clock):
    return FakeQueue(clock=clock)


@pytest_asyncio.fixture
async def queue_client(queue_cfg, fake_queue):
    http = httpx.AsyncClient(transport=fake_queue.transport())
    client = QueueClient(queue_cfg, client=http)
    try:
        yield client
    finally:
        await client.aclose()
        await http.aclose()


def make_claim(
    *,
    task_id: str = "T1",
    run_id: int = 2,
    taken_until_ms: int,
    worker_group: str = "wg-1",
    worker_id: str = "w-1",
) -> RunClaim:
    reply = claim_reply(task_id, run_id, ms_to_iso(taken_until_ms))
    return RunClaim.from_reply(reply, worker_group=worker_group, worker_id=worker_id, run_id=run_id)


@pytest.fixture
def make_run(queue_client, queue_cfg, clock, fake_queue):
    """
    Build TaskRun instances against the fake queue. `ttl_ms` sets the initial
    `takenUntil` relative to the run's clock. Keepers are stopped on teardown.
    """
    runs: list[TaskRun] = []

    def _make(
        *,
        task_id: str = "T1",
        run_id: int = 2,
        ttl_ms: int = DEFAULT_TTL_MS,
        run_clock: Clock | None = None,
        definition: dict[str, Any] | None = None,
    ) -> TaskRun:
        c = run_clock or clock
        fake_queue.clock = c
        claim = make_claim(task_id=task_id, run_id=run_id, taken_until_ms=c.now_ms() + ttl_ms)
        run = TaskRun(
            queue=queue_client,
            claim=claim,
            definition=definition if definition is not None else {"payload": {"command": ["echo", "hi"]}},
            cfg=queue_cfg,
            clock=c,
        )
        runs.append(run)
        return run

    yield _make
    for r in runs:
        r.stop_keeping()
