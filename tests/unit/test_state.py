from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from taskrun.worker.state import RunClaim, RunPhase
from tests.helpers import START_MS, claim_reply

pytestmark = [pytest.mark.unit]


def _claim(taken_until: str = "2023-11-14T22:33:20.000Z", **kw) -> RunClaim:
    return RunClaim.from_reply(
        claim_reply("T1", 2, taken_until, **kw), worker_group="wg-1", worker_id="w-1", run_id=2
    )


def test_from_reply_parses_deadline_and_targets():
    c = _claim()
    assert c.task_id == "T1"
    assert c.run_id == 2
    assert c.taken_until == datetime(2023, 11, 14, 22, 33, 20, tzinfo=UTC)
    assert c.taken_until_ms == START_MS + 20 * 60_000
    assert c.logs_put_url.startswith("https://uploads.example.test/logs/T1/2")
    assert c.result_put_url.startswith("https://uploads.example.test/result/T1/2")
    assert c.status["state"] == "running"


def test_deadline_keeps_millisecond_precision():
    c = _claim("2023-11-14T22:13:20.001Z")
    assert c.taken_until_ms == START_MS + 1


def test_naive_timestamp_is_treated_as_utc():
    c = _claim("2023-11-14T22:13:20")
    assert c.taken_until.tzinfo is not None
    assert c.taken_until_ms == START_MS


def test_snapshot_is_independent():
    c = _claim()
    snap = c.snapshot()
    snap.status["state"] = "exception"
    snap.status["runs"].append({"runId": 99})
    assert c.status["state"] == "running"
    assert len(c.status["runs"]) == 1


def test_claim_is_immutable():
    c = _claim()
    with pytest.raises(AttributeError):
        c.taken_until = datetime.now(UTC)  # type: ignore[misc]


def test_renewed_keeps_identity_and_takes_new_targets():
    c = _claim()
    r = c.renewed(claim_reply("T1", 2, "2023-11-14T22:53:20.000Z", version=1))
    assert (r.worker_group, r.worker_id, r.run_id) == (c.worker_group, c.worker_id, c.run_id)
    assert r.taken_until_ms - c.taken_until_ms == 20 * 60_000
    assert "v=1" in r.logs_put_url and "v=1" in r.result_put_url
    assert "v=0" in c.logs_put_url


def test_run_ref_wire_shape():
    assert _claim().run_ref().to_wire() == {"workerGroup": "wg-1", "workerId": "w-1", "runId": 2}


@pytest.mark.parametrize(
    "mutate",
    [
        lambda r: r.pop("logsPutUrl"),
        lambda r: r.pop("status"),
        lambda r: r["status"].pop("takenUntil"),
        lambda r: r["status"].__setitem__("takenUntil", "tomorrow"),
    ],
)
def test_malformed_reply_rejected(mutate):
    reply = claim_reply("T1", 2, "2023-11-14T22:33:20.000Z")
    mutate(reply)
    with pytest.raises(ValidationError):
        RunClaim.from_reply(reply, worker_group="wg-1", worker_id="w-1", run_id=2)


def test_phase_terminality():
    assert RunPhase.claimed.terminal is False
    assert RunPhase.completed.terminal is True
    assert RunPhase.aborted.terminal is True
