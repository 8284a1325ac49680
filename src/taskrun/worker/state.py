# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ..core.types import TimestampMs
from ..core.utils import as_utc, datetime_to_ms
from ..protocol.messages import ClaimReply, RunRef


class RunPhase(str, Enum):
    """Lifecycle of one run. `completed` and `aborted` are terminal."""

    claimed = "claimed"
    completed = "completed"
    aborted = "aborted"

    @property
    def terminal(self) -> bool:
        return self is not RunPhase.claimed


@dataclass(frozen=True)
class RunClaim:
    """
    Immutable snapshot of a claimed run.

    Replaced wholesale on every successful reclaim; never edited in place.
    `status` is the raw status document as the server sent it.
    """

    task_id: str
    worker_group: str
    worker_id: str
    run_id: int
    taken_until: datetime
    logs_put_url: str
    result_put_url: str
    status: dict[str, Any] = field(default_factory=dict)

    @property
    def taken_until_ms(self) -> TimestampMs:
        return datetime_to_ms(self.taken_until)

    def run_ref(self) -> RunRef:
        return RunRef(worker_group=self.worker_group, worker_id=self.worker_id, run_id=self.run_id)

    def snapshot(self) -> RunClaim:
        """Independent copy; only the nested status document needs copying."""
        return replace(self, status=copy.deepcopy(self.status))

    def renewed(self, reply: Mapping[str, Any]) -> RunClaim:
        """Snapshot that replaces this one after a successful reclaim."""
        return RunClaim.from_reply(
            reply,
            worker_group=self.worker_group,
            worker_id=self.worker_id,
            run_id=self.run_id,
        )

    @classmethod
    def from_reply(cls, reply: Mapping[str, Any], *, worker_group: str, worker_id: str, run_id: int) -> RunClaim:
        """
        Build a snapshot from a claim reply `{status, logsPutUrl, resultPutUrl}`.
        Raises pydantic.ValidationError if the reply is malformed.
        """
        parsed = ClaimReply.model_validate(reply)
        return cls(
            task_id=parsed.status.task_id,
            worker_group=worker_group,
            worker_id=worker_id,
            run_id=int(run_id),
            taken_until=as_utc(parsed.status.taken_until),
            logs_put_url=parsed.logs_put_url,
            result_put_url=parsed.result_put_url,
            status=copy.deepcopy(dict(reply["status"])),
        )
