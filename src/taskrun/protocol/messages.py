from __future__ import annotations

"""
Queue protocol messages
=======================

Wire-level request bodies and replies exchanged with the queue REST API
(`http://<host>:<port>/v1/...`).

Design principles:
- Pydantic v2 models; Python names are snake_case, the wire is camelCase
  (always serialize with `by_alias=True`).
- Request bodies use `extra="forbid"` so a typo fails fast on our side.
- Replies use `extra="ignore"` (or `"allow"` where the raw document is kept),
  since the server is free to add fields.
- Timestamps arrive as ISO-8601 strings and are parsed into aware datetimes.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --------------------------------------------------------------------------- #
# Requests
# --------------------------------------------------------------------------- #


class RunRef(BaseModel):
    """Identifies the run a request acts on; body of claim/completed calls."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    worker_group: str = Field(alias="workerGroup")
    worker_id: str = Field(alias="workerId")
    run_id: int = Field(alias="runId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ArtifactSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    content_type: str = Field(alias="contentType")


class ArtifactUrlsRequest(RunRef):
    """Body of `POST /task/{taskId}/artifact-urls`."""

    artifacts: dict[str, ArtifactSpec]


# --------------------------------------------------------------------------- #
# Replies
# --------------------------------------------------------------------------- #


class TaskStatus(BaseModel):
    """
    Server-side status of a task. Only the fields the client relies on are
    typed; everything else the server sends is preserved as extra fields.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    task_id: str = Field(alias="taskId")
    taken_until: datetime = Field(alias="takenUntil")


class ClaimReply(BaseModel):
    """Reply of a (re)claim: status snapshot plus fresh signed upload targets."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: TaskStatus
    logs_put_url: str = Field(alias="logsPutUrl")
    result_put_url: str = Field(alias="resultPutUrl")


class ArtifactUrlsReply(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    artifact_put_urls: dict[str, str] = Field(alias="artifactPutUrls")


__all__ = [
    "ArtifactSpec",
    "ArtifactUrlsReply",
    "ArtifactUrlsRequest",
    "ClaimReply",
    "RunRef",
    "TaskStatus",
]
