# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Artifact upload: validate locally, negotiate a signed PUT URL, stream bytes.

1. `ArtifactSource.inspect` checks the file before any network call.
2. The queue hands out a short-lived signed URL for exactly one artifact.
3. The file is streamed there with explicit Content-Type / Content-Length.

On success the canonical public URL is built deterministically from the run
identity. A failure at any step is reported once; nothing is retried.
"""

import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from ..api.errors import ArtifactSourceError
from ..core.log import get_logger
from ..core.types import DEFAULT_CONTENT_TYPE, StrPath
from ..protocol.messages import ArtifactSpec, ArtifactUrlsReply, ArtifactUrlsRequest
from ..security.redaction import redact_url
from ..transport.queue import QueueClient
from .results import CallResult, UploadResult
from .state import RunClaim


def guess_content_type(path: StrPath) -> str:
    ctype, _encoding = mimetypes.guess_type(os.fspath(path), strict=False)
    return ctype or DEFAULT_CONTENT_TYPE


def artifact_url(public_base: str, task_id: str, run_id: int, name: str) -> str:
    return f"{public_base.rstrip('/')}/{task_id}/runs/{run_id}/artifacts/{name}"


@dataclass(frozen=True)
class ArtifactSource:
    """A local file about to be uploaded as artifact `name`."""

    name: str
    path: Path
    content_type: str
    size_bytes: int

    @classmethod
    def inspect(cls, name: str, source: StrPath, content_type: str | None = None) -> ArtifactSource:
        if not name:
            raise ArtifactSourceError("artifact name must be non-empty")
        path = Path(source)
        try:
            st = path.stat()
        except OSError as e:
            raise ArtifactSourceError(f"No such file: {path}") from e
        if not path.is_file():
            raise ArtifactSourceError(f"Not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise ArtifactSourceError(f"File is not readable: {path}")
        return cls(
            name=name,
            path=path,
            content_type=content_type or guess_content_type(path),
            size_bytes=st.st_size,
        )


class ArtifactUploader:
    def __init__(self, queue: QueueClient, *, public_base: str) -> None:
        self.queue = queue
        self.public_base = public_base
        self.log = get_logger("worker.artifacts")

    async def upload(
        self,
        claim: RunClaim,
        name: str,
        source: StrPath,
        content_type: str | None = None,
    ) -> UploadResult:
        try:
            art = ArtifactSource.inspect(name, source, content_type)
        except ArtifactSourceError as e:
            self.log.warning("artifact.source.invalid", event="artifact.source.invalid", artifact=name, error=str(e))
            return UploadResult(ok=False, reason_code="invalid_source", error=str(e))

        request = ArtifactUrlsRequest(
            worker_group=claim.worker_group,
            worker_id=claim.worker_id,
            run_id=claim.run_id,
            artifacts={art.name: ArtifactSpec(content_type=art.content_type)},
        )
        resp = await self.queue.artifact_urls(claim.task_id, request)
        if not resp.ok:
            self.log.warning(
                "artifact.url.failed",
                event="artifact.url.failed",
                artifact=art.name,
                status_code=resp.status_code,
                error=resp.text,
            )
            return _upload_failed(CallResult.from_response(resp, reason_code="artifact_urls_failed"))

        try:
            put_url = ArtifactUrlsReply.model_validate(resp.body).artifact_put_urls[art.name]
        except (ValidationError, KeyError) as e:
            self.log.warning("artifact.url.invalid_reply", event="artifact.url.invalid_reply", artifact=art.name)
            return UploadResult(ok=False, status_code=resp.status_code, reason_code="invalid_reply", error=str(e))
        self.log.debug("artifact.url.ok", event="artifact.url.ok", artifact=art.name, put_url=redact_url(put_url))

        up = await self.queue.put_file(put_url, art.path, content_type=art.content_type, size=art.size_bytes)
        if not up.ok:
            self.log.warning(
                "artifact.upload.failed",
                event="artifact.upload.failed",
                artifact=art.name,
                status_code=up.status_code,
                error=up.text,
            )
            return _upload_failed(CallResult.from_response(up, reason_code="upload_failed"))

        url = artifact_url(self.public_base, claim.task_id, claim.run_id, art.name)
        self.log.debug(
            "artifact.upload.ok",
            event="artifact.upload.ok",
            artifact=art.name,
            size_bytes=art.size_bytes,
            content_type=art.content_type,
            url=url,
        )
        return UploadResult(ok=True, status_code=up.status_code, url=url)


def _upload_failed(res: CallResult) -> UploadResult:
    return UploadResult(**res.model_dump())
