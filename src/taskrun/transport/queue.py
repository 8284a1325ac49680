# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
HTTP client for the queue REST API and for direct uploads to signed URLs.

Every call returns a `QueueResponse`; HTTP errors and network failures are
reported in it rather than raised, so the run state can react without
exception-based control flow. Any non-2xx status counts as a failure.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from ..core.config import QueueConfig
from ..core.log import get_logger
from ..protocol.messages import ArtifactUrlsRequest, RunRef
from ..security.redaction import redact_url

_TEXT_PREVIEW_LIMIT = 2048


@dataclass(slots=True)
class QueueResponse:
    """Outcome of one HTTP call."""

    ok: bool
    status_code: int | None
    body: Any = None
    text: str = ""
    error: str | None = None


async def iter_file(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield the file's bytes in chunks (httpx.AsyncClient needs an async stream)."""
    with path.open("rb") as fh:
        while chunk := fh.read(chunk_size):
            yield chunk


class QueueClient:
    """Queue API calls for one worker process; safe to share between runs."""

    def __init__(self, cfg: QueueConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg
        self._client = client or httpx.AsyncClient(
            timeout=cfg.http_timeout_sec,
            headers={"Accept": "application/json"},
        )
        self._owns_client = client is None
        self.log = get_logger("transport.queue")

    async def aclose(self) -> None:
        """Close the underlying HTTP client when owned by this wrapper."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> QueueClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ---------- queue end-points ----------

    async def reclaim(self, task_id: str, ref: RunRef) -> QueueResponse:
        """`POST /task/{taskId}/claim`: renew the claim of a run."""
        return await self._post_json(f"/task/{task_id}/claim", ref.to_wire())

    async def artifact_urls(self, task_id: str, request: ArtifactUrlsRequest) -> QueueResponse:
        """`POST /task/{taskId}/artifact-urls`: obtain signed PUT URLs for artifacts."""
        return await self._post_json(f"/task/{task_id}/artifact-urls", request.to_wire())

    async def report_completed(self, task_id: str, ref: RunRef) -> QueueResponse:
        """`POST /task/{taskId}/completed`: report the run as completed."""
        return await self._post_json(f"/task/{task_id}/completed", ref.to_wire())

    # ---------- direct uploads ----------

    async def put_json(self, url: str, body: bytes) -> QueueResponse:
        """PUT an already encoded JSON document (see `core.utils.dumps`) to a signed URL."""
        return await self._send(
            "PUT",
            url,
            content=body,
            headers={"Content-Type": "application/json"},
        )

    async def put_file(self, url: str, path: Path, *, content_type: str, size: int) -> QueueResponse:
        """Stream a local file to a signed URL with an explicit content type and length."""
        return await self._send(
            "PUT",
            url,
            content=iter_file(path, self.cfg.upload_chunk_size),
            headers={"Content-Type": content_type, "Content-Length": str(size)},
        )

    # ---------- internals ----------

    async def _post_json(self, path: str, body: dict[str, Any]) -> QueueResponse:
        return await self._send("POST", self.cfg.queue_url(path), json=body)

    async def _send(self, method: str, url: str, **kwargs: Any) -> QueueResponse:
        safe_url = redact_url(url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except (httpx.HTTPError, OSError) as exc:
            # OSError: reading a streamed request body failed
            self.log.debug(
                "queue.http.error",
                event="queue.http.error",
                method=method,
                url=safe_url,
                error=f"{type(exc).__name__}: {exc}",
            )
            return QueueResponse(ok=False, status_code=None, text=str(exc), error="transport_error")

        text = response.text[:_TEXT_PREVIEW_LIMIT]
        self.log.debug(
            "queue.http.response",
            event="queue.http.response",
            method=method,
            url=safe_url,
            status_code=response.status_code,
        )
        return QueueResponse(
            ok=response.is_success,
            status_code=response.status_code,
            body=_json_or_none(response),
            text=text,
            error=None if response.is_success else "http_error",
        )


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if "json" not in response.headers.get("content-type", ""):
        return None
    try:
        return response.json()
    except ValueError:
        return None
