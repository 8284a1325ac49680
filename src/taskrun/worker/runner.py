# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import asyncio
import copy
import inspect
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ..api.errors import RunTerminatedError
from ..core.config import QueueConfig
from ..core.log import get_logger, log_context
from ..core.time import Clock, SystemClock
from ..core.types import StrPath
from ..core.utils import dumps, ms_to_iso
from ..security.redaction import redact_url
from ..transport.queue import QueueClient
from .artifacts import ArtifactUploader
from .lease import AbortCallback, LeaseKeeper
from .results import CallResult, UploadResult
from .state import RunClaim, RunPhase


class TaskRun:
    """
    One claimed run of a task, from claim to completion.

    - keeps the claim alive (`start_keeping` / `stop_keeping`)
    - uploads logs.json, result.json and artifacts to signed URLs
    - reports completion, which always stops lease keeping first

    Operations report failures on their result instead of raising; only calls
    on a completed or aborted run raise (`RunTerminatedError`).
    """

    def __init__(
        self,
        *,
        queue: QueueClient,
        claim: RunClaim,
        definition: Mapping[str, Any] | None = None,
        cfg: QueueConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.queue = queue
        self.cfg = cfg or queue.cfg
        self.clock: Clock = clock or SystemClock()

        self._claim = claim
        self._definition: dict[str, Any] = copy.deepcopy(dict(definition or {}))
        self._phase = RunPhase.claimed
        self._reclaim_lock = asyncio.Lock()

        self._uploader = ArtifactUploader(queue, public_base=self.cfg.artifact_public_base)
        self._lease = LeaseKeeper(
            reclaim=self.reclaim,
            deadline_ms=lambda: self._claim.taken_until_ms,
            clock=self.clock,
            margin_ms=self.cfg.reclaim_margin_ms,
            name=f"{claim.task_id}/{claim.run_id}",
        )
        self._on_abort: AbortCallback | None = None

        self.log = get_logger("worker.run")

    @classmethod
    def from_claim_reply(
        cls,
        queue: QueueClient,
        reply: Mapping[str, Any],
        *,
        worker_group: str,
        worker_id: str,
        run_id: int,
        definition: Mapping[str, Any] | None = None,
        cfg: QueueConfig | None = None,
        clock: Clock | None = None,
    ) -> TaskRun:
        """Wrap the reply of the (external) first claim."""
        claim = RunClaim.from_reply(reply, worker_group=worker_group, worker_id=worker_id, run_id=run_id)
        return cls(queue=queue, claim=claim, definition=definition, cfg=cfg, clock=clock)

    # ---------- state ----------

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def keeping(self) -> bool:
        return self._lease.active

    def status(self) -> RunClaim:
        """Current claim snapshot; changing the returned object never affects the run."""
        return self._claim.snapshot()

    def definition(self) -> dict[str, Any]:
        """Task definition as fetched at claim time (a private copy)."""
        return copy.deepcopy(self._definition)

    def _ensure_active(self, operation: str) -> None:
        if self._phase.terminal:
            raise RunTerminatedError(operation, self._phase.value)

    def _ctx(self):
        c = self._claim
        return log_context(task_id=c.task_id, run_id=c.run_id, worker_group=c.worker_group, worker_id=c.worker_id)

    # ---------- lease ----------

    async def reclaim(self) -> CallResult:
        """
        Renew the claim. On success the snapshot (deadline and upload targets)
        is replaced; on failure nothing changes.
        """
        self._ensure_active("reclaim")
        async with self._reclaim_lock:
            self._ensure_active("reclaim")
            claim = self._claim
            with self._ctx():
                resp = await self.queue.reclaim(claim.task_id, claim.run_ref())
                if not resp.ok:
                    self.log.warning(
                        "run.reclaim.failed",
                        event="run.reclaim.failed",
                        status_code=resp.status_code,
                        error=resp.text,
                    )
                    return CallResult.from_response(resp, reason_code="reclaim_failed")
                try:
                    renewed = claim.renewed(resp.body or {})
                except ValidationError as e:
                    self.log.warning("run.reclaim.invalid_reply", event="run.reclaim.invalid_reply", error=str(e))
                    return CallResult.failed("invalid_reply", status_code=resp.status_code, error=str(e))

                if renewed.taken_until < claim.taken_until:
                    self.log.warning(
                        "run.reclaim.taken_until_regressed",
                        event="run.reclaim.taken_until_regressed",
                        previous=ms_to_iso(claim.taken_until_ms),
                        taken_until=ms_to_iso(renewed.taken_until_ms),
                    )
                self._claim = renewed
                self.log.debug(
                    "run.reclaim.ok",
                    event="run.reclaim.ok",
                    taken_until=ms_to_iso(renewed.taken_until_ms),
                )
                return CallResult.from_response(resp, reason_code="reclaim_failed")

    def start_keeping(self, on_abort: AbortCallback | None = None) -> bool:
        """
        Reclaim before `takenUntil` expires until `complete()` or `stop_keeping()`.
        If a reclaim fails the run becomes aborted and `on_abort(result)` is called.
        Returns False if keeping was already active (the call is then a no-op).
        """
        self._ensure_active("start keeping")
        started = self._lease.start(self._lease_lost)
        if started:
            self._on_abort = on_abort
        return started

    def stop_keeping(self) -> None:
        """Stop reclaiming. Safe to call any number of times, in any phase."""
        self._lease.stop()

    async def _lease_lost(self, result: CallResult) -> None:
        self._phase = RunPhase.aborted
        with self._ctx():
            self.log.warning(
                "run.aborted",
                event="run.aborted",
                reason_code=result.reason_code,
                status_code=result.status_code,
            )
        on_abort, self._on_abort = self._on_abort, None
        if on_abort is not None:
            out = on_abort(result)
            if inspect.isawaitable(out):
                await out

    # ---------- uploads ----------

    async def put_logs(self, document: Any) -> CallResult:
        """PUT logs.json to the current logs target."""
        return await self._put_document("logs", document)

    async def put_result(self, document: Any) -> CallResult:
        """PUT result.json to the current result target."""
        return await self._put_document("result", document)

    async def _put_document(self, kind: str, document: Any) -> CallResult:
        self._ensure_active(f"put {kind}")
        claim = self._claim
        url = claim.logs_put_url if kind == "logs" else claim.result_put_url
        with self._ctx():
            try:
                body = dumps(document)
            except (TypeError, ValueError) as e:
                self.log.warning(
                    f"run.put_{kind}.invalid_document",
                    event=f"run.put_{kind}.invalid_document",
                    error=str(e),
                )
                return CallResult.failed("invalid_document", error=str(e))
            resp = await self.queue.put_json(url, body)
            if resp.ok:
                self.log.debug(f"run.put_{kind}.ok", event=f"run.put_{kind}.ok", url=redact_url(url))
            else:
                self.log.warning(
                    f"run.put_{kind}.failed",
                    event=f"run.put_{kind}.failed",
                    url=redact_url(url),
                    status_code=resp.status_code,
                    error=resp.text,
                )
        return CallResult.from_response(resp, reason_code="put_failed")

    async def put_artifact(self, name: str, source: StrPath, content_type: str | None = None) -> UploadResult:
        """
        Upload a local file as artifact `name`; the result carries its public URL.
        Content type is guessed from the file name when not given.
        """
        self._ensure_active("put artifact")
        with self._ctx():
            return await self._uploader.upload(self._claim, name, source, content_type)

    # ---------- completion ----------

    async def complete(self) -> CallResult:
        """
        Report the run completed. Lease keeping is stopped before anything else,
        and an in-flight reclaim is allowed to unwind before the report is sent.
        """
        self._ensure_active("complete")
        self.stop_keeping()
        async with self._reclaim_lock:
            self._ensure_active("complete")
            claim = self._claim
            with self._ctx():
                resp = await self.queue.report_completed(claim.task_id, claim.run_ref())
                if not resp.ok:
                    self.log.warning(
                        "run.complete.failed",
                        event="run.complete.failed",
                        status_code=resp.status_code,
                        error=resp.text,
                    )
                    return CallResult.from_response(resp, reason_code="complete_failed")
                self._phase = RunPhase.completed
                self.log.info("run.complete.ok", event="run.complete.ok")
                return CallResult.from_response(resp, reason_code="complete_failed")
