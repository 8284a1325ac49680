# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Lease keeping for one claimed run.

The keeper owns at most one pending asyncio task. That task sleeps until
`takenUntil - margin`, reclaims, and on success sleeps again using the new
deadline. The next reclaim is scheduled only after the previous one resolved,
so two reclaims of the same run never overlap.

A single failed reclaim ends keeping and invokes the abort callback exactly
once. There is no retry and no backoff: whether to give up the run or try
again is the abort callback's decision.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from ..core.log import get_logger, swallow, warn_once
from ..core.time import Clock
from ..core.types import Millis, TimestampMs
from .results import CallResult

ReclaimFn = Callable[[], Awaitable[CallResult]]
AbortCallback = Callable[[CallResult], Awaitable[None] | None]


def reclaim_delay_ms(taken_until_ms: TimestampMs, now_ms: TimestampMs, margin_ms: Millis) -> Millis:
    """Delay before the next reclaim; deadlines already inside the margin fire immediately."""
    return max(0, int(taken_until_ms - now_ms - margin_ms))


class LeaseKeeper:
    def __init__(
        self,
        *,
        reclaim: ReclaimFn,
        deadline_ms: Callable[[], TimestampMs],
        clock: Clock,
        margin_ms: Millis,
        name: str = "lease",
    ) -> None:
        self._reclaim = reclaim
        self._deadline_ms = deadline_ms
        self.clock = clock
        self.margin_ms = margin_ms
        self.name = name

        self._pending: asyncio.Task | None = None
        self._reclaims = 0
        self.log = get_logger("worker.lease")

    @property
    def active(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def reclaims(self) -> int:
        """Successful reclaims performed by this keeper."""
        return self._reclaims

    def next_delay_ms(self) -> Millis:
        return reclaim_delay_ms(self._deadline_ms(), self.clock.now_ms(), self.margin_ms)

    def start(self, on_abort: AbortCallback | None = None) -> bool:
        """
        Schedule keeping. Returns False (and changes nothing) if a keeper task is
        already pending; call `stop()` first to replace it.
        """
        if self.active:
            warn_once(
                self.log,
                "lease.start.already_active",
                "lease keeping already active; start ignored",
                lease=self.name,
            )
            return False
        self._pending = asyncio.get_running_loop().create_task(self._keep(on_abort), name=f"{self.name}.keep")
        return True

    def stop(self) -> None:
        """Cancel the pending keeper task, if any. Idempotent."""
        task, self._pending = self._pending, None
        if task is not None and not task.done():
            task.cancel()
            self.log.debug("lease.stop", event="lease.stop", lease=self.name)

    async def _keep(self, on_abort: AbortCallback | None) -> None:
        try:
            while True:
                delay = self.next_delay_ms()
                self.log.debug("lease.schedule", event="lease.schedule", lease=self.name, delay_ms=delay)
                await self.clock.sleep_ms(delay)
                result = await self._reclaim_once()
                if not result.ok:
                    break
                self._reclaims += 1
        except asyncio.CancelledError:
            return

        if self._pending is asyncio.current_task():
            self._pending = None
        self.log.warning(
            "lease.lost",
            event="lease.lost",
            lease=self.name,
            reason_code=result.reason_code,
            status_code=result.status_code,
        )
        if on_abort is None:
            return
        with swallow(logger=self.log, code="lease.on_abort", msg="abort callback failed", level=logging.ERROR):
            out = on_abort(result)
            if inspect.isawaitable(out):
                await out

    async def _reclaim_once(self) -> CallResult:
        try:
            return await self._reclaim()
        except Exception as e:
            self.log.error("lease.reclaim.crashed", event="lease.reclaim.crashed", lease=self.name, exc_info=True)
            return CallResult.failed("reclaim_crashed", error=f"{type(e).__name__}: {e}")
