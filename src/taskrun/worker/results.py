# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from pydantic import BaseModel

from ..api.errors import QueueRequestError
from ..transport.queue import QueueResponse


class CallResult(BaseModel):
    """Success/failure of one run operation. Failures are reported, never retried."""

    ok: bool
    status_code: int | None = None
    reason_code: str | None = None
    error: str | None = None

    @classmethod
    def from_response(cls, resp: QueueResponse, *, reason_code: str) -> CallResult:
        if resp.ok:
            return cls(ok=True, status_code=resp.status_code)
        return cls.failed(reason_code, status_code=resp.status_code, error=resp.text or resp.error)

    @classmethod
    def failed(cls, reason_code: str, *, status_code: int | None = None, error: str | None = None) -> CallResult:
        return cls(ok=False, status_code=status_code, reason_code=reason_code, error=error)

    def raise_for_status(self) -> None:
        """Raise `QueueRequestError` if the call failed."""
        if not self.ok:
            raise QueueRequestError(self.reason_code or "request_failed", status_code=self.status_code, detail=self.error)


class UploadResult(CallResult):
    """Result of `put_artifact`; `url` is the public artifact URL on success."""

    url: str | None = None
