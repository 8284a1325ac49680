from __future__ import annotations

"""
Error taxonomy for taskrun.

Operational failures (HTTP errors, unreachable queue, malformed replies) are
NOT raised: every run operation reports them on its `CallResult`. The
exceptions below cover the remaining cases:

- configuration that makes the worker unable to start,
- local artifact validation (turned into a failed result by the uploader),
- calls on a run that has already completed or aborted,
- callers that prefer exceptions and opt in via `CallResult.raise_for_status()`.

Nothing in this package retries. A `QueueRequestError` carries the status code
so the caller can decide whether a retry is safe.
"""


class TaskRunError(Exception):
    """Base class for all taskrun errors."""

    ...


class ConfigError(TaskRunError):
    """The process environment/config is incomplete; the worker must not start."""

    ...


class ArtifactSourceError(TaskRunError):
    """The local artifact source is missing, not a regular file, or unreadable."""

    ...


class RunTerminatedError(TaskRunError):
    """A mutating call was made on a run that is already completed or aborted."""

    def __init__(self, operation: str, phase: str) -> None:
        super().__init__(f"cannot {operation}: run is {phase}")
        self.operation = operation
        self.phase = phase


class QueueRequestError(TaskRunError):
    """A queue or upload request failed (raised only on explicit request)."""

    def __init__(self, reason_code: str, *, status_code: int | None = None, detail: str | None = None) -> None:
        msg = reason_code if status_code is None else f"{reason_code} (HTTP {status_code})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.reason_code = reason_code
        self.status_code = status_code
        self.detail = detail
