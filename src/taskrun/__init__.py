from __future__ import annotations

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("taskrun")
except Exception:  # pragma: no cover
    # running from a source tree without installed metadata
    __version__ = "0.0.0"

from .core.config import QueueConfig
from .transport.queue import QueueClient
from .worker import CallResult, RunClaim, RunPhase, TaskRun, UploadResult

__all__ = [
    "CallResult",
    "QueueClient",
    "QueueConfig",
    "RunClaim",
    "RunPhase",
    "TaskRun",
    "UploadResult",
    "__version__",
]
