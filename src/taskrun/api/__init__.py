from __future__ import annotations

"""
Public error types of taskrun.
"""

from .errors import (
    ArtifactSourceError,
    ConfigError,
    QueueRequestError,
    RunTerminatedError,
    TaskRunError,
)

__all__ = [
    "ArtifactSourceError",
    "ConfigError",
    "QueueRequestError",
    "RunTerminatedError",
    "TaskRunError",
]
