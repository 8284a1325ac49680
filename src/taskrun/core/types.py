from __future__ import annotations

"""
taskrun.core.types
==================

Shared type aliases and constants of the run client.
Dependency-free; do not import application models here.
"""

import os
from pathlib import Path
from typing import Final, Union

# Paths accepted wherever a local file is named
StrPath = Union[str, os.PathLike[str], Path]

# ---- Time --------------------------------------------------------------------

Millis = int
TimestampMs = int  # wall-clock epoch timestamp (ms)
MonotonicMs = int  # process-local monotonic time (ms)

# ---- Constants ---------------------------------------------------------------

# Queue REST API version prefix.
QUEUE_API_PREFIX: Final[str] = "/v1"

# Public location artifacts are served from once uploaded.
DEFAULT_ARTIFACT_PUBLIC_BASE: Final[str] = "http://tasks.taskcluster.net"

# Content type used when neither the caller nor the file name tells us better.
DEFAULT_CONTENT_TYPE: Final[str] = "application/octet-stream"


__all__ = [
    "StrPath",
    "Millis",
    "TimestampMs",
    "MonotonicMs",
    "QUEUE_API_PREFIX",
    "DEFAULT_ARTIFACT_PUBLIC_BASE",
    "DEFAULT_CONTENT_TYPE",
]
