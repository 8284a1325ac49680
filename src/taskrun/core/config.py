from __future__ import annotations

"""
taskrun.core.config
===================

Strongly-typed configuration for the run client.
- Optional JSON file loading (fail-soft), then environment, then overrides.
- Derives millisecond fields from seconds to avoid repeated conversions.
- The queue location comes from `QUEUE_HOST` / `QUEUE_PORT`; without both the
  worker must not start, so construction raises `ConfigError`.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..api.errors import ConfigError
from .log import get_logger, swallow
from .types import DEFAULT_ARTIFACT_PUBLIC_BASE, QUEUE_API_PREFIX

_log = get_logger("config")


def _try_load_json(path: Path | None) -> dict[str, Any]:
    if not path or not path.exists():
        return {}
    with swallow(logger=_log, code="config.file.unreadable", msg="config file ignored", level=logging.WARNING):
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return data
    return {}


@dataclass
class QueueConfig:
    """Queue location, lease timing and upload settings."""

    # Queue location
    queue_host: str | None = None
    queue_port: int | None = None

    # Lease timing (seconds). The margin is the time kept in reserve before
    # `takenUntil` so the reclaim request can complete before the deadline.
    reclaim_margin_sec: float = 180.0

    # Artifacts
    artifact_public_base: str = DEFAULT_ARTIFACT_PUBLIC_BASE
    upload_chunk_size: int = 1 << 16

    # Transport
    http_timeout_sec: float = 30.0

    # Derived (ms)
    reclaim_margin_ms: int = 0

    # ---- Methods ------------------------------------------------------------

    def __post_init__(self) -> None:
        if not self.queue_host or self.queue_port in (None, ""):
            raise ConfigError("$QUEUE_HOST and $QUEUE_PORT must be defined!")
        try:
            self.queue_port = int(self.queue_port)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"queue_port must be an integer, got {self.queue_port!r}") from e
        if not 0 < self.queue_port < 65536:
            raise ConfigError(f"queue_port out of range: {self.queue_port}")
        if self.reclaim_margin_sec < 0:
            raise ConfigError("reclaim_margin_sec must be non-negative")
        if self.upload_chunk_size <= 0:
            raise ConfigError("upload_chunk_size must be positive")
        self.artifact_public_base = self.artifact_public_base.rstrip("/")
        self.reclaim_margin_ms = int(self.reclaim_margin_sec * 1000)

    @property
    def queue_base_url(self) -> str:
        return f"http://{self.queue_host}:{self.queue_port}{QUEUE_API_PREFIX}"

    def queue_url(self, path: str) -> str:
        """Absolute URL for a queue API end-point, e.g. `/task/T1/claim`."""
        return self.queue_base_url + path

    # Loader
    @staticmethod
    def load(path: Path | str | None = None, overrides: dict[str, Any] | None = None) -> QueueConfig:
        """
        Load config from JSON file (if provided), then apply env and overrides.

        Env:
          - QUEUE_HOST
          - QUEUE_PORT
        """
        data: dict[str, Any] = {}
        data.update(_try_load_json(Path(path) if path else None))
        if os.getenv("QUEUE_HOST"):
            data["queue_host"] = os.environ["QUEUE_HOST"]
        if os.getenv("QUEUE_PORT"):
            data["queue_port"] = os.environ["QUEUE_PORT"]
        if overrides:
            data.update(overrides)
        return QueueConfig(**data)
