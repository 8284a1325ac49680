"""
Unit tests for QueueConfig loading and validation.

Contract:
  - QUEUE_HOST and QUEUE_PORT are mandatory; without them loading fails.
  - File < env < overrides precedence.
  - Derived millisecond fields and queue URLs.
"""

from __future__ import annotations

import json

import pytest

from taskrun.api.errors import ConfigError
from taskrun.core.config import QueueConfig

pytestmark = [pytest.mark.unit]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("QUEUE_HOST", raising=False)
    monkeypatch.delenv("QUEUE_PORT", raising=False)


def test_env_provides_queue_location(monkeypatch):
    monkeypatch.setenv("QUEUE_HOST", "queue.local")
    monkeypatch.setenv("QUEUE_PORT", "60001")
    cfg = QueueConfig.load()
    assert cfg.queue_host == "queue.local"
    assert cfg.queue_port == 60001
    assert cfg.queue_base_url == "http://queue.local:60001/v1"
    assert cfg.queue_url("/task/T1/claim") == "http://queue.local:60001/v1/task/T1/claim"


@pytest.mark.parametrize("env", [{}, {"QUEUE_HOST": "queue.local"}, {"QUEUE_PORT": "60001"}])
def test_missing_host_or_port_is_fatal(monkeypatch, env):
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    with pytest.raises(ConfigError, match=r"\$QUEUE_HOST and \$QUEUE_PORT must be defined!"):
        QueueConfig.load()


@pytest.mark.parametrize("port", ["http", 0, 70000])
def test_invalid_port_rejected(port):
    with pytest.raises(ConfigError):
        QueueConfig(queue_host="queue.local", queue_port=port)


def test_defaults_and_derived_fields():
    cfg = QueueConfig(queue_host="q", queue_port=1)
    assert cfg.reclaim_margin_sec == 180.0
    assert cfg.reclaim_margin_ms == 180_000
    assert cfg.artifact_public_base == "http://tasks.taskcluster.net"


def test_trailing_slash_stripped_from_public_base():
    cfg = QueueConfig(queue_host="q", queue_port=1, artifact_public_base="https://artifacts.example/")
    assert cfg.artifact_public_base == "https://artifacts.example"


def test_negative_margin_rejected():
    with pytest.raises(ConfigError):
        QueueConfig(queue_host="q", queue_port=1, reclaim_margin_sec=-1)


def test_precedence_file_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "taskrun.json"
    path.write_text(
        json.dumps({"queue_host": "from-file", "queue_port": 1000, "reclaim_margin_sec": 60}),
        encoding="utf-8",
    )
    monkeypatch.setenv("QUEUE_HOST", "from-env")

    cfg = QueueConfig.load(path, overrides={"reclaim_margin_sec": 30})
    assert cfg.queue_host == "from-env"
    assert cfg.queue_port == 1000
    assert cfg.reclaim_margin_ms == 30_000


def test_unreadable_file_is_ignored(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    cfg = QueueConfig.load(path, overrides={"queue_host": "q", "queue_port": 2})
    assert cfg.queue_host == "q"
