from .clock import START_MS, RecordingClock
from .fake_queue import (
    DEFAULT_TTL_MS,
    QUEUE_HOST,
    QUEUE_PORT,
    UPLOAD_BASE,
    FakeQueue,
    Recorded,
    claim_reply,
)

__all__ = [
    "DEFAULT_TTL_MS",
    "QUEUE_HOST",
    "QUEUE_PORT",
    "START_MS",
    "UPLOAD_BASE",
    "FakeQueue",
    "RecordingClock",
    "Recorded",
    "claim_reply",
]
