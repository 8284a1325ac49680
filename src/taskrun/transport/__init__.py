from __future__ import annotations

"""
Transport to the queue service and to signed upload destinations.
"""

from .queue import QueueClient, QueueResponse

__all__ = [
    "QueueClient",
    "QueueResponse",
]
