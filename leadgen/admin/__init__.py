# leadgen/admin/__init__.py
from __future__ import annotations

from .metrics import QueueStats, WorkerStats, get_queue_stats, queue_status_payload

__all__ = ["QueueStats", "WorkerStats", "get_queue_stats", "queue_status_payload"]
