from __future__ import annotations
import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from adapters.schemas import BatchConfig, ItemResult
from config.logger import logger
from config.settings import STALE_BATCH_MAX_AGE_S


class BatchStatus(str, Enum):
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETE = "complete"
    ERROR = "error"


class CancellationToken:
    """Cooperative stop flag, polled at chunk boundaries and before each dispatch."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def generate_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class Batch:
    id: str
    total: int
    config: BatchConfig
    processed: int = 0
    successful: int = 0
    failed: int = 0
    results: List[ItemResult] = field(default_factory=list)
    status: BatchStatus = BatchStatus.RUNNING
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    error: Optional[str] = None
    expires_at: Optional[float] = None  # set once finished; evicted after this
    token: CancellationToken = field(default_factory=CancellationToken, repr=False)

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def is_terminal(self) -> bool:
        return self.status != BatchStatus.RUNNING

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "error": self.error,
            "config": self.config.model_dump(),
            "results": [r.model_dump() for r in self.results],
        }


class BatchRegistry:
    """
    Keyed store of batches that are running or recently finished.

    Finished batches stay visible for a grace period (see schedule_cleanup) so
    late status queries still see the final counters. Expiry is checked on
    every access, so eviction does not depend on the event loop that ran the
    batch still being alive.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._batches: Dict[str, Batch] = {}
        self._cleanups: Dict[str, asyncio.TimerHandle] = {}
        self._lock = threading.RLock()
        self.clock = clock

    def __enter__(self) -> "BatchRegistry":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._batches)

    def __contains__(self, batch_id: str) -> bool:
        with self._lock:
            self._evict_expired()
            return batch_id in self._batches

    def _evict_expired(self) -> None:
        now = self.clock()
        expired = [
            batch_id for batch_id, batch in self._batches.items()
            if batch.is_terminal and batch.expires_at is not None and now >= batch.expires_at
        ]
        for batch_id in expired:
            self.remove(batch_id)
            logger.info(f"Cleaned up batch {batch_id}")

    def register(self, batch: Batch) -> None:
        with self._lock:
            self._evict_expired()
            self._batches[batch.id] = batch

    def get(self, batch_id: str) -> Optional[Batch]:
        with self._lock:
            self._evict_expired()
            return self._batches.get(batch_id)

    def remove(self, batch_id: str) -> bool:
        with self._lock:
            handle = self._cleanups.pop(batch_id, None)
            if handle is not None:
                handle.cancel()
            return self._batches.pop(batch_id, None) is not None

    def cancel(self, batch_id: str) -> bool:
        """Request a stop. Items already dispatched still run to completion."""
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                return False
            batch.token.cancel()
            batch.status = BatchStatus.CANCELLED
            self.remove(batch_id)
        logger.info(f"Batch {batch_id} cancellation requested")
        return True

    def schedule_cleanup(self, batch_id: str, delay: float) -> None:
        """Mark the batch for removal `delay` seconds from now."""
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                return
            batch.expires_at = self.clock() + delay
            previous = self._cleanups.pop(batch_id, None)
            if previous is not None:
                previous.cancel()

            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return

            def _drop() -> None:
                with self._lock:
                    self._cleanups.pop(batch_id, None)
                    self._batches.pop(batch_id, None)
                logger.info(f"Cleaned up batch {batch_id}")

            self._cleanups[batch_id] = loop.call_later(delay, _drop)

    def cleanup_old_batches(self, max_age: float = STALE_BATCH_MAX_AGE_S, *, now: Optional[float] = None) -> int:
        """Remove finished batches whose end time is older than max_age seconds."""
        now = self.clock() if now is None else now
        with self._lock:
            stale = [
                batch_id for batch_id, batch in self._batches.items()
                if batch.is_terminal and batch.end_time is not None and now - batch.end_time > max_age
            ]
            for batch_id in stale:
                self.remove(batch_id)
        return len(stale)

    def close(self) -> None:
        with self._lock:
            for handle in self._cleanups.values():
                handle.cancel()
            self._cleanups.clear()
            self._batches.clear()


__all__ = ["Batch", "BatchRegistry", "BatchStatus", "CancellationToken", "generate_batch_id"]
