from __future__ import annotations
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from adapters.schemas import Address, BatchOutcome, ItemResult, ProgressCheckpoint, ProgressSummary
from config.logger import logger
from config.settings import CHECKPOINT_MAX_AGE_S, CHECKPOINT_VERSION, PROGRESS_KEY
from data.storage import JsonStore

Record = Union[Address, ItemResult, Dict[str, Any]]


def _as_record(item: Record) -> Dict[str, Any]:
    if isinstance(item, (Address, ItemResult)):
        return item.model_dump(mode="json", exclude_none=True)
    return dict(item)


def format_elapsed(seconds: float, timestamp: float) -> str:
    """'just now' / 'Xm ago' / 'Xh ago', else the calendar date of the checkpoint."""
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return datetime.fromtimestamp(timestamp).strftime("%m/%d/%Y")


class ProgressStore:
    """
    Single-slot checkpoint for a block route, so an interrupted run can resume.

    One checkpoint per store: saving for another block overwrites the slot.
    Checkpoints older than 24h read back as absent.
    """

    def __init__(self, store: Optional[JsonStore] = None, *, clock: Callable[[], float] = time.time, max_age: float = CHECKPOINT_MAX_AGE_S) -> None:
        self.store = store if store is not None else JsonStore()
        self.clock = clock
        self.max_age = max_age
        self.current: Optional[ProgressCheckpoint] = None

    def save(self, block_id: str, completed: Iterable[Record], remaining: Iterable[Record]) -> ProgressCheckpoint:
        checkpoint = ProgressCheckpoint(
            block_id=block_id,
            completed=[_as_record(c) for c in completed],
            remaining=[_as_record(r) for r in remaining],
            timestamp=self.clock(),
            version=CHECKPOINT_VERSION,
        )
        self.store.set(PROGRESS_KEY, checkpoint.model_dump(by_alias=True))
        self.current = checkpoint
        return checkpoint

    def save_batch(self, block_id: str, addresses: Iterable[Address], outcome: BatchOutcome) -> ProgressCheckpoint:
        """
        Checkpoint a finished (or cancelled) batch: successful items become
        `completed` (address merged with its result), everything else stays
        `remaining` in route order.
        """
        ordered = list(addresses)
        done = {r.index: r for r in outcome.results if r.success and r.index is not None}
        completed = [
            {**_as_record(addr), **_as_record(done[idx])}
            for idx, addr in enumerate(ordered) if idx in done
        ]
        remaining = [addr for idx, addr in enumerate(ordered) if idx not in done]
        return self.save(block_id, completed, remaining)

    def load(self) -> Optional[ProgressCheckpoint]:
        saved = self.store.get(PROGRESS_KEY)
        if not saved:
            return None
        try:
            checkpoint = ProgressCheckpoint(**saved)
        except (TypeError, PydanticValidationError) as exc:
            logger.warning(f"Discarding unreadable checkpoint: {exc}")
            self.clear()
            return None

        if self.clock() - checkpoint.timestamp > self.max_age:
            logger.warning(f"Checkpoint for {checkpoint.block_id} expired; clearing")
            self.clear()
            return None

        self.current = checkpoint
        return checkpoint

    def has_progress(self, block_id: str) -> bool:
        saved = self.load()
        return bool(saved and saved.block_id == block_id and saved.remaining)

    def get_progress(self, block_id: str) -> Optional[Dict[str, Any]]:
        saved = self.load()
        if saved is None or saved.block_id != block_id:
            return None
        return {
            "completed": saved.completed,
            "remaining": saved.remaining,
            "total": len(saved.completed) + len(saved.remaining),
            "timestamp": saved.timestamp,
        }

    def remaining_addresses(self, block_id: str) -> List[Address]:
        progress = self.get_progress(block_id)
        if progress is None:
            return []
        return [Address(**record) for record in progress["remaining"]]

    def get_summary(self, block_id: str) -> Optional[ProgressSummary]:
        progress = self.get_progress(block_id)
        if progress is None:
            return None
        total = progress["total"]
        done = len(progress["completed"])
        return ProgressSummary(
            completed=done,
            remaining=len(progress["remaining"]),
            total=total,
            percent_complete=int(done * 100 / total + 0.5) if total else 0,
            time_elapsed=format_elapsed(self.clock() - progress["timestamp"], progress["timestamp"]),
        )

    def clear(self) -> None:
        self.store.remove(PROGRESS_KEY)
        self.current = None


__all__ = ["ProgressStore", "format_elapsed"]
