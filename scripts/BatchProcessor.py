"""
Batch job processor: runs an ordered address list through an injected executor.

Chunks of `max_concurrent_tabs` items are fanned out together with asyncio and
joined before the next chunk starts, so at most that many items are in flight.
Per-item failures never abort the batch; they are recorded on the item result
and counted in the summary. Results come back in input order regardless of
completion order inside a chunk.
"""
from __future__ import annotations
import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from adapters.address import parse_address
from adapters.errors import CancellationError, ExecutionError, ValidationError
from adapters.schemas import Address, BatchConfig, BatchOutcome, BatchSummary, ItemResult
from config.logger import logger
from config.settings import BATCH_CLEANUP_GRACE_S, MAX_BATCH_SIZE
from scripts.BatchRegistry import Batch, BatchRegistry, BatchStatus, generate_batch_id
from scripts.ItemExecutor import ItemExecutor, cancelled_result

ProgressCallback = Callable[[Dict[str, Any]], None]
AddressLike = Union[Address, Dict[str, Any], str]


class DelayPolicy(Protocol):
    async def wait(self, chunk_index: int) -> None: ...


class FixedDelay:
    """Constant pause between chunks (throttling only)."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    async def wait(self, chunk_index: int) -> None:
        await asyncio.sleep(self.seconds)


class NoDelay:
    async def wait(self, chunk_index: int) -> None:
        return None


def _coerce_address(item: AddressLike) -> Address:
    if isinstance(item, Address):
        return item
    if isinstance(item, str):
        return parse_address(item)
    try:
        return Address(**item)
    except (TypeError, PydanticValidationError) as exc:
        raise ValidationError("addresses", f"invalid address record {item!r}: {exc}") from exc


def _accepts_cancel_token(executor: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(executor).parameters
    except (TypeError, ValueError):
        return False
    return "cancel_token" in params or any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params.values())


class BatchProcessor:
    def __init__(
        self,
        registry: Optional[BatchRegistry] = None,
        *,
        delay_policy: Optional[DelayPolicy] = None,
        cleanup_grace: float = BATCH_CLEANUP_GRACE_S,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self.registry = registry if registry is not None else BatchRegistry()
        self.delay_policy = delay_policy
        self.cleanup_grace = cleanup_grace
        self.max_batch_size = max_batch_size

    # --- public helpers -----------------------------------------------------

    def get_batch_status(self, batch_id: str) -> Optional[Dict[str, Any]]:
        batch = self.registry.get(batch_id)
        return batch.snapshot() if batch else None

    def cancel_route_batch(self, batch_id: str) -> bool:
        return self.registry.cancel(batch_id)

    # --- internals ------------------------------------------------------------

    def _resolve_config(self, config: Optional[Union[BatchConfig, Dict[str, Any]]]) -> BatchConfig:
        if isinstance(config, BatchConfig):
            return config
        try:
            return BatchConfig(**(config or {}))
        except PydanticValidationError as exc:
            raise ValidationError("config", str(exc)) from exc

    def _emit(self, callback: Optional[ProgressCallback], event: Dict[str, Any]) -> None:
        if callback is None:
            return
        try:
            callback(event)
        except Exception as exc:
            logger.warning(f"Progress callback raised on {event.get('type')}: {exc}")

    def _forward(self, batch: Batch, callback: Optional[ProgressCallback]) -> Callable[[Dict[str, Any]], None]:
        def on_update(update: Dict[str, Any]) -> None:
            self._emit(callback, {**update, **self._counters(batch)})
        return on_update

    @staticmethod
    def _counters(batch: Batch) -> Dict[str, Any]:
        return {
            "batchId": batch.id,
            "current": batch.processed,
            "total": batch.total,
            "percent": int(batch.processed * 100 / batch.total + 0.5) if batch.total else 0,
        }

    def _record(self, batch: Batch, result: ItemResult, callback: Optional[ProgressCallback]) -> None:
        """The one place batch counters change."""
        if result.error_code == CancellationError.code:
            return
        batch.processed += 1
        if result.success:
            batch.successful += 1
        else:
            batch.failed += 1
        self._emit(callback, {
            "type": "item_done",
            "address": result.address,
            "index": result.index,
            "success": result.success,
            "error": result.error,
            **self._counters(batch),
        })

    async def _run_item(
        self,
        batch: Batch,
        executor: ItemExecutor,
        address: Address,
        index: int,
        pass_token: bool,
        callback: Optional[ProgressCallback],
    ) -> ItemResult:
        if batch.token.cancelled:
            result = cancelled_result(address, index)
            self._record(batch, result, callback)
            return result

        kwargs = {"cancel_token": batch.token} if pass_token else {}
        try:
            raw = executor(address, batch.config, self._forward(batch, callback), **kwargs)
            if inspect.isawaitable(raw):
                raw = await raw
            result = raw if isinstance(raw, ItemResult) else ItemResult(**raw)
            result = result.model_copy(update={"index": index})
        except Exception as exc:
            logger.warning(f"Executor raised for {address.full}: {exc}")
            result = ItemResult(
                success=False,
                address=address.full,
                index=index,
                error=str(exc) or exc.__class__.__name__,
                error_code=ExecutionError.code,
            )
        self._record(batch, result, callback)
        return result

    # --- main loop -------------------------------------------------------------

    async def process(
        self,
        addresses: Iterable[AddressLike],
        executor: ItemExecutor,
        config: Optional[Union[BatchConfig, Dict[str, Any]]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchOutcome:
        """
        Run every address through `executor` and return {batch_id, summary, results}.

        Raises ValidationError only before any batch state exists (empty input,
        too many addresses, bad config). Once running it always returns an
        outcome, including when cancelled or when the loop itself breaks.
        """
        items = [_coerce_address(a) for a in (addresses or [])]
        if not items:
            raise ValidationError("addresses", "must be a non-empty list")
        if len(items) > self.max_batch_size:
            raise ValidationError("addresses", f"batch size exceeds maximum of {self.max_batch_size} addresses")
        cfg = self._resolve_config(config)

        batch = Batch(id=generate_batch_id(), total=len(items), config=cfg)
        self.registry.register(batch)
        logger.info(f"Starting batch {batch.id}: {batch.total} addresses, {cfg.max_concurrent_tabs} concurrent")
        self._emit(progress_callback, {
            "type": "batch_start",
            "batchId": batch.id,
            "total": batch.total,
            "message": f"Starting batch {batch.id}: {batch.total} addresses",
        })

        delay = self.delay_policy or FixedDelay(cfg.tab_open_delay)
        pass_token = _accepts_cancel_token(executor)
        size = cfg.max_concurrent_tabs

        try:
            for chunk_index, start in enumerate(range(0, len(items), size)):
                if batch.token.cancelled:
                    logger.info(f"Batch {batch.id} cancelled before chunk {chunk_index}")
                    break
                chunk = items[start:start + size]
                chunk_results = await asyncio.gather(*(
                    self._run_item(batch, executor, address, start + offset, pass_token, progress_callback)
                    for offset, address in enumerate(chunk)
                ))
                batch.results.extend(chunk_results)

                if start + size < len(items):
                    await delay.wait(chunk_index)
        except Exception as exc:
            logger.exception(f"Batch {batch.id} loop failed: {exc}")
            batch.status = BatchStatus.ERROR
            batch.error = str(exc)

        return self._finalize(batch, progress_callback)

    def _finalize(self, batch: Batch, callback: Optional[ProgressCallback]) -> BatchOutcome:
        batch.end_time = time.time()
        if batch.status == BatchStatus.RUNNING:
            batch.status = BatchStatus.CANCELLED if batch.token.cancelled else BatchStatus.COMPLETE

        results: List[ItemResult] = list(batch.results)
        cancelled = sum(1 for r in results if r.error_code == CancellationError.code)
        successful = sum(1 for r in results if r.success)
        summary = BatchSummary(
            total=len(results),
            successful=successful,
            failed=len(results) - successful - cancelled,
            cancelled=cancelled,
            duration=batch.duration,
        )

        event_type = {
            BatchStatus.COMPLETE: "batch_complete",
            BatchStatus.CANCELLED: "batch_cancelled",
            BatchStatus.ERROR: "batch_error",
        }[batch.status]
        logger.info(
            "Batch %s %s: %s/%s successful (%.1fs)",
            batch.id, batch.status.value, summary.successful, summary.total, summary.duration,
        )
        self._emit(callback, {
            "type": event_type,
            "batchId": batch.id,
            "summary": summary.model_dump(),
            "error": batch.error,
            "message": f"Batch {batch.status.value}: {summary.successful}/{summary.total} successful ({round(summary.duration)}s)",
        })

        if batch.id in self.registry:
            self.registry.schedule_cleanup(batch.id, self.cleanup_grace)

        return BatchOutcome(
            batch_id=batch.id,
            status=batch.status.value,
            summary=summary,
            results=results,
            error=batch.error,
        )


__all__ = ["BatchProcessor", "DelayPolicy", "FixedDelay", "NoDelay"]
