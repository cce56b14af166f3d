"""
Per-item executor contract and a retrying executor to build concrete ones on.

The batch processor never retries; an executor owns its attempts, its delays,
and whatever remote session it opens. RetryingExecutor packages that loop so a
concrete automation only has to supply `operation` (and optionally session
open/close hooks).
"""
from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple, Type, TypeVar

from adapters.errors import CancellationError, ExecutionError, NetworkError
from adapters.schemas import Address, BatchConfig, ItemResult
from config.logger import logger
from scripts.BatchRegistry import CancellationToken

T = TypeVar("T")
UpdateCallback = Callable[[Dict[str, Any]], None]
Operation = Callable[[Address, Any, BatchConfig], Awaitable[Optional[Dict[str, Any]]]]


class ItemExecutor(Protocol):
    async def __call__(
        self,
        address: Address,
        config: BatchConfig,
        on_update: UpdateCallback,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ItemResult: ...


def cancelled_result(address: Address, index: Optional[int] = None) -> ItemResult:
    return ItemResult(
        success=False,
        address=address.full,
        index=index,
        error="Cancelled",
        error_code=CancellationError.code,
    )


class RetryingExecutor:
    """
    Run `operation` for one address with bounded retries.

    Up to config.retry_attempts attempts, config.retry_delay seconds apart. A
    session opened for an attempt is closed before the next one starts, and on
    every other exit path too. Emits start / retry / complete / error updates.
    """

    def __init__(
        self,
        operation: Operation,
        *,
        open_session: Optional[Callable[[], Awaitable[Any]]] = None,
        close_session: Optional[Callable[[Any], Awaitable[None]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.operation = operation
        self.open_session = open_session
        self.close_session = close_session
        self.sleep = sleep

    async def _release(self, session: Any, address: Address) -> None:
        if session is None or self.close_session is None:
            return
        try:
            await self.close_session(session)
        except Exception as exc:
            logger.warning(f"Failed to close session for {address.full}: {exc}")

    async def __call__(
        self,
        address: Address,
        config: BatchConfig,
        on_update: UpdateCallback,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ItemResult:
        attempts = config.retry_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            if cancel_token is not None and cancel_token.cancelled:
                return cancelled_result(address)

            on_update({"type": "start", "address": address.full, "attempt": attempt,
                       "message": f"Opening: {address.full}"})
            session = None
            failure: Optional[Exception] = None
            data: Optional[Dict[str, Any]] = None
            try:
                if self.open_session is not None:
                    session = await self.open_session()
                data = await self.operation(address, session, config)
            except Exception as exc:
                failure = exc
            finally:
                await self._release(session, address)

            if failure is None:
                result = ItemResult(success=True, address=address.full, data=data or {}, attempts=attempt)
                on_update({"type": "complete", "address": address.full, "result": result.model_dump(),
                           "message": f"Completed: {address.full}"})
                return result

            last_error = failure
            if attempt < attempts:
                logger.warning("Attempt %s/%s failed for %s: %s", attempt, attempts, address.full, failure)
                on_update({"type": "retry", "address": address.full, "attempt": attempt, "error": str(failure),
                           "message": f"Retrying ({attempt}/{attempts}): {failure}"})
                await self.sleep(config.retry_delay)

        result = ItemResult(
            success=False,
            address=address.full,
            error=str(last_error) if last_error else "Unknown error",
            error_code=ExecutionError.code,
            attempts=attempts,
        )
        on_update({"type": "error", "address": address.full, "error": result.error, "result": result.model_dump(),
                   "message": f"Failed: {address.full} - {result.error}"})
        return result


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retryable: Tuple[Type[BaseException], ...] = (NetworkError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn() with exponential backoff; non-retryable errors propagate at once."""
    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except retryable:
            if attempt == max_attempts:
                raise
            await sleep(min(base_delay * 2 ** (attempt - 1), max_delay))
    raise ValueError("max_attempts must be at least 1")


__all__ = ["ItemExecutor", "RetryingExecutor", "cancelled_result", "retry_with_backoff"]
