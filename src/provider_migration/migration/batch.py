"""Batch runner with bounded concurrency.

Items are processed in consecutive fixed-size batches. Inside a batch up to
``concurrency`` items run at once, and every item settles before the next
batch starts. A failing item never cancels its siblings or later batches.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class BatchFailure(Generic[T]):
    item: T
    error: Exception


@dataclass
class BatchOutcome(Generic[T]):
    """Per-item outcomes. Every item lands in exactly one of the two lists."""

    succeeded: list[T] = field(default_factory=list)
    failed: list[BatchFailure[T]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def extend(self, other: "BatchOutcome[T]") -> None:
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)


@dataclass(frozen=True)
class BatchProgress(Generic[T]):
    """Passed to the batch callback after each batch settles."""

    batch_index: int  # 1-based
    total_batches: int
    processed: int
    total_items: int
    batch: BatchOutcome[T]


BatchCallback = Callable[[BatchProgress[Any]], Awaitable[None] | None]


def split_batches(items: Sequence[T], batch_size: int) -> list[Sequence[T]]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [items[i : i + batch_size] for i in range(0, len(items), batch_size)]


async def run_batches(
    items: Sequence[T],
    batch_size: int,
    concurrency: int,
    per_item: Callable[[T], Awaitable[Any]],
    on_batch_complete: BatchCallback | None = None,
) -> BatchOutcome[T]:
    """Apply ``per_item`` to every item, batch by batch.

    Args:
        items: Items in processing order
        batch_size: Items per batch
        concurrency: Maximum in-flight ``per_item`` calls within a batch
        per_item: Async operation; raising marks the item failed
        on_batch_complete: Called once per settled batch (sync or async).
            An exception raised here stops the run before the next batch.

    Returns:
        BatchOutcome with succeeded items and failures in item order

    Raises:
        ValueError: If batch_size or concurrency is below 1
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    batches = split_batches(items, batch_size)
    semaphore = asyncio.Semaphore(concurrency)
    outcome: BatchOutcome[T] = BatchOutcome()
    processed = 0

    async def run_one(item: T) -> Exception | None:
        async with semaphore:
            try:
                await per_item(item)
                return None
            except Exception as e:
                return e

    for index, batch in enumerate(batches, start=1):
        settled = await asyncio.gather(*(run_one(item) for item in batch), return_exceptions=True)

        batch_outcome: BatchOutcome[T] = BatchOutcome()
        for item, error in zip(batch, settled, strict=True):
            if isinstance(error, Exception):
                batch_outcome.failed.append(BatchFailure(item, error))
            elif isinstance(error, BaseException):
                # Cancellation and interpreter exits are not item failures
                raise error
            else:
                batch_outcome.succeeded.append(item)

        outcome.extend(batch_outcome)
        processed += len(batch)

        logger.debug(
            "batch_completed",
            batch=index,
            total_batches=len(batches),
            succeeded=len(batch_outcome.succeeded),
            failed=len(batch_outcome.failed),
        )

        if on_batch_complete is not None:
            maybe_awaitable = on_batch_complete(
                BatchProgress(
                    batch_index=index,
                    total_batches=len(batches),
                    processed=processed,
                    total_items=len(items),
                    batch=batch_outcome,
                )
            )
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable

    return outcome
