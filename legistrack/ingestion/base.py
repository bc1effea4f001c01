"""
Base class for batched pipelines.

Items are processed in fixed-size batches. Items inside a batch run
concurrently; batches run one after another with a pause in between. One
item failing never stops the others.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Sequence, TypeVar

from legistrack.errors import ConfigurationError, InvalidBillIdError
from legistrack.timeutils import utcnow

T = TypeVar('T')


@dataclass
class BatchOutcome(Generic[T]):
    """Per-item results of a batched run."""
    succeeded: List[Any] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


class BatchPipeline:
    """
    Shared batching, statistics and logging for the sync pipelines.
    """

    def __init__(
        self,
        batch_size: int,
        batch_delay: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self._sleep = sleep
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict:
        return {
            "processed": 0,
            "succeeded": 0,
            "errors": 0,
            "started_at": None,
            "completed_at": None
        }

    def reset_stats(self):
        """Reset statistics counters"""
        self.stats = self._empty_stats()

    async def _run_item(
        self,
        item: T,
        handler: Callable[[T], Awaitable[Any]],
        describe: Callable[[T], str],
        outcome: BatchOutcome,
    ) -> None:
        self.stats["processed"] += 1
        try:
            result = await handler(item)
        except ConfigurationError:
            raise
        except Exception as e:
            self.stats["errors"] += 1
            label = describe(item)
            level = logging.WARNING if isinstance(e, InvalidBillIdError) else logging.ERROR
            self.logger.log(level, f"Error processing {label}: {e}")
            outcome.errors.append({"bill": label, "error": str(e)})
            return

        if result is None or result is False:
            # Handlers report "nothing to do" with None/False; not an error
            return
        self.stats["succeeded"] += 1
        outcome.succeeded.append(result)

    async def run_batches(
        self,
        items: Sequence[T],
        handler: Callable[[T], Awaitable[Any]],
        describe: Callable[[T], str] = str,
    ) -> BatchOutcome:
        """
        Run `handler` over `items` in batches.

        Args:
            items: Work items (raw payloads or bill ids)
            handler: Coroutine function for one item. A truthy return counts
                as success; None or False counts as skipped; an exception is
                recorded as {"bill": describe(item), "error": message}
            describe: Label for an item in error reports

        Returns:
            BatchOutcome with successful results and per-item errors
        """
        outcome: BatchOutcome = BatchOutcome()
        self.stats["started_at"] = utcnow()

        total_batches = (len(items) + self.batch_size - 1) // self.batch_size
        for index in range(0, len(items), self.batch_size):
            batch = items[index:index + self.batch_size]
            batch_number = index // self.batch_size + 1
            self.logger.info(f"Processing batch {batch_number}/{total_batches} ({len(batch)} items)")

            await asyncio.gather(*(self._run_item(item, handler, describe, outcome) for item in batch))

            if index + self.batch_size < len(items) and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        self.stats["completed_at"] = utcnow()
        duration = self.stats["completed_at"] - self.stats["started_at"]
        self.logger.info(
            f"Batch run complete. "
            f"Processed: {self.stats['processed']}, "
            f"Succeeded: {self.stats['succeeded']}, "
            f"Errors: {self.stats['errors']}, "
            f"Duration: {duration}"
        )
        return outcome
