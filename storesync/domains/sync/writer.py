import logging
from typing import Any, Dict, List, Optional, Sequence

from storesync.core.database import MAX_BATCH_ITEMS, KeyValueStore
from storesync.shared.exceptions import StoreCapacityError, StoreError
from storesync.shared.retry import BackoffPolicy, Retrier, RetryStrategy

from .checkpoint import CheckpointTracker, write_progress_key
from .models import WriteResult

logger = logging.getLogger(__name__)

WRITE_POLICIES = {
    RetryStrategy.UNPROCESSED: BackoffPolicy(base_delay=0.5, max_delay=10.0),
    RetryStrategy.CAPACITY: BackoffPolicy(base_delay=2.0, max_delay=30.0),
    RetryStrategy.GENERIC: BackoffPolicy(base_delay=1.0, max_delay=15.0),
}


class BatchWriter:
    """
    Writes normalized records to one table in batches of at most 25 items.

    Items the store reports as unprocessed are retried on their own. Items
    still unwritten after ``max_attempts`` are counted as failures; a batch
    failure is never raised to the caller.
    """

    def __init__(
        self,
        store: KeyValueStore,
        table: str,
        resource: str,
        checkpoints: Optional[CheckpointTracker] = None,
        retrier: Optional[Retrier] = None,
        batch_size: int = MAX_BATCH_ITEMS,
        max_attempts: int = 5,
        inter_batch_delay: float = 0.1,
        checkpoint_every: int = 10,
    ):
        if not 0 < batch_size <= MAX_BATCH_ITEMS:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_ITEMS}")

        self.store = store
        self.table = table
        self.resource = resource
        self.checkpoints = checkpoints
        self.retrier = retrier or Retrier(WRITE_POLICIES, max_attempts=max_attempts)
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.inter_batch_delay = inter_batch_delay
        self.checkpoint_every = checkpoint_every

        self.stats = WriteResult()
        self.batches_written = 0
        self.items_processed = 0

    async def write(self, records: Sequence[Dict[str, Any]]) -> WriteResult:
        """
        Write records in order.

        Args:
            records: Normalized records keyed by ``id``

        Returns:
            WriteResult for this call; ``stats`` keeps the running totals
        """
        result = WriteResult()

        for start in range(0, len(records), self.batch_size):
            if self.batches_written > 0:
                await self.retrier.sleep(self.inter_batch_delay)

            batch = list(records[start : start + self.batch_size])
            batch_result = await self._write_batch(batch)

            result.add(batch_result)
            self.stats.add(batch_result)
            self.batches_written += 1
            self.items_processed += len(batch)

            if self.batches_written % self.checkpoint_every == 0:
                await self._checkpoint()

        return result

    async def _write_batch(self, batch: List[Dict[str, Any]]) -> WriteResult:
        pending = batch

        for attempt in range(1, self.max_attempts + 1):
            try:
                unprocessed = await self.store.batch_write(self.table, pending)
            except StoreCapacityError as e:
                strategy = RetryStrategy.CAPACITY
                logger.warning(
                    f"{self.table} throughput exceeded "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
            except StoreError as e:
                strategy = RetryStrategy.GENERIC
                logger.warning(
                    f"Batch write to {self.table} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
            else:
                if not unprocessed:
                    return WriteResult(success_count=len(batch))
                strategy = RetryStrategy.UNPROCESSED
                pending = unprocessed
                logger.info(
                    f"{len(unprocessed)} items unprocessed in {self.table} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )

            if attempt < self.max_attempts:
                await self.retrier.wait(strategy, attempt)

        failed = len(pending)
        logger.error(
            f"Giving up on {failed} of {len(batch)} {self.resource} items "
            f"after {self.max_attempts} attempts"
        )
        return WriteResult(success_count=len(batch) - failed, error_count=failed)

    async def _checkpoint(self) -> None:
        if self.checkpoints is None:
            return
        await self.checkpoints.record(
            write_progress_key(self.resource),
            {
                "resource": self.resource,
                "itemsProcessed": self.items_processed,
                "successCount": self.stats.success_count,
                "errorCount": self.stats.error_count,
                "batchesWritten": self.batches_written,
            },
        )
