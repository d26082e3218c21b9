# tests/unit/domains/sync/test_writer.py
"""
Tests for BatchWriter batching, unprocessed-item retries and checkpoints.
"""
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock

import pytest

from storesync.domains.sync.checkpoint import CheckpointTracker
from storesync.domains.sync.writer import WRITE_POLICIES, BatchWriter
from storesync.shared.exceptions import StoreCapacityError, StoreError
from storesync.shared.retry import Retrier
from tests.fixtures.store_fixtures import InMemoryStore

TABLE = "ShopifyOrders"


def make_records(count: int, start: int = 0) -> List[Dict[str, Any]]:
    return [{"id": str(i), "total": "1.00"} for i in range(start, start + count)]


class TestBatchWriter:
    """Test suite for BatchWriter."""

    @pytest.fixture
    def writer(self, memory_store: InMemoryStore, mock_sleep: AsyncMock) -> BatchWriter:
        return BatchWriter(
            memory_store,
            TABLE,
            "orders",
            retrier=Retrier(WRITE_POLICIES, sleep=mock_sleep),
        )

    @pytest.mark.asyncio
    async def test_pages_of_537_records_use_22_batches(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        """Pages of 250, 250 and 37 records are written as 21 full batches and one of 12."""
        for start, size in [(0, 250), (250, 250), (500, 37)]:
            await writer.write(make_records(size, start))

        sizes = [size for _, size in memory_store.batch_calls]
        assert len(sizes) == 22
        assert sorted(sizes) == [12] + [25] * 21
        assert max(sizes) <= 25
        assert writer.stats.success_count == 537
        assert writer.stats.error_count == 0
        assert len(memory_store.items(TABLE)) == 537

    @pytest.mark.asyncio
    async def test_single_call_of_537_records(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        result = await writer.write(make_records(537))

        sizes = [size for _, size in memory_store.batch_calls]
        assert sizes == [25] * 21 + [12]
        assert result.success_count == 537

    @pytest.mark.asyncio
    async def test_delay_between_batches(
        self, writer: BatchWriter, mock_sleep: AsyncMock
    ) -> None:
        await writer.write(make_records(30))

        mock_sleep.assert_awaited_once_with(0.1)

    @pytest.mark.asyncio
    async def test_unprocessed_items_are_retried(
        self, writer: BatchWriter, memory_store: InMemoryStore, mock_sleep: AsyncMock
    ) -> None:
        memory_store.unprocessed_plan = [5]

        result = await writer.write(make_records(25))

        assert [size for _, size in memory_store.batch_calls] == [25, 5]
        assert result.success_count == 25
        assert result.error_count == 0
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_unprocessed_items_fail_after_five_attempts(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        # 3 items stay unprocessed on every attempt
        memory_store.unprocessed_plan = [3] * 5

        result = await writer.write(make_records(25))

        assert len(memory_store.batch_calls) == 5
        assert result.success_count == 22
        assert result.error_count == 3

    @pytest.mark.asyncio
    async def test_capacity_errors_use_longer_backoff(
        self, writer: BatchWriter, memory_store: InMemoryStore, mock_sleep: AsyncMock
    ) -> None:
        memory_store.batch_errors = [StoreCapacityError("throughput exceeded")]

        result = await writer.write(make_records(10))

        assert result.success_count == 10
        mock_sleep.assert_awaited_once_with(4.0)

    @pytest.mark.asyncio
    async def test_generic_errors_use_shorter_backoff(
        self, writer: BatchWriter, memory_store: InMemoryStore, mock_sleep: AsyncMock
    ) -> None:
        memory_store.batch_errors = [StoreError("internal")]

        result = await writer.write(make_records(10))

        assert result.success_count == 10
        mock_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_batch_failing_every_attempt_is_counted(
        self, writer: BatchWriter, memory_store: InMemoryStore, mock_sleep: AsyncMock
    ) -> None:
        memory_store.batch_errors = [StoreCapacityError("throttled")] * 5

        result = await writer.write(make_records(25))

        assert len(memory_store.batch_calls) == 5
        assert mock_sleep.await_count == 4
        assert result.success_count == 0
        assert result.error_count == 25

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_later_batches(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        memory_store.batch_errors = [StoreError("down")] * 5

        result = await writer.write(make_records(50))

        assert result.error_count == 25
        assert result.success_count == 25
        assert len(memory_store.items(TABLE)) == 25

    @pytest.mark.asyncio
    async def test_rewriting_records_overwrites(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        records = make_records(30)

        await writer.write(records)
        await writer.write(records)

        assert len(memory_store.items(TABLE)) == 30
        assert writer.stats.success_count == 60

    @pytest.mark.asyncio
    async def test_checkpoint_every_ten_batches(
        self, memory_store: InMemoryStore, mock_sleep: AsyncMock
    ) -> None:
        checkpoints = Mock(spec=CheckpointTracker)
        checkpoints.record = AsyncMock(return_value=True)
        writer = BatchWriter(
            memory_store,
            TABLE,
            "orders",
            checkpoints=checkpoints,
            retrier=Retrier(WRITE_POLICIES, sleep=mock_sleep),
        )

        await writer.write(make_records(260))

        checkpoints.record.assert_awaited_once()
        key, fields = checkpoints.record.await_args.args
        assert key == "orders_write_progress"
        assert fields["batchesWritten"] == 10
        assert fields["itemsProcessed"] == 250
        assert fields["successCount"] == 250

    @pytest.mark.asyncio
    async def test_empty_input_writes_nothing(
        self, writer: BatchWriter, memory_store: InMemoryStore
    ) -> None:
        result = await writer.write([])

        assert result.success_count == 0
        assert memory_store.batch_calls == []

    def test_rejects_batches_over_store_limit(self, memory_store: InMemoryStore) -> None:
        with pytest.raises(ValueError):
            BatchWriter(memory_store, TABLE, "orders", batch_size=26)
