import asyncio
import logging
import time
import uuid
from contextlib import suppress
from typing import Any, Callable, Optional

from storesync.core.database import KeyValueStore
from storesync.core.settings import Settings, settings
from storesync.domains.shopify import ShopifyClient
from storesync.shared.exceptions import LeaseUnavailableError
from storesync.shared.retry import SleepFunc

from .checkpoint import CheckpointTracker
from .lease import SyncLease
from .models import ResourceResult, SyncRun, SyncStatus, utc_now_iso
from .pipeline import RESOURCE_ORDER, ResourceDefinition, ResourcePipeline, resource_definitions

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], ShopifyClient]


def new_run_id() -> str:
    """Run id: millisecond timestamp plus a random suffix, also used as lease owner."""
    return f"sync_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class SyncOrchestrator:
    """Runs a full resync of every resource and keeps the run record current."""

    def __init__(
        self,
        store: KeyValueStore,
        client_factory: Optional[ClientFactory] = None,
        config: Settings = settings,
        sleep: Optional[SleepFunc] = None,
        monitor_interval: float = 30.0,
    ):
        self.store = store
        self.client_factory = client_factory or (
            lambda: ShopifyClient.from_settings(config)
        )
        self.settings = config
        self.sleep = sleep
        self.monitor_interval = monitor_interval

        tables = config.tables()
        self.tables = tables
        self.checkpoints = CheckpointTracker(store, tables.sync_metadata)
        self.lease = (
            SyncLease(store, tables.sync_metadata, config.SYNC_LEASE_TTL_SECONDS)
            if config.SYNC_LEASE_ENABLED
            else None
        )

    async def run(self, context: Any = None) -> SyncRun:
        """
        Sync products, customers and orders, in that order.

        A failing resource is recorded and the remaining resources still run.

        Args:
            context: Host invocation context; when it exposes
                ``get_remaining_time_in_millis`` the remaining time is logged
                periodically

        Returns:
            The finished SyncRun with status success, partial_success or failed

        Raises:
            Exception: Anything escaping outside the per-resource boundary,
                after the run has been recorded as failed
        """
        run = SyncRun(run_id=new_run_id())
        logger.info(f"Starting sync run {run.run_id}")
        await self.checkpoints.record_run(run)

        monitor = self._start_monitor(context)
        try:
            client = self.client_factory()
            definitions = resource_definitions(self.tables, client.store_domain)

            for resource in RESOURCE_ORDER:
                result = await self._sync_resource(
                    definitions[resource], client, run.run_id
                )
                run.results[resource.value] = result
                run.status = SyncStatus.IN_PROGRESS
                await self.checkpoints.record_run(run)

            succeeded = sum(1 for r in run.results.values() if r.success)
            if succeeded == len(RESOURCE_ORDER):
                run.status = SyncStatus.SUCCESS
            elif succeeded > 0:
                run.status = SyncStatus.PARTIAL_SUCCESS
            else:
                run.status = SyncStatus.FAILED
                run.error = "All resource syncs failed"
        except Exception as e:
            logger.error(f"Sync run {run.run_id} failed: {e}", exc_info=True)
            run.status = SyncStatus.FAILED
            run.error = str(e)
            run.completed_at = utc_now_iso()
            await self.checkpoints.record_run(run)
            raise
        finally:
            if monitor is not None:
                monitor.cancel()
                with suppress(asyncio.CancelledError):
                    await monitor

        run.completed_at = utc_now_iso()
        await self.checkpoints.record_run(run)
        logger.info(
            f"Sync run {run.run_id} finished with status {run.status.value}, "
            f"{run.total_items_synced} items synced"
        )
        return run

    async def _sync_resource(
        self, definition: ResourceDefinition, client: ShopifyClient, run_id: str
    ) -> ResourceResult:
        name = definition.name.value
        leased = False
        try:
            if self.lease is not None:
                leased = await self.lease.acquire(name, run_id)
                if not leased:
                    raise LeaseUnavailableError(
                        f"Another sync run is already processing {name}"
                    )

            pipeline = ResourcePipeline(
                definition, client, self.store, self.checkpoints, sleep=self.sleep
            )
            return await pipeline.run()
        except Exception as e:
            logger.error(f"Error syncing {name}: {e}", exc_info=True)
            return ResourceResult(success=False, count=0, error=str(e))
        finally:
            if leased:
                await self.lease.release(name, run_id)

    def _start_monitor(self, context: Any) -> Optional["asyncio.Task[None]"]:
        if context is None or not callable(
            getattr(context, "get_remaining_time_in_millis", None)
        ):
            return None
        return asyncio.create_task(self._log_remaining_time(context))

    async def _log_remaining_time(self, context: Any) -> None:
        while True:
            await asyncio.sleep(self.monitor_interval)
            remaining = context.get_remaining_time_in_millis()
            logger.info(f"Remaining execution time: {remaining / 1000:.0f}s")
