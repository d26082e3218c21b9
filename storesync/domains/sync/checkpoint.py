import logging
from typing import Any, Dict, Optional

from storesync.core.database import KeyValueStore
from storesync.shared.exceptions import StoreError

from .models import SyncRun, utc_now_iso

logger = logging.getLogger(__name__)

LATEST_RUN_KEY = "latest"


def in_progress_key(resource: str) -> str:
    return f"{resource}_in_progress"


def write_progress_key(resource: str) -> str:
    return f"{resource}_write_progress"


def last_sync_key(resource: str) -> str:
    return f"{resource}_last_sync"


class CheckpointTracker:
    """
    Progress and run metadata kept in the sync metadata table.

    Every item is keyed by ``syncId``. Writes are advisory: a failed write is
    logged and reported through the return value but never interrupts a sync.
    """

    def __init__(self, store: KeyValueStore, table: str):
        self.store = store
        self.table = table

    async def record(self, key: str, fields: Dict[str, Any]) -> bool:
        """
        Upsert a metadata item.

        Args:
            key: syncId of the item
            fields: Attributes stored alongside the key

        Returns:
            True if the write succeeded, False if it failed
        """
        item = {**fields, "syncId": key, "updatedAt": utc_now_iso()}
        try:
            await self.store.put_item(self.table, item)
            return True
        except StoreError as e:
            logger.error(f"Failed to record checkpoint {key}: {e}")
            return False

    async def record_run(self, run: SyncRun) -> bool:
        """Write the run under its own id and as the latest run."""
        fields = run.to_metadata()
        fields["totalItemsSynced"] = run.total_items_synced
        recorded = await self.record(run.run_id, fields)
        latest = await self.record(LATEST_RUN_KEY, fields)
        return recorded and latest

    async def record_last_sync(
        self, resource: str, timestamp: Optional[str] = None
    ) -> bool:
        return await self.record(
            last_sync_key(resource),
            {"last_sync": timestamp or utc_now_iso(), "resource": resource},
        )

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_item(self.table, {"syncId": key})
