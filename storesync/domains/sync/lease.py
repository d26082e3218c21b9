import logging
import time
from typing import Callable

from storesync.core.database import KeyValueStore
from storesync.shared.exceptions import StoreError

logger = logging.getLogger(__name__)

# Free, expired, or already ours
ACQUIRE_CONDITION = (
    "attribute_not_exists(syncId) OR expiresAt < :now OR leaseOwner = :owner"
)
RELEASE_CONDITION = "leaseOwner = :owner"


def lease_key(resource: str) -> str:
    return f"{resource}_lease"


class SyncLease:
    """Per-resource mutual exclusion between overlapping sync runs."""

    def __init__(
        self,
        store: KeyValueStore,
        table: str,
        ttl_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.table = table
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    async def acquire(self, resource: str, owner: str) -> bool:
        """
        Take the lease for a resource.

        Args:
            resource: Resource name, e.g. "orders"
            owner: Identifier of the run taking the lease

        Returns:
            True when the lease is now held by owner
        """
        now = int(self.clock())
        item = {
            "syncId": lease_key(resource),
            "leaseOwner": owner,
            "resource": resource,
            "acquiredAt": now,
            "expiresAt": now + self.ttl_seconds,
        }
        acquired = await self.store.put_item_if(
            self.table, item, ACQUIRE_CONDITION, {":now": now, ":owner": owner}
        )
        if acquired:
            logger.info(f"Lease on {resource} acquired by {owner}")
        else:
            logger.warning(f"Lease on {resource} is held by another run")
        return acquired

    async def release(self, resource: str, owner: str) -> None:
        try:
            released = await self.store.delete_item_if(
                self.table,
                {"syncId": lease_key(resource)},
                RELEASE_CONDITION,
                {":owner": owner},
            )
        except StoreError as e:
            logger.error(f"Failed to release lease on {resource}: {e}")
            return

        if not released:
            logger.warning(f"Lease on {resource} was no longer held by {owner}")
