import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, Optional

from storesync.core.database import KeyValueStore
from storesync.core.settings import TableNames
from storesync.domains.shopify import ShopifyClient, ShopifyResource
from storesync.shared.exceptions import ResourceSyncError
from storesync.shared.retry import Retrier, SleepFunc

from .checkpoint import CheckpointTracker
from .fetcher import FETCH_POLICIES, PaginatedFetcher
from .models import ResourceResult
from .normalizer import (
    Normalizer,
    normalize_customer,
    normalize_order,
    normalize_product,
)
from .writer import WRITE_POLICIES, BatchWriter

logger = logging.getLogger(__name__)

# Resources are synced one after another in this order
RESOURCE_ORDER = (
    ShopifyResource.PRODUCTS,
    ShopifyResource.CUSTOMERS,
    ShopifyResource.ORDERS,
)


@dataclass(frozen=True)
class ResourceDefinition:
    """What to fetch for one resource and where its records go."""

    name: ShopifyResource
    table: str
    normalizer: Normalizer
    extra_params: Dict[str, str] = field(default_factory=dict)


def resource_definitions(
    tables: TableNames, store_domain: Optional[str] = None
) -> Dict[ShopifyResource, ResourceDefinition]:
    return {
        ShopifyResource.PRODUCTS: ResourceDefinition(
            name=ShopifyResource.PRODUCTS,
            table=tables.products,
            normalizer=normalize_product,
        ),
        ShopifyResource.CUSTOMERS: ResourceDefinition(
            name=ShopifyResource.CUSTOMERS,
            table=tables.customers,
            normalizer=partial(normalize_customer, store_domain=store_domain),
        ),
        ShopifyResource.ORDERS: ResourceDefinition(
            name=ShopifyResource.ORDERS,
            table=tables.orders,
            normalizer=normalize_order,
            # include closed and cancelled orders
            extra_params={"status": "any"},
        ),
    }


class ResourcePipeline:
    """Fetch, normalize and write one resource, one page at a time."""

    def __init__(
        self,
        definition: ResourceDefinition,
        client: ShopifyClient,
        store: KeyValueStore,
        checkpoints: CheckpointTracker,
        sleep: Optional[SleepFunc] = None,
    ):
        self.definition = definition
        self.checkpoints = checkpoints
        self.fetcher = PaginatedFetcher(
            client,
            definition.name,
            retrier=Retrier(FETCH_POLICIES, sleep=sleep),
            checkpoints=checkpoints,
            extra_params=definition.extra_params,
        )
        self.writer = BatchWriter(
            store,
            definition.table,
            definition.name.value,
            checkpoints=checkpoints,
            retrier=Retrier(WRITE_POLICIES, sleep=sleep),
        )

    async def run(self) -> ResourceResult:
        """
        Sync the whole collection.

        Returns:
            ResourceResult; ``error_count`` adds failed fetch attempts,
            records the normalizer dropped and items that could not be written

        Raises:
            ResourceSyncError: When not a single page could be fetched
        """
        name = self.definition.name.value
        started = time.time()
        write_seconds = 0.0
        dropped = 0

        logger.info(f"Starting {name} sync into {self.definition.table}")

        async for page in self.fetcher.pages():
            records = []
            for raw in page:
                record = self.definition.normalizer(raw)
                if record is None:
                    dropped += 1
                else:
                    records.append(record)

            write_started = time.time()
            await self.writer.write(records)
            write_seconds += time.time() - write_started

        fetch_stats = self.fetcher.stats
        if fetch_stats.truncated and fetch_stats.pages == 0:
            raise ResourceSyncError(
                f"Could not fetch any {name} after {fetch_stats.errors} attempts"
            )

        await self.checkpoints.record_last_sync(name)

        written = self.writer.stats
        total_seconds = time.time() - started
        rate = written.success_count / total_seconds if total_seconds > 0 else 0.0
        logger.info(
            f"{name} sync finished: {fetch_stats.items} fetched in "
            f"{total_seconds - write_seconds:.1f}s, {written.success_count} written "
            f"in {write_seconds:.1f}s ({rate:.1f} items/s), "
            f"{dropped} dropped, {written.error_count} failed"
        )
        if fetch_stats.truncated:
            logger.warning(f"{name} sync is incomplete, pagination was cut short")

        return ResourceResult(
            success=True,
            count=written.success_count,
            items_retrieved=fetch_stats.items,
            error_count=fetch_stats.errors + dropped + written.error_count,
            truncated=fetch_stats.truncated,
        )
