import logging
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

from storesync.domains.shopify import ShopifyClient, ShopifyResource
from storesync.domains.shopify.types import MAX_PAGE_SIZE, QueryParams, ShopifyRecord
from storesync.shared.exceptions import RetriesExhaustedError, UpstreamRateLimitError
from storesync.shared.retry import BackoffPolicy, Retrier, RetryStrategy

from .checkpoint import CheckpointTracker, in_progress_key
from .models import FetchStats, SyncStatus

logger = logging.getLogger(__name__)

FETCH_POLICIES = {
    RetryStrategy.GENERIC: BackoffPolicy(base_delay=1.0, max_delay=60.0, jitter=1.0),
}


class PaginatedFetcher:
    """
    Sequential, rate-limit aware reader of one Shopify collection.

    Pages are yielded one at a time so callers can persist each page before
    the next one is requested. Pagination stops at the first short page, at
    a full page without a continuation cursor, or when a page still fails
    after every retry. In the last case the records already yielded stand
    and ``stats.truncated`` is set.
    """

    def __init__(
        self,
        client: ShopifyClient,
        resource: Union[ShopifyResource, str],
        retrier: Optional[Retrier] = None,
        checkpoints: Optional[CheckpointTracker] = None,
        page_size: int = MAX_PAGE_SIZE,
        extra_params: Optional[Dict[str, str]] = None,
        inter_page_delay: float = 0.5,
        checkpoint_every: int = 5,
    ):
        if not 0 < page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        self.client = client
        self.resource = (
            resource.value if isinstance(resource, ShopifyResource) else resource
        )
        self.retrier = retrier or Retrier(FETCH_POLICIES)
        self.checkpoints = checkpoints
        self.page_size = page_size
        self.extra_params = dict(extra_params or {})
        self.inter_page_delay = inter_page_delay
        self.checkpoint_every = checkpoint_every
        self.stats = FetchStats()

    def _classify(self, error: Exception) -> Tuple[RetryStrategy, Optional[float]]:
        self.stats.errors += 1
        if isinstance(error, UpstreamRateLimitError):
            return RetryStrategy.RATE_LIMIT, error.retry_after
        return RetryStrategy.GENERIC, None

    def _params(self, page_info: Optional[str]) -> QueryParams:
        # Shopify rejects filters on cursor requests
        if page_info:
            return {"limit": self.page_size, "page_info": page_info}
        return {"limit": self.page_size, **self.extra_params}

    async def _checkpoint(self) -> None:
        if self.checkpoints is None:
            return
        await self.checkpoints.record(
            in_progress_key(self.resource),
            {
                "resource": self.resource,
                "status": SyncStatus.IN_PROGRESS.value,
                "itemsRetrieved": self.stats.items,
                "pagesProcessed": self.stats.pages,
            },
        )

    async def pages(self) -> AsyncIterator[List[ShopifyRecord]]:
        """
        Yield the collection page by page, in upstream order.

        Yields:
            Non-empty lists of raw records
        """
        page_info: Optional[str] = None

        while True:
            if self.stats.pages > 0:
                await self.retrier.sleep(self.inter_page_delay)

            params = self._params(page_info)
            page_number = self.stats.pages + 1
            try:
                page = await self.retrier.call(
                    lambda: self.client.list_page(self.resource, params),
                    self._classify,
                    describe=f"Fetching {self.resource} page {page_number}",
                )
            except RetriesExhaustedError as e:
                self.stats.truncated = True
                logger.error(
                    f"Stopping {self.resource} pagination at page {page_number}, "
                    f"keeping {self.stats.items} records already retrieved: "
                    f"{e.last_error}"
                )
                return

            self.stats.pages += 1
            self.stats.items += len(page.items)
            logger.info(
                f"Fetched {len(page.items)} {self.resource} "
                f"(page {self.stats.pages}, total {self.stats.items})"
            )

            if self.stats.pages % self.checkpoint_every == 0:
                await self._checkpoint()

            if page.items:
                yield page.items

            if len(page.items) < self.page_size:
                return

            if not page.next_page_info:
                logger.warning(
                    f"Full {self.resource} page without a next cursor, "
                    f"treating it as the last page"
                )
                return

            page_info = page.next_page_info
