import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, status

from storesync.core.database import KeyValueStore, get_store
from storesync.core.settings import settings
from storesync.domains.shopify import ShopifyResource
from storesync.shared.exceptions import (
    SyncConfigurationHTTPError,
    SyncStatusNotFoundError,
)

from .checkpoint import (
    LATEST_RUN_KEY,
    CheckpointTracker,
    in_progress_key,
    last_sync_key,
    write_progress_key,
)
from .handlers import run_bulk_import, run_full_sync
from .models import ImportRequest, ResourceStatusResponse, TriggerResponse, utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


def _tracker(store: KeyValueStore) -> CheckpointTracker:
    return CheckpointTracker(store, settings.SYNC_METADATA_TABLE)


async def _perform_full_sync(store: KeyValueStore) -> None:
    response = await run_full_sync(store=store)
    logger.info(f"Background sync finished with status {response['statusCode']}")


async def _perform_import(store: KeyValueStore, request: ImportRequest) -> None:
    response = await run_bulk_import(request.model_dump(), store=store)
    logger.info(f"Background import finished with status {response['statusCode']}")


@router.post(
    "/run", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED
)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    store: KeyValueStore = Depends(get_store),
) -> TriggerResponse:
    """
    Start a full resync of products, customers and orders.

    The sync runs after the response is sent; progress is visible through
    the status endpoints.
    """
    if not settings.SHOPIFY_STORE_URL or not settings.SHOPIFY_ACCESS_TOKEN:
        raise SyncConfigurationHTTPError("Shopify credentials are not configured")

    background_tasks.add_task(_perform_full_sync, store)
    return TriggerResponse(message="Shopify sync started", timestamp=utc_now_iso())


@router.post(
    "/import", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED
)
async def trigger_import(
    request: ImportRequest,
    background_tasks: BackgroundTasks,
    store: KeyValueStore = Depends(get_store),
) -> TriggerResponse:
    """Start a bulk import of CSV export files from S3."""
    if not (request.bucket or settings.EXPORT_FILES_BUCKET):
        raise SyncConfigurationHTTPError("No export bucket configured")

    background_tasks.add_task(_perform_import, store, request)
    return TriggerResponse(
        message=f"Export import of {request.kind} started", timestamp=utc_now_iso()
    )


@router.get("/status")
async def get_sync_status(
    store: KeyValueStore = Depends(get_store),
) -> Dict[str, Any]:
    """Latest sync run record."""
    latest = await _tracker(store).get(LATEST_RUN_KEY)
    return latest or {"status": "never_run"}


@router.get("/status/{resource}", response_model=ResourceStatusResponse)
async def get_resource_status(
    resource: str,
    store: KeyValueStore = Depends(get_store),
) -> ResourceStatusResponse:
    if resource not in {r.value for r in ShopifyResource}:
        raise SyncStatusNotFoundError(f"Unknown sync resource '{resource}'")

    tracker = _tracker(store)
    last_sync = await tracker.get(last_sync_key(resource))
    return ResourceStatusResponse(
        resource=resource,
        last_sync=last_sync.get("last_sync") if last_sync else None,
        fetch_checkpoint=await tracker.get(in_progress_key(resource)),
        write_checkpoint=await tracker.get(write_progress_key(resource)),
    )
