"""
Invocation surface shared by the serverless entry points, the HTTP routes
and the local runner.

Each handler returns the response envelope ``{statusCode, body}`` where body
is a JSON string. Completed runs answer 200, including partial success and
imports that found no files; an exception escaping the run answers 500.
"""

import json
import logging
from typing import Any, Dict, Optional

from storesync.core.database import KeyValueStore, get_store
from storesync.core.settings import Settings, settings
from storesync.core.storage import ObjectStorage
from storesync.shared.retry import SleepFunc

from .importer import BulkFileImporter
from .models import utc_now_iso
from .orchestrator import ClientFactory, SyncOrchestrator
from .uploader import upload_exports

logger = logging.getLogger(__name__)

IMPORT_ACTION = "export_import"
IMPORT_SOURCE = "order-export-import"

Event = Dict[str, Any]
Response = Dict[str, Any]


def _response(status_code: int, body: Dict[str, Any]) -> Response:
    return {"statusCode": status_code, "body": json.dumps(body, default=str)}


def _error_response(message: str, error: Exception) -> Response:
    return _response(
        500,
        {"message": message, "error": str(error), "timestamp": utc_now_iso()},
    )


async def run_full_sync(
    event: Optional[Event] = None,
    context: Any = None,
    store: Optional[KeyValueStore] = None,
    client_factory: Optional[ClientFactory] = None,
    config: Settings = settings,
    sleep: Optional[SleepFunc] = None,
) -> Response:
    """Run a full resync of products, customers and orders."""
    try:
        orchestrator = SyncOrchestrator(
            store or get_store(), client_factory, config=config, sleep=sleep
        )
        run = await orchestrator.run(context)
    except Exception as e:
        logger.error(f"Shopify sync failed: {e}", exc_info=True)
        return _error_response("Shopify sync failed", e)

    return _response(
        200,
        {
            "message": "Shopify sync completed",
            "timestamp": utc_now_iso(),
            "runId": run.run_id,
            "status": run.status.value,
            "results": {
                name: result.model_dump(mode="json", by_alias=True)
                for name, result in run.results.items()
            },
            "totalItemsSynced": run.total_items_synced,
        },
    )


async def run_bulk_import(
    event: Optional[Event] = None,
    context: Any = None,
    store: Optional[KeyValueStore] = None,
    storage: Optional[ObjectStorage] = None,
    config: Settings = settings,
    sleep: Optional[SleepFunc] = None,
) -> Response:
    """
    Import CSV export files.

    Event fields: ``bucket`` and ``prefix`` for S3 (defaulting to settings),
    ``directory`` for a local export directory, ``kind`` for orders, customers
    or products.
    """
    event = event or {}
    try:
        importer = BulkFileImporter(
            store or get_store(),
            storage,
            config=config,
            kind=event.get("kind") or "orders",
            sleep=sleep,
        )
        if event.get("directory"):
            result = await importer.import_from_directory(event["directory"])
        else:
            result = await importer.import_from_object_store(
                event.get("bucket"), event.get("prefix")
            )
    except Exception as e:
        logger.error(f"Export import failed: {e}", exc_info=True)
        return _error_response("Export import failed", e)

    message = (
        "No CSV files found to import"
        if result.files_found == 0
        else "Export import completed"
    )
    return _response(
        200,
        {
            "message": message,
            "timestamp": utc_now_iso(),
            "results": result.model_dump(mode="json", by_alias=True),
        },
    )


def import_event(
    bucket: str, prefix: str, kind: str = "orders", file_count: int = 0
) -> Event:
    """Event that starts an import of the files under bucket/prefix."""
    return {
        "action": IMPORT_ACTION,
        "source": IMPORT_SOURCE,
        "bucket": bucket,
        "prefix": prefix,
        "kind": kind,
        "fileCount": file_count,
        "timestamp": utc_now_iso(),
    }


async def upload_and_import(
    directory: Optional[str] = None,
    kind: str = "orders",
    store: Optional[KeyValueStore] = None,
    storage: Optional[ObjectStorage] = None,
    config: Settings = settings,
    sleep: Optional[SleepFunc] = None,
) -> Response:
    """
    Upload a local export directory to the export bucket, then import the
    files under the bucket prefix.

    Nothing is imported when no file was uploaded.
    """
    try:
        upload = await upload_exports(directory, storage=storage, config=config)
    except Exception as e:
        logger.error(f"Export upload failed: {e}", exc_info=True)
        return _error_response("Export upload failed", e)

    if not upload.uploaded:
        if upload.failed:
            status_code, message = 500, "Export upload failed"
        else:
            status_code, message = 200, "No CSV files found to upload"
        return _response(
            status_code,
            {
                "message": message,
                "timestamp": utc_now_iso(),
                "upload": upload.model_dump(mode="json", by_alias=True),
            },
        )

    logger.info(f"Triggering import of {len(upload.uploaded)} uploaded files")
    return await run_bulk_import(
        import_event(upload.bucket, upload.prefix, kind, len(upload.uploaded)),
        store=store,
        storage=storage,
        config=config,
        sleep=sleep,
    )


def is_import_event(event: Optional[Event]) -> bool:
    if not isinstance(event, dict):
        return False
    return event.get("action") == IMPORT_ACTION or event.get("source") == IMPORT_SOURCE


async def dispatch(
    event: Optional[Event] = None,
    context: Any = None,
    store: Optional[KeyValueStore] = None,
    storage: Optional[ObjectStorage] = None,
    client_factory: Optional[ClientFactory] = None,
    config: Settings = settings,
    sleep: Optional[SleepFunc] = None,
) -> Response:
    """Route an invocation to the bulk import or to the full resync."""
    if is_import_event(event):
        logger.info("Routing invocation to export import")
        return await run_bulk_import(
            event, context, store=store, storage=storage, config=config, sleep=sleep
        )
    logger.info("Routing invocation to full sync")
    return await run_full_sync(
        event,
        context,
        store=store,
        client_factory=client_factory,
        config=config,
        sleep=sleep,
    )
