"""
Serverless entry points.

``handler`` routes on the event (``action == "export_import"`` or
``source == "order-export-import"`` selects the bulk import); the other two
entry points run one job unconditionally.
"""

import asyncio
from typing import Any, Dict, Optional

from storesync.core.logging_config import configure_logging
from storesync.core.settings import settings
from storesync.domains.sync.handlers import dispatch, run_bulk_import, run_full_sync

configure_logging(settings.LOG_LEVEL)


def handler(
    event: Optional[Dict[str, Any]] = None, context: Any = None
) -> Dict[str, Any]:
    return asyncio.run(dispatch(event, context))


def sync_handler(
    event: Optional[Dict[str, Any]] = None, context: Any = None
) -> Dict[str, Any]:
    return asyncio.run(run_full_sync(event, context))


def export_import_handler(
    event: Optional[Dict[str, Any]] = None, context: Any = None
) -> Dict[str, Any]:
    return asyncio.run(run_bulk_import(event, context))
