"""
Upload of local Shopify export files to the export bucket, so that an
object-store import can pick them up.
"""

import logging
from pathlib import Path
from typing import Optional

from storesync.core.settings import Settings, settings
from storesync.core.storage import ObjectStorage, get_storage
from storesync.shared.exceptions import ImportConfigurationError

from .models import UploadResult

logger = logging.getLogger(__name__)


async def upload_exports(
    directory: Optional[str] = None,
    bucket: Optional[str] = None,
    prefix: Optional[str] = None,
    storage: Optional[ObjectStorage] = None,
    config: Settings = settings,
    pattern: str = "*.csv",
) -> UploadResult:
    """
    Upload every file matching pattern in a local directory to S3.

    Each file lands at ``prefix + file name``. A file that fails to upload is
    logged and listed in ``failed``; the remaining files are still uploaded.

    Args:
        directory: Local export directory, defaults to ORDER_EXPORTS_PATH
        bucket: Target bucket, defaults to EXPORT_FILES_BUCKET
        prefix: Key prefix, defaults to EXPORT_FILES_PREFIX

    Raises:
        ImportConfigurationError: If no bucket is configured or the directory
            does not exist
    """
    source = Path(directory or config.ORDER_EXPORTS_PATH)
    bucket = bucket or config.EXPORT_FILES_BUCKET
    prefix = prefix if prefix is not None else config.EXPORT_FILES_PREFIX
    if not bucket:
        raise ImportConfigurationError(
            "No bucket given and EXPORT_FILES_BUCKET is not set"
        )
    if not source.is_dir():
        raise ImportConfigurationError(f"Export directory not found: {source}")

    storage = storage or get_storage()
    files = sorted(p for p in source.glob(pattern) if p.is_file())
    result = UploadResult(bucket=bucket, prefix=prefix, files_found=len(files))
    logger.info(f"Found {len(files)} export files in {source}")

    for path in files:
        key = f"{prefix}{path.name}"
        try:
            await storage.upload_file(path, bucket, key)
        except Exception as e:
            logger.error(f"Failed to upload {path.name}: {e}", exc_info=True)
            result.failed.append(path.name)
            continue
        logger.info(f"Uploaded {path.name} to s3://{bucket}/{key}")
        result.uploaded.append(key)

    logger.info(
        f"Upload finished: {len(result.uploaded)} uploaded, {len(result.failed)} failed"
    )
    return result
