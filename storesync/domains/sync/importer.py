import asyncio
import csv
import logging
import tempfile
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from storesync.core.database import KeyValueStore
from storesync.core.settings import Settings, settings
from storesync.core.storage import ObjectStorage, get_storage
from storesync.shared.exceptions import ImportConfigurationError
from storesync.shared.retry import Retrier, SleepFunc

from .checkpoint import CheckpointTracker
from .models import FileImportResult, ImportResult, SyncStatus, utc_now_iso
from .normalizer import ROW_TRANSFORMS, NormalizedRecord, deduplicate_records
from .writer import WRITE_POLICIES, BatchWriter

logger = logging.getLogger(__name__)

PROGRESS_EVERY_FILES = 5

# Resolves the nth file to a readable local path
FileLocator = Callable[[int, str], Awaitable[Path]]


class BulkFileImporter:
    """
    Imports Shopify CSV exports (orders, customers or products) into the store.

    Each file is processed on its own: a file that cannot be downloaded or
    parsed is counted in ``errors`` and the import moves on to the next one.
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage: Optional[ObjectStorage] = None,
        config: Settings = settings,
        kind: str = "orders",
        sleep: Optional[SleepFunc] = None,
    ):
        if kind not in ROW_TRANSFORMS:
            raise ValueError(
                f"Unsupported import kind '{kind}', expected one of "
                f"{', '.join(sorted(ROW_TRANSFORMS))}"
            )

        self.storage = storage
        self.settings = config
        self.kind = kind
        self.transform = ROW_TRANSFORMS[kind]

        tables = config.tables()
        self.table = getattr(tables, kind)
        self.checkpoints = CheckpointTracker(store, tables.sync_metadata)
        self.writer = BatchWriter(
            store,
            self.table,
            kind,
            checkpoints=self.checkpoints,
            retrier=Retrier(WRITE_POLICIES, sleep=sleep),
        )

    async def import_from_object_store(
        self, bucket: Optional[str] = None, prefix: Optional[str] = None
    ) -> ImportResult:
        """
        Import every ``.csv`` object under an S3 prefix.

        Args:
            bucket: Source bucket, defaults to EXPORT_FILES_BUCKET
            prefix: Key prefix, defaults to EXPORT_FILES_PREFIX

        Returns:
            ImportResult with per-file outcomes

        Raises:
            ImportConfigurationError: If no bucket is configured
        """
        bucket = bucket or self.settings.EXPORT_FILES_BUCKET
        prefix = prefix if prefix is not None else self.settings.EXPORT_FILES_PREFIX
        if not bucket:
            raise ImportConfigurationError(
                "No bucket given and EXPORT_FILES_BUCKET is not set"
            )

        storage = self.storage or get_storage()
        result = self._new_result()
        source = {"bucket": bucket, "prefix": prefix}
        logger.info(
            f"Starting {self.kind} import {result.import_id} from s3://{bucket}/{prefix}"
        )

        async def list_keys() -> List[str]:
            objects = await storage.list_objects(bucket, prefix)
            return [o.key for o in objects if o.key.lower().endswith(".csv")]

        with tempfile.TemporaryDirectory(prefix="storesync-import-") as tmp:
            workdir = Path(tmp)

            async def download(index: int, key: str) -> Path:
                destination = workdir / f"{index}_{Path(key).name}"
                size = await storage.download_file(bucket, key, destination)
                logger.info(f"Downloaded {key} ({size} bytes)")
                return destination

            return await self._run(result, source, list_keys, download, cleanup=True)

    async def import_from_directory(
        self, path: Optional[str] = None, pattern: str = "*.csv"
    ) -> ImportResult:
        """Import every file matching pattern in a local export directory."""
        directory = Path(path or self.settings.ORDER_EXPORTS_PATH)
        if not directory.is_dir():
            raise ImportConfigurationError(f"Export directory not found: {directory}")

        result = self._new_result()
        logger.info(f"Starting {self.kind} import {result.import_id} from {directory}")

        async def list_files() -> List[str]:
            return sorted(p.name for p in directory.glob(pattern) if p.is_file())

        async def locate(index: int, name: str) -> Path:
            return directory / name

        return await self._run(
            result, {"directory": str(directory)}, list_files, locate, cleanup=False
        )

    def _new_result(self) -> ImportResult:
        return ImportResult(import_id=f"import_{int(time.time() * 1000)}")

    async def _run(
        self,
        result: ImportResult,
        source: dict,
        list_files: Callable[[], Awaitable[List[str]]],
        locate: FileLocator,
        cleanup: bool,
    ) -> ImportResult:
        await self._record(result, source)

        try:
            names = await list_files()
            result.files_found = len(names)

            if not names:
                logger.info("No CSV files found to import")
            for index, name in enumerate(names, start=1):
                await self._import_one(result, index, name, locate, cleanup)

                if index % PROGRESS_EVERY_FILES == 0 or index == len(names):
                    result.status = SyncStatus.IN_PROGRESS
                    await self._record(result, source)
        except Exception as e:
            logger.error(f"Import {result.import_id} failed: {e}", exc_info=True)
            result.status = SyncStatus.FAILED
            await self._record(result, source, error=str(e))
            raise

        if result.files_processed:
            await self.checkpoints.record_last_sync(self.kind)

        result.status = SyncStatus.COMPLETED
        await self._record(result, source, completedAt=utc_now_iso())
        logger.info(
            f"Import {result.import_id} completed: {result.files_processed}/"
            f"{result.files_found} files, {result.records_imported} records, "
            f"{result.errors} failed files"
        )
        return result

    async def _import_one(
        self,
        result: ImportResult,
        index: int,
        name: str,
        locate: FileLocator,
        cleanup: bool,
    ) -> None:
        local: Optional[Path] = None
        try:
            local = await locate(index, name)
            file_result = await self.import_file(local, Path(name).name)
        except Exception as e:
            result.errors += 1
            logger.error(f"Error processing file {name}: {e}", exc_info=True)
            return
        finally:
            if cleanup and local is not None:
                local.unlink(missing_ok=True)

        result.files.append(file_result)
        result.files_processed += 1
        result.rows_processed += file_result.rows_processed
        result.records_imported += file_result.success_count

    async def import_file(self, path: Path, file_name: str) -> FileImportResult:
        """
        Parse one CSV file and write its records.

        Returns:
            FileImportResult; ``rows_processed`` counts every row read, including
            rows the transform rejected
        """
        rows, records = await asyncio.to_thread(self._read_rows, path)
        unique = deduplicate_records(records)
        written = await self.writer.write(unique)

        logger.info(
            f"{file_name}: {rows} rows, {len(records)} {self.kind} extracted, "
            f"{written.success_count} written, {written.error_count} failed"
        )
        return FileImportResult(
            file_name=file_name,
            rows_processed=rows,
            records_extracted=len(records),
            success_count=written.success_count,
            error_count=written.error_count,
        )

    def _read_rows(self, path: Path) -> Tuple[int, List[NormalizedRecord]]:
        rows = 0
        records: List[NormalizedRecord] = []
        # utf-8-sig drops the BOM Shopify puts on exports
        with path.open(newline="", encoding="utf-8-sig") as handle:
            for position, row in enumerate(csv.DictReader(handle)):
                rows += 1
                record = self.transform(row, position)
                if record is not None:
                    records.append(record)
        return rows, records

    async def _record(self, result: ImportResult, source: dict, **extra: Any) -> None:
        fields = result.model_dump(mode="json", by_alias=True, exclude={"files"})
        fields.pop("importId", None)
        await self.checkpoints.record(
            result.import_id,
            {
                "type": "export_import",
                "kind": self.kind,
                **source,
                **fields,
                **extra,
            },
        )
