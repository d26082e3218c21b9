from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return (
        datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
            "+00:00", "Z"
        )
    )


class SyncStatus(str, Enum):
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    PARTIAL_SUCCESS = "partial_success"
    SUCCESS = "success"
    FAILED = "failed"
    COMPLETED = "completed"


class ResourceResult(BaseModel):
    """Outcome of one resource sync inside a run."""

    success: bool = False
    count: int = 0
    error: Optional[str] = None
    items_retrieved: int = Field(default=0, alias="itemsRetrieved")
    error_count: int = Field(default=0, alias="errorCount")
    truncated: bool = False

    model_config = ConfigDict(populate_by_name=True)


class SyncRun(BaseModel):
    """One execution of the orchestrator."""

    run_id: str = Field(alias="runId")
    status: SyncStatus = SyncStatus.STARTED
    started_at: str = Field(default_factory=utc_now_iso, alias="startedAt")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")
    results: Dict[str, ResourceResult] = Field(default_factory=dict)
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def total_items_synced(self) -> int:
        return sum(r.count for r in self.results.values())

    def to_metadata(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FetchStats(BaseModel):
    """Counters kept by the paginated fetcher."""

    pages: int = 0
    items: int = 0
    errors: int = 0
    truncated: bool = False


class WriteResult(BaseModel):
    """Success and failure counts of a batched write."""

    success_count: int = 0
    error_count: int = 0

    def add(self, other: "WriteResult") -> None:
        self.success_count += other.success_count
        self.error_count += other.error_count


class FileImportResult(BaseModel):
    """Outcome of importing one flat file."""

    file_name: str
    rows_processed: int = 0
    records_extracted: int = 0
    success_count: int = 0
    error_count: int = 0


class ImportResult(BaseModel):
    """Outcome of a bulk file import."""

    import_id: str = Field(alias="importId")
    status: SyncStatus = SyncStatus.STARTED
    files_found: int = Field(default=0, alias="filesFound")
    files_processed: int = Field(default=0, alias="filesProcessed")
    rows_processed: int = Field(default=0, alias="rowsProcessed")
    records_imported: int = Field(default=0, alias="ordersImported")
    errors: int = 0
    files: List[FileImportResult] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class UploadResult(BaseModel):
    """Outcome of uploading local export files to S3."""

    bucket: str
    prefix: str
    files_found: int = Field(default=0, alias="filesFound")
    uploaded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ImportRequest(BaseModel):
    """Body of the HTTP import trigger."""

    bucket: Optional[str] = Field(None, description="S3 bucket holding export files")
    prefix: Optional[str] = Field(None, description="Key prefix of export files")
    kind: Literal["orders", "customers", "products"] = Field(
        "orders", description="Record kind: orders, customers or products"
    )


class TriggerResponse(BaseModel):
    message: str
    timestamp: str


class ResourceStatusResponse(BaseModel):
    resource: str
    last_sync: Optional[str] = None
    fetch_checkpoint: Optional[Dict[str, Any]] = None
    write_checkpoint: Optional[Dict[str, Any]] = None
