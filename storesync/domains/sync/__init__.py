"""Shopify to DynamoDB synchronization domain.

This module keeps the store's tables in step with Shopify:
- Paginated, rate-limit aware fetching and batched, retried writes
- Per-resource pipelines run by the orchestrator with checkpoints and leases
- Bulk import of CSV export files from S3 or a local directory
"""
from .checkpoint import CheckpointTracker
from .fetcher import PaginatedFetcher
from .importer import BulkFileImporter
from .lease import SyncLease
from .models import ImportResult, ResourceResult, SyncRun, SyncStatus
from .orchestrator import SyncOrchestrator
from .pipeline import RESOURCE_ORDER, ResourceDefinition, ResourcePipeline
from .writer import BatchWriter

__all__ = [
    "BatchWriter",
    "BulkFileImporter",
    "CheckpointTracker",
    "ImportResult",
    "PaginatedFetcher",
    "RESOURCE_ORDER",
    "ResourceDefinition",
    "ResourcePipeline",
    "ResourceResult",
    "SyncLease",
    "SyncOrchestrator",
    "SyncRun",
    "SyncStatus",
]
