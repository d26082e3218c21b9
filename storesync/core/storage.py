import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import boto3

from storesync.core.settings import settings


@dataclass
class StoredObject:
    """One object listed under an S3 prefix."""

    key: str
    size: int = 0

    @property
    def file_name(self) -> str:
        return Path(self.key).name


class ObjectStorage:
    """
    S3 access for the bulk file importer.
    Lists export files under a prefix, downloads them for processing and
    uploads local exports.
    """

    def __init__(self, client: Any = None, region: Optional[str] = None) -> None:
        self.client = client or boto3.client(
            "s3", region_name=region or settings.AWS_REGION
        )

    async def list_objects(self, bucket: str, prefix: str) -> List[StoredObject]:
        """
        List every object under a prefix.

        Args:
            bucket: Bucket name
            prefix: Key prefix to list

        Returns:
            Listed objects across all result pages
        """

        def collect() -> List[StoredObject]:
            paginator = self.client.get_paginator("list_objects_v2")
            return [
                StoredObject(key=entry["Key"], size=int(entry.get("Size") or 0))
                for page in paginator.paginate(Bucket=bucket, Prefix=prefix)
                for entry in page.get("Contents") or []
            ]

        return await asyncio.to_thread(collect)

    async def download_file(self, bucket: str, key: str, destination: Path) -> int:
        """
        Download an object to a local path, streaming it to disk.

        Returns:
            Number of bytes written
        """
        await asyncio.to_thread(
            self.client.download_file, bucket, key, str(destination)
        )
        return destination.stat().st_size

    async def upload_file(
        self,
        source: Path,
        bucket: str,
        key: str,
        content_type: str = "text/csv",
    ) -> None:
        await asyncio.to_thread(
            self.client.upload_file,
            str(source),
            bucket,
            key,
            ExtraArgs={"ContentType": content_type},
        )


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    """Shared storage instance, built on first use."""
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage
