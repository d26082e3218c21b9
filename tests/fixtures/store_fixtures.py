# tests/fixtures/store_fixtures.py
"""Test fixtures for the key-value store and object storage."""
import copy
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest

from storesync.core.database import MAX_BATCH_ITEMS
from storesync.core.storage import ObjectStorage, StoredObject


class InMemoryStore:
    """
    Dict-backed stand-in for KeyValueStore.

    Items are keyed by ``syncId`` (metadata table) or ``id`` (record tables).
    Failures are scripted per call through the ``*_errors`` lists and
    ``unprocessed_plan`` (number of items reported unprocessed per batch call).
    """

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self.batch_calls: List[Tuple[str, int]] = []
        self.unprocessed_plan: List[int] = []
        self.batch_errors: List[Exception] = []
        self.put_errors: List[Exception] = []
        self.delete_errors: List[Exception] = []

    @staticmethod
    def _key(item: Dict[str, Any]) -> str:
        return str(item.get("syncId") or item["id"])

    def items(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables[table].values())

    async def put_item(self, table: str, item: Dict[str, Any]) -> None:
        if self.put_errors:
            raise self.put_errors.pop(0)
        self.tables[table][self._key(item)] = copy.deepcopy(item)

    async def get_item(
        self, table: str, key: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        value = next(iter(key.values()))
        item = self.tables[table].get(str(value))
        return copy.deepcopy(item) if item is not None else None

    async def batch_write(
        self, table: str, items: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        if len(items) > MAX_BATCH_ITEMS:
            raise ValueError(f"batch of {len(items)} items")
        self.batch_calls.append((table, len(items)))
        if self.batch_errors:
            raise self.batch_errors.pop(0)

        unprocessed = self.unprocessed_plan.pop(0) if self.unprocessed_plan else 0
        accepted = len(items) - unprocessed
        for item in items[:accepted]:
            self.tables[table][self._key(item)] = copy.deepcopy(item)
        return list(items[accepted:])

    async def put_item_if(
        self,
        table: str,
        item: Dict[str, Any],
        condition: str,
        values: Dict[str, Any],
    ) -> bool:
        # lease semantics: free, expired, or held by the same owner
        existing = self.tables[table].get(self._key(item))
        if (
            existing is None
            or existing["expiresAt"] < values[":now"]
            or existing.get("leaseOwner") == values[":owner"]
        ):
            self.tables[table][self._key(item)] = copy.deepcopy(item)
            return True
        return False

    async def delete_item_if(
        self,
        table: str,
        key: Dict[str, Any],
        condition: str,
        values: Dict[str, Any],
    ) -> bool:
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        record_key = str(next(iter(key.values())))
        existing = self.tables[table].get(record_key)
        if existing is not None and existing.get("leaseOwner") == values[":owner"]:
            del self.tables[table][record_key]
            return True
        return False


@pytest.fixture
def memory_store() -> InMemoryStore:
    """Empty in-memory key-value store."""
    return InMemoryStore()


@pytest.fixture
def mock_sleep() -> AsyncMock:
    """Sleep replacement so no test waits on real time."""
    return AsyncMock()


def create_mock_storage(
    files: Dict[str, Optional[bytes]], failing_uploads: Iterable[str] = ()
) -> Mock:
    """
    Mock ObjectStorage serving the given key -> content mapping.

    Keys whose content is None fail to download. Uploaded files are added to
    the mapping, except file names listed in ``failing_uploads``, which fail.
    """
    storage = Mock(spec=ObjectStorage)
    files = dict(files)
    failing = set(failing_uploads)

    async def list_objects(bucket: str, prefix: str) -> List[StoredObject]:
        return [
            StoredObject(key=key, size=len(content or b""))
            for key, content in files.items()
            if key.startswith(prefix)
        ]

    storage.list_objects = AsyncMock(side_effect=list_objects)
    storage.downloaded_paths = []

    async def download(bucket: str, key: str, destination: Path) -> int:
        content = files[key]
        if content is None:
            raise OSError(f"download of {key} failed")
        destination.write_bytes(content)
        storage.downloaded_paths.append(destination)
        return len(content)

    storage.download_file = AsyncMock(side_effect=download)

    async def upload(source: Path, bucket: str, key: str) -> None:
        if source.name in failing:
            raise OSError(f"upload of {source.name} failed")
        files[key] = source.read_bytes()

    storage.upload_file = AsyncMock(side_effect=upload)
    return storage
