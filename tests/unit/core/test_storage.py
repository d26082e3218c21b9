# tests/unit/core/test_storage.py
"""
Tests for the S3-backed ObjectStorage.
"""
from pathlib import Path
from unittest.mock import Mock

import pytest

from storesync.core.storage import ObjectStorage, StoredObject


class TestObjectStorage:
    """Test suite for ObjectStorage."""

    @pytest.fixture
    def client(self) -> Mock:
        return Mock()

    @pytest.fixture
    def storage(self, client: Mock) -> ObjectStorage:
        return ObjectStorage(client=client)

    @pytest.mark.asyncio
    async def test_list_objects_reads_every_page(
        self, storage: ObjectStorage, client: Mock
    ) -> None:
        paginator = client.get_paginator.return_value
        paginator.paginate.return_value = iter(
            [
                {"Contents": [{"Key": "order_exports/a.csv", "Size": 10}]},
                {"Contents": [{"Key": "order_exports/b.csv", "Size": 20}]},
            ]
        )

        objects = await storage.list_objects("export-bucket", "order_exports/")

        assert objects == [
            StoredObject(key="order_exports/a.csv", size=10),
            StoredObject(key="order_exports/b.csv", size=20),
        ]
        client.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(
            Bucket="export-bucket", Prefix="order_exports/"
        )

    @pytest.mark.asyncio
    async def test_list_empty_prefix(self, storage: ObjectStorage, client: Mock) -> None:
        client.get_paginator.return_value.paginate.return_value = iter(
            [{"KeyCount": 0, "IsTruncated": False}]
        )

        assert await storage.list_objects("export-bucket", "none/") == []

    @pytest.mark.asyncio
    async def test_download_file_streams_to_disk(
        self, storage: ObjectStorage, client: Mock, tmp_path: Path
    ) -> None:
        def fake_download(bucket: str, key: str, filename: str) -> None:
            Path(filename).write_bytes(b"Name,Total\n#1001,10\n")

        client.download_file.side_effect = fake_download
        destination = tmp_path / "orders.csv"

        size = await storage.download_file("export-bucket", "order_exports/orders.csv", destination)

        assert size == 20
        assert destination.read_bytes() == b"Name,Total\n#1001,10\n"
        client.download_file.assert_called_once_with(
            "export-bucket", "order_exports/orders.csv", str(destination)
        )
        client.get_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_file_sets_csv_content_type(
        self, storage: ObjectStorage, client: Mock, tmp_path: Path
    ) -> None:
        source = tmp_path / "orders.csv"
        source.write_bytes(b"Name\n#1001\n")

        await storage.upload_file(source, "export-bucket", "order_exports/orders.csv")

        client.upload_file.assert_called_once_with(
            str(source),
            "export-bucket",
            "order_exports/orders.csv",
            ExtraArgs={"ContentType": "text/csv"},
        )

    def test_stored_object_file_name(self) -> None:
        assert StoredObject(key="order_exports/2024/orders.csv").file_name == "orders.csv"
