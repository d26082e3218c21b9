# tests/unit/domains/sync/test_sync_routes.py
"""
Tests for the sync HTTP routes.
"""
import asyncio
from typing import Iterator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from storesync.core.database import get_store
from storesync.core.settings import Settings
from storesync.domains.sync.checkpoint import CheckpointTracker
from storesync.domains.sync.models import ResourceResult, SyncRun, SyncStatus
from storesync.main import app
from tests.fixtures.store_fixtures import InMemoryStore

OK = {"statusCode": 200, "body": "{}"}
METADATA = "ShopifySyncMetadata"


@pytest.fixture
def api_client(
    memory_store: InMemoryStore, test_settings: Settings
) -> Iterator[TestClient]:
    app.dependency_overrides[get_store] = lambda: memory_store
    with patch("storesync.domains.sync.routes.settings", test_settings):
        yield TestClient(app)
    app.dependency_overrides.clear()


class TestStatusRoutes:
    """Test suite for the status endpoints."""

    def test_status_before_any_run(self, api_client: TestClient) -> None:
        response = api_client.get("/api/v1/sync/status")

        assert response.status_code == 200
        assert response.json() == {"status": "never_run"}

    def test_status_returns_latest_run(
        self, api_client: TestClient, memory_store: InMemoryStore
    ) -> None:
        run = SyncRun(
            run_id="sync_1700000000000",
            status=SyncStatus.SUCCESS,
            results={"orders": ResourceResult(success=True, count=4)},
        )
        asyncio.run(CheckpointTracker(memory_store, METADATA).record_run(run))

        response = api_client.get("/api/v1/sync/status")

        data = response.json()
        assert data["runId"] == "sync_1700000000000"
        assert data["status"] == "success"
        assert data["totalItemsSynced"] == 4

    def test_resource_status(
        self, api_client: TestClient, memory_store: InMemoryStore
    ) -> None:
        tracker = CheckpointTracker(memory_store, METADATA)
        asyncio.run(tracker.record_last_sync("orders", "2024-05-01T00:00:00.000Z"))
        asyncio.run(tracker.record("orders_in_progress", {"pagesProcessed": 5}))

        response = api_client.get("/api/v1/sync/status/orders")

        assert response.status_code == 200
        data = response.json()
        assert data["resource"] == "orders"
        assert data["last_sync"] == "2024-05-01T00:00:00.000Z"
        assert data["fetch_checkpoint"]["pagesProcessed"] == 5
        assert data["write_checkpoint"] is None

    def test_unknown_resource_is_404(self, api_client: TestClient) -> None:
        response = api_client.get("/api/v1/sync/status/widgets")

        assert response.status_code == 404
        assert "widgets" in response.json()["detail"]


class TestTriggerRoutes:
    """Test suite for the background trigger endpoints."""

    def test_trigger_sync_runs_in_background(
        self, api_client: TestClient, memory_store: InMemoryStore
    ) -> None:
        with patch(
            "storesync.domains.sync.routes.run_full_sync",
            new=AsyncMock(return_value=OK),
        ) as mock_sync:
            response = api_client.post("/api/v1/sync/run")

        assert response.status_code == 202
        assert response.json()["message"] == "Shopify sync started"
        mock_sync.assert_awaited_once_with(store=memory_store)

    def test_trigger_sync_requires_credentials(
        self, memory_store: InMemoryStore, test_settings: Settings
    ) -> None:
        config = test_settings.model_copy(update={"SHOPIFY_ACCESS_TOKEN": None})
        app.dependency_overrides[get_store] = lambda: memory_store
        try:
            with patch("storesync.domains.sync.routes.settings", config), patch(
                "storesync.domains.sync.routes.run_full_sync", new=AsyncMock()
            ) as mock_sync:
                response = TestClient(app).post("/api/v1/sync/run")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        mock_sync.assert_not_awaited()

    def test_trigger_import(
        self, api_client: TestClient, memory_store: InMemoryStore
    ) -> None:
        with patch(
            "storesync.domains.sync.routes.run_bulk_import",
            new=AsyncMock(return_value=OK),
        ) as mock_import:
            response = api_client.post(
                "/api/v1/sync/import",
                json={"bucket": "daily-bucket", "kind": "customers"},
            )

        assert response.status_code == 202
        assert response.json()["message"] == "Export import of customers started"
        mock_import.assert_awaited_once_with(
            {"bucket": "daily-bucket", "prefix": None, "kind": "customers"},
            store=memory_store,
        )

    def test_trigger_product_import(
        self, api_client: TestClient, memory_store: InMemoryStore
    ) -> None:
        with patch(
            "storesync.domains.sync.routes.run_bulk_import",
            new=AsyncMock(return_value=OK),
        ) as mock_import:
            response = api_client.post("/api/v1/sync/import", json={"kind": "products"})

        assert response.status_code == 202
        assert response.json()["message"] == "Export import of products started"
        assert mock_import.await_args.args[0]["kind"] == "products"

    def test_trigger_import_rejects_unknown_kind(self, api_client: TestClient) -> None:
        response = api_client.post("/api/v1/sync/import", json={"kind": "widgets"})

        assert response.status_code == 422


class TestAppRoutes:
    """Test suite for the application-level endpoints."""

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "storesync API is running"}

    def test_health(self, test_client: TestClient) -> None:
        response = test_client.get("/health")

        assert response.json() == {"status": "healthy"}
