"""
Global pytest configuration and fixtures for the storesync test suite.
"""

import os

import pytest
from fastapi.testclient import TestClient

# Keep boto3 from looking for real credentials or regions
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from storesync.main import app  # noqa: E402

# Import fixtures from fixture modules
from tests.fixtures.csv_fixtures import *  # noqa: F403, F401, E402
from tests.fixtures.shopify_fixtures import *  # noqa: F403, F401, E402
from tests.fixtures.store_fixtures import *  # noqa: F403, F401, E402


@pytest.fixture
def test_client() -> TestClient:
    """FastAPI test client for API endpoint testing."""
    return TestClient(app)


@pytest.fixture
def run_context() -> object:
    """Host invocation context exposing the remaining execution time."""

    class Context:
        def get_remaining_time_in_millis(self) -> int:
            return 840_000

    return Context()
