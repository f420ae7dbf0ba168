"""Test configuration for importing the application package."""

from __future__ import annotations

import os

# Settings are read once per process, so the environment must be in place before any import.
os.environ["BATCHGEN_ALLOWED_ORIGINS"] = "http://localhost:3000"
os.environ["BATCHGEN_API_TOKENS"] = '{"tok-a": "tenant-a", "tok-b": "tenant-b"}'
os.environ["BATCHGEN_TASK_SECRET"] = "test-task-secret"
os.environ["BATCHGEN_BASE_URL"] = "http://localhost:8080"
os.environ["BATCHGEN_PROOFREADING_ENABLED"] = "0"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from fakes import FakeContentClient, InMemorySectionsRepository, RecordingEnqueuer  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def repo() -> InMemorySectionsRepository:
  return InMemorySectionsRepository()


@pytest.fixture
def content_client() -> FakeContentClient:
  return FakeContentClient()


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
  return RecordingEnqueuer()


@pytest.fixture
async def async_client():
  from batchgen.main import app

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
