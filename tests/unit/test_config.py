from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from batchgen.config import _parse_origins, _parse_token_map, get_settings


@pytest.fixture
def fresh_settings():
  get_settings.cache_clear()
  yield get_settings
  get_settings.cache_clear()


def test_origins_must_be_explicit() -> None:
  assert _parse_origins("https://a.example.com, https://b.example.com") == ("https://a.example.com", "https://b.example.com")
  with pytest.raises(ValueError):
    _parse_origins(None)
  with pytest.raises(ValueError):
    _parse_origins("https://a.example.com,*")


def test_token_map_parsing() -> None:
  assert _parse_token_map(None) == {}
  assert _parse_token_map('{"tok": "tenant-1", " ": "ignored"}') == {"tok": "tenant-1"}
  with pytest.raises(ValueError):
    _parse_token_map("tok=tenant-1")
  with pytest.raises(ValueError):
    _parse_token_map('["tok"]')


def test_generation_defaults(fresh_settings) -> None:
  settings = fresh_settings()
  assert settings.batch_size == 30
  assert settings.retry_max_attempts == 3
  assert settings.stale_after_seconds == 420
  assert settings.task_service_provider == "local-http"
  assert settings.api_tokens == {"tok-a": "tenant-a", "tok-b": "tenant-b"}
  assert settings.proofreading_enabled is False


def test_invalid_values_are_rejected(fresh_settings) -> None:
  with patch.dict(os.environ, {"BATCHGEN_BATCH_SIZE": "0"}):
    with pytest.raises(ValueError):
      fresh_settings()
  get_settings.cache_clear()
  with patch.dict(os.environ, {"BATCHGEN_TASK_SERVICE_PROVIDER": "sqs"}):
    with pytest.raises(ValueError):
      fresh_settings()
