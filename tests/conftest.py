from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from stockbot.core.config import Settings
from stockbot.main import create_app


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        sqlite_path=tmp_path / "stockbot.db",
        self_heal_settle_ms=0,
        store_backoff_base_ms=0,
        openrouter_api_key=None,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
