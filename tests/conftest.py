"""Shared fixtures: a fresh SQLite store per test and an app factory wired to a mock upstream."""

from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient

from keypool.core.config import Settings
from keypool.core.database import create_db_and_tables, create_db_engine
from keypool.core.key_store import KeyStore
from keypool.main import create_app

AUTH_KEY = "test-shared-secret"
UPSTREAM_HOST = "upstream.test"


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'keypool.db'}")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return KeyStore(engine)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        auth_key=AUTH_KEY,
        target_api_host=UPSTREAM_HOST,
        timeout_ms=5000,
        database_url=f"sqlite:///{tmp_path / 'keypool.db'}",
    )


@pytest.fixture
def make_client(settings, store):
    """Build a TestClient whose upstream calls go to ``handler``."""

    def _make(handler=None, **overrides):
        if handler is None:
            handler = lambda request: httpx.Response(200, json={"ok": True})
        app = create_app(
            settings=replace(settings, **overrides),
            store=store,
            transport=httpx.MockTransport(handler),
        )
        return TestClient(app)

    return _make


@pytest.fixture
def auth_headers():
    return {"x-goog-api-key": AUTH_KEY}
