from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import SETTINGS, Settings  # noqa: E402
from app.db.seed import load_catalog  # noqa: E402
from app.main import app  # noqa: E402
from app.repos.store import InMemoryStore  # noqa: E402
from app.services.container import Services, build_services  # noqa: E402
from app.services.task_queue import InMemoryTaskQueue  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Direct activation: no payment provider, no webhook secret."""
    return replace(
        SETTINGS,
        payment_secret_key=None,
        payment_webhook_secret=None,
        trial_days=7,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """A fresh in-memory store holding the reference catalog."""
    store = InMemoryStore()
    asyncio.run(load_catalog(store))
    return store


@pytest.fixture
def queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def services(settings: Settings, store: InMemoryStore, queue: InMemoryTaskQueue) -> Services:
    return build_services(settings, store=store, queue=queue)


@pytest.fixture(autouse=True)
def install_services(services: Services):
    """Every test gets its own store behind the app."""
    app.state.services = services
    yield
    app.state.services = None


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)
