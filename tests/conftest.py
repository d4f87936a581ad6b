"""Pytest configuration and fixtures."""
import pytest
from fastapi.testclient import TestClient

from main import app
from sitephotos.core.retry_utils import resilience_manager
from sitephotos.services.storage import TransferStage
from sitephotos.services.upload_registry import BatchRegistry
from tests.fakes import FAST_RETRY, FakeCompressor, FakeObjectStore, FakeRecorder


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_resilience_metrics():
    resilience_manager.reset()
    yield
    resilience_manager.reset()


@pytest.fixture
def fake_compressor():
    return FakeCompressor()


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture
def fake_recorder():
    return FakeRecorder()


@pytest.fixture
def make_registry(fake_compressor, fake_store, fake_recorder):
    """Factory for registries wired to the in-memory fakes."""
    def _make(**kwargs) -> BatchRegistry:
        store = kwargs.pop("store", fake_store)
        kwargs.setdefault("compressor", fake_compressor)
        kwargs.setdefault("transfer", TransferStage(store, FAST_RETRY))
        kwargs.setdefault("recorder", fake_recorder)
        return BatchRegistry(**kwargs)
    return _make
