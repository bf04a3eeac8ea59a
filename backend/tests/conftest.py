"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.uploads.router import get_upload_store, set_upload_store
from app.uploads.service import UploadStore


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    The lifespan is not entered, so no store is configured from settings;
    tests that need one also request ``upload_store``.
    """
    return TestClient(app)


@pytest.fixture
def upload_root(tmp_path):
    """Empty directory to store uploads in."""
    return tmp_path / "uploads"


@pytest.fixture
def upload_store(upload_root):
    """Install an UploadStore rooted in a temp directory as the global store."""
    original = get_upload_store()
    store = UploadStore(root=upload_root)
    set_upload_store(store)
    yield store
    set_upload_store(original)
