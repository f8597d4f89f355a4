"""Pytest configuration and shared fixtures for the incident API and CLI tests."""

import pytest
from pathlib import Path
from typing import Dict, Any
from fastapi.testclient import TestClient

from fire_incident_api.config import Settings
from fire_incident_api.core.incident_store import IncidentStore
from fire_incident_api.main import create_app

TEST_API_TOKEN = "test-secret-token"

# PNG signature followed by filler; the API never inspects image content
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 56


# ============================================================================
# Core Test Data Fixtures
# ============================================================================


@pytest.fixture
def sample_incident_fields() -> Dict[str, Any]:
    """
    Provides valid incident fields as the API would receive them.

    Returns:
        Dict[str, Any]: Fields for a structure fire
    """
    return {
        "title": "Kitchen Fire",
        "incident_type": "Structure Fire",
        "description": "Grease fire spreading to cabinets",
        "location": "12 Elm Street",
    }


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def data_file(tmp_path) -> Path:
    return tmp_path / "data" / "incidents.json"


@pytest.fixture
def store(data_file) -> IncidentStore:
    """A fresh store writing into a temporary directory."""
    return IncidentStore(data_file)


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path, data_file) -> Settings:
    """
    Settings pointing all file I/O at a temporary directory.

    Returns:
        Settings: Default limits with a known API token
    """
    return Settings(
        data_file=data_file,
        upload_dir=tmp_path / "uploads",
        api_token=TEST_API_TOKEN,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def test_client(app):
    """
    Provides a TestClient with the application lifespan running.

    Returns:
        TestClient: Client for the app built from the temporary settings
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {TEST_API_TOKEN}"}
