"""Tests for application configuration."""
from pathlib import Path
import pytest

from fire_incident_api.config import (
    DEFAULT_ALLOWED_FILE_TYPES,
    DEFAULT_ALLOWED_ORIGINS,
    ONE_MIB,
    Settings,
)

ENV_VARS = [
    "PORT",
    "HOST",
    "LOG_LEVEL",
    "DATA_FILE",
    "UPLOAD_DIR",
    "MAX_FILE_SIZE",
    "MAX_FILES_PER_REQUEST",
    "ALLOWED_FILE_TYPES",
    "ALLOWED_ORIGINS",
    "API_TOKEN",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults(clean_env):
    """Test defaults when no environment variables are set."""
    settings = Settings.from_env()

    assert settings.port == 3001
    assert settings.host == "0.0.0.0"
    assert settings.data_file == Path("incidents.json")
    assert settings.upload_dir == Path("uploads")
    assert settings.max_file_size == 10 * ONE_MIB
    assert settings.max_files_per_request == 5
    assert settings.allowed_file_types == DEFAULT_ALLOWED_FILE_TYPES
    assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert settings.api_token is None
    assert settings.max_body_size == ONE_MIB


def test_from_env_overrides(clean_env, tmp_path):
    """Test that every recognized variable is applied."""
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("HOST", "127.0.0.1")
    clean_env.setenv("LOG_LEVEL", "debug")
    clean_env.setenv("DATA_FILE", str(tmp_path / "db.json"))
    clean_env.setenv("UPLOAD_DIR", str(tmp_path / "files"))
    clean_env.setenv("MAX_FILE_SIZE", "2048")
    clean_env.setenv("MAX_FILES_PER_REQUEST", "2")
    clean_env.setenv("API_TOKEN", "s3cret")

    settings = Settings.from_env()

    assert settings.port == 8080
    assert settings.host == "127.0.0.1"
    assert settings.log_level == "DEBUG"
    assert settings.data_file == tmp_path / "db.json"
    assert settings.upload_dir == tmp_path / "files"
    assert settings.max_file_size == 2048
    assert settings.max_files_per_request == 2
    assert settings.api_token == "s3cret"


def test_allowed_origins_extend_defaults(clean_env):
    clean_env.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")

    settings = Settings.from_env()

    assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS + [
        "https://a.example",
        "https://b.example",
    ]


def test_allowed_file_types_replace_defaults(clean_env):
    clean_env.setenv("ALLOWED_FILE_TYPES", ".PNG,.gif")

    settings = Settings.from_env()

    assert settings.allowed_file_types == [".png", ".gif"]


def test_empty_api_token_is_unset(clean_env):
    clean_env.setenv("API_TOKEN", "")

    assert Settings.from_env().api_token is None


def test_rate_limit_defaults():
    settings = Settings()

    assert (settings.rate_limit_points, settings.rate_limit_duration) == (200, 900)
    assert settings.rate_limit_block_duration == 300
    assert (settings.auth_rate_limit_points, settings.auth_rate_limit_duration) == (20, 900)
    assert settings.auth_rate_limit_block_duration == 600


def test_multipart_cap_covers_all_files():
    settings = Settings(max_file_size=ONE_MIB, max_files_per_request=3)

    assert settings.multipart_max_body_size == 4 * ONE_MIB
