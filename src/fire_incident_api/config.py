"""Application configuration management."""
import os
from pathlib import Path
from typing import List, Optional

from fastapi import Request
from pydantic import BaseModel, Field

DEFAULT_ALLOWED_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
DEFAULT_ALLOWED_FILE_TYPES = [".jpg", ".jpeg", ".png", ".gif"]
ONE_MIB = 1024 * 1024


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime settings for the incident API."""

    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=3001, description="Port to listen on")
    log_level: str = Field(default="INFO", description="Root logging level")

    data_file: Path = Field(
        default=Path("incidents.json"), description="JSON file holding all incidents"
    )
    upload_dir: Path = Field(
        default=Path("uploads"), description="Directory uploaded images are stored in"
    )
    upload_url_prefix: str = Field(
        default="/uploads", description="URL prefix uploaded images are served under"
    )

    max_body_size: int = Field(default=ONE_MIB, description="Cap for non-multipart bodies")
    max_file_size: int = Field(default=10 * ONE_MIB, description="Cap per uploaded file")
    max_files_per_request: int = Field(default=5)
    allowed_file_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_FILE_TYPES)
    )
    allowed_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )

    api_token: Optional[str] = Field(
        default=None, description="Bearer token required for mutating requests"
    )

    rate_limit_points: int = 200
    rate_limit_duration: int = 900
    rate_limit_block_duration: int = 300
    auth_rate_limit_points: int = 20
    auth_rate_limit_duration: int = 900
    auth_rate_limit_block_duration: int = 600

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Recognized: PORT, HOST, LOG_LEVEL, DATA_FILE, UPLOAD_DIR, MAX_FILE_SIZE,
        MAX_FILES_PER_REQUEST, ALLOWED_FILE_TYPES, ALLOWED_ORIGINS, API_TOKEN.
        ALLOWED_ORIGINS extends the built-in localhost origins; ALLOWED_FILE_TYPES
        replaces the default extension list.
        """
        allowed_file_types = [
            ext.lower() for ext in _split_csv(os.getenv("ALLOWED_FILE_TYPES"))
        ] or list(DEFAULT_ALLOWED_FILE_TYPES)

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            data_file=Path(os.getenv("DATA_FILE", "incidents.json")),
            upload_dir=Path(os.getenv("UPLOAD_DIR", "uploads")),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * ONE_MIB))),
            max_files_per_request=int(os.getenv("MAX_FILES_PER_REQUEST", "5")),
            allowed_file_types=allowed_file_types,
            allowed_origins=DEFAULT_ALLOWED_ORIGINS
            + _split_csv(os.getenv("ALLOWED_ORIGINS")),
            api_token=os.getenv("API_TOKEN") or None,
        )

    @property
    def multipart_max_body_size(self) -> int:
        """Upper bound for a whole multipart request: every file plus form fields."""
        return self.max_file_size * self.max_files_per_request + ONE_MIB


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
