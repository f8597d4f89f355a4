"""Configuration management for CLI."""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


class Config:
    """Manages CLI configuration from file and environment variables."""

    DEFAULT_CONFIG_DIR = Path.home() / ".fire-incidents"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
    DEFAULT_API_URL = "http://localhost:3001"

    # Environment variable mappings
    ENV_VARS = {
        "api_url": "FIRE_INCIDENTS_API_URL",
        "api_token": "FIRE_INCIDENTS_API_TOKEN",
    }

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file (defaults to ~/.fire-incidents/config.yaml)
        """
        self.config_file = config_file or self.DEFAULT_CONFIG_FILE
        self._config: Dict[str, Any] = {}
        self._load()

    @staticmethod
    def normalize_key(key: str) -> str:
        """Accept both ``api-url`` and ``api_url`` spellings."""
        return key.strip().lower().replace("-", "_")

    def _load(self):
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r") as f:
                    data = yaml.safe_load(f) or {}
            except Exception as e:
                raise ConfigError(f"Failed to load config from {self.config_file}: {e}")
            if not isinstance(data, dict):
                raise ConfigError(
                    f"Invalid config in {self.config_file}: expected a mapping"
                )
            self._config = data
        else:
            self._config = {}

    def _save(self):
        """Save configuration to file."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False)

            # Owner read/write only, the file holds the API token
            self.config_file.chmod(0o600)

        except Exception as e:
            raise ConfigError(f"Failed to save config to {self.config_file}: {e}")

    def _from_env(self, key: str) -> Optional[str]:
        env_var = self.ENV_VARS.get(key)
        return (os.environ.get(env_var) or None) if env_var else None

    def get(self, key: str) -> Optional[str]:
        """
        Look up one setting, preferring its FIRE_INCIDENTS_* environment variable.

        Returns None when neither the environment nor the file provides it.
        """
        key = self.normalize_key(key)
        return self._from_env(key) or self._config.get(key)

    def set(self, key: str, value: str):
        """
        Store a known setting in the config file.

        Raises:
            ConfigError: If the key is not a known setting
        """
        key = self.normalize_key(key)
        if key not in self.ENV_VARS:
            raise ConfigError(
                f"Unknown configuration key '{key}'. Valid keys: {', '.join(self.ENV_VARS)}"
            )
        self._config[key] = value
        self._save()

    def get_all(self) -> Dict[str, Any]:
        """Effective settings: file values with environment overrides applied."""
        overrides = {key: self._from_env(key) for key in self.ENV_VARS}
        return {
            **self._config,
            **{key: value for key, value in overrides.items() if value},
        }

    def delete(self, key: str):
        """Remove a setting from the config file; unknown or unset keys are ignored."""
        if self._config.pop(self.normalize_key(key), None) is not None:
            self._save()

    def api_url(self, override: Optional[str] = None) -> str:
        return override or self.get("api_url") or self.DEFAULT_API_URL

    def api_token(self, override: Optional[str] = None) -> Optional[str]:
        return override or self.get("api_token")
