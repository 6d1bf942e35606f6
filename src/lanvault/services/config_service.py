"""Configuration service for managing LanVault configuration.

This module provides the ConfigService class, which is the single source of truth
for configuration management. It handles:

- Loading and saving config.json
- Dot-path access to individual settings (``sync.port``)
- Resolving the vault database and sync state locations
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir
from pydantic import BaseModel, ValidationError

from lanvault.models.config_models import AppConfig

APP_NAME = "lanvault"
CONFIG_DIR_ENV = "LANVAULT_CONFIG_DIR"

logger = logging.getLogger(__name__)


class ConfigService:
    """Service for managing application configuration.

    The config directory can be redirected with ``LANVAULT_CONFIG_DIR``; in that
    case the vault database also lives there unless ``vault.path`` is set.
    """

    def __init__(self, config_dir: Path | None = None):
        """Initialize the config service."""
        override = config_dir or os.environ.get(CONFIG_DIR_ENV)
        if override:
            self.config_dir = Path(override)
            self.data_dir = self.config_dir
        else:
            self.config_dir = Path(user_config_dir(APP_NAME))
            self.data_dir = Path(user_data_dir(APP_NAME))
        self.config_path = self.config_dir / "config.json"

        # Ensure directories exist
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        """Get or load the current configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    @property
    def vault_path(self) -> Path:
        """Location of the vault database."""
        if self.config.vault.path:
            return Path(self.config.vault.path).expanduser()
        return self.data_dir / "vault.db"

    @property
    def sync_state_path(self) -> Path:
        return self.config_dir / "sync_state.json"

    def load_config(self) -> AppConfig:
        """Load configuration from storage."""
        if self._config is not None:
            return self._config

        try:
            with open(self.config_path, encoding="utf-8") as f:
                self._config = AppConfig.model_validate_json(f.read())
        except FileNotFoundError:
            # First run: persist defaults so the generated device id is stable
            self._config = AppConfig()
            self.save_config()
        except ValidationError as e:
            raise RuntimeError(f"Failed to load config: {e}") from e

        return self._config

    def save_config(self) -> None:
        """Save the current configuration to storage."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                f.write(self.config.model_dump_json(indent=4))

            # Set file permissions
            self.config_path.chmod(0o600)
        except OSError as e:
            raise RuntimeError(f"Failed to save config: {e}") from e

    def get(self, key: str) -> Any:
        """Get a configuration value by dot-separated key.

        Raises:
            KeyError: If the key does not name a setting
        """
        return _lookup(self.config, key)

    def set(self, key: str, value: Any) -> Any:
        """Set a configuration value by dot-separated key.

        The value is validated (and coerced, e.g. ``"8080"`` to ``8080``) by the
        config model before it is saved.

        Returns:
            The stored value after coercion
        """
        _lookup(self.config, key)
        keys = key.split(".")
        config_dict = self.config.model_dump()

        current = config_dict
        for k in keys[:-1]:
            current = current[k]
        current[keys[-1]] = value

        try:
            self._config = AppConfig.model_validate(config_dict)
        except ValidationError as e:
            raise ValueError(f"Invalid value for '{key}': {e.errors()[0]['msg']}") from e
        self.save_config()
        logger.info("config updated: %s", key)
        return self.get(key)

    def reset(self, key: str | None = None) -> None:
        """Reset one key, or the whole configuration, to defaults."""
        if key is None:
            self._config = AppConfig()
        else:
            self.set(key, _lookup(AppConfig(), key))
        self.save_config()


def _lookup(config: BaseModel, key: str) -> Any:
    value: Any = config
    for k in key.split("."):
        if not isinstance(value, BaseModel) or k not in type(value).model_fields:
            raise KeyError(key)
        value = getattr(value, k)
    return value


@lru_cache(maxsize=1)
def get_config_service() -> ConfigService:
    """Get a cached ConfigService instance."""
    config_service = ConfigService()
    config_service.load_config()
    return config_service
