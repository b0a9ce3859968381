"""
Configuration loader for gardensync.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from ..core.exceptions import ConfigError


logger = logging.getLogger(__name__)


ENV_PREFIX = "GARDENSYNC_"

# Environment variable -> (dotted config key, type)
ENV_OVERRIDES = {
    "GARDENSYNC_DB_PATH": ("storage.db_path", str),
    "GARDENSYNC_PHOTOS_DIR": ("storage.photos_dir", str),
    "GARDENSYNC_MEDIA_LIBRARY_DIR": ("storage.media_library_dir", str),
    "GARDENSYNC_WRITABLE_FILESYSTEM": ("storage.writable_filesystem", bool),
    "GARDENSYNC_QUEUE_CAPACITY": ("local_store.capacity", int),
    "GARDENSYNC_PROJECT_ID": ("remote.project_id", str),
    "GARDENSYNC_API_BASE": ("remote.api_base", str),
    "GARDENSYNC_USER_ID": ("remote.user_id", str),
    "GARDENSYNC_REMOTE_TIMEOUT_MS": ("remote.timeout_ms", int),
    "GARDENSYNC_REMOTE_MAX_RETRIES": ("remote.max_retries", int),
    "GARDENSYNC_EXPORT_DIR": ("backup.export_dir", str),
    "GARDENSYNC_BACKUP_FORMAT": ("backup.format", str),
    "GARDENSYNC_ENCRYPT": ("backup.encrypt", bool),
    "GARDENSYNC_LOG_LEVEL": ("logging.level", str),
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class SyncConfig:
    """
    Configuration for gardensync.

    Loads a YAML configuration file (or built-in defaults), then applies
    ``GARDENSYNC_*`` environment overrides. A ``.env`` file in the working
    directory is loaded first when present.
    """

    def __init__(self, config_path: Optional[Path] = None, load_env_file: bool = True):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
            load_env_file: Whether to read a .env file before applying overrides
        """
        self.config_path = Path(config_path) if config_path else None
        if load_env_file:
            load_dotenv()
        self.config = self._default_config()
        if self.config_path:
            _deep_update(self.config, self._load_config())
        self._apply_env_overrides()
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Config root must be a mapping: {self.config_path}")
        return config or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        data_dir = os.environ.get("GARDENSYNC_DATA_DIR", str(Path.home() / ".gardensync"))
        return {
            "storage": {
                "db_path": str(Path(data_dir) / "garden.db"),
                "photos_dir": str(Path(data_dir) / "photos"),
                # Empty = no persistent media library on this device
                "media_library_dir": "",
                "album_name": "GardenPlanner",
                "media_permission": True,
                "writable_filesystem": True,
            },
            "local_store": {
                "capacity": 100,
                "max_retries": 2,
                "retry_delay_ms": 100,
            },
            "remote": {
                "project_id": "",
                "user_id": "",
                "token_env_var": "GARDENSYNC_ID_TOKEN",
                "api_base": "https://firestore.googleapis.com/v1",
                "timeout_ms": 15000,
                "max_retries": 2,
                "base_delay_ms": 1000,
                "batch_limit": 450,
                "page_size": 50,
            },
            "backup": {
                "export_dir": str(Path(data_dir) / "exports"),
                "format": "zip",
                "compression_level": 6,
                "encrypt": False,
                "key_env_var": "GARDENSYNC_BACKUP_KEY",
            },
            "logging": {
                "level": "INFO",
                "structured": False,
                "ring_buffer_size": 500,
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, (dotted, kind) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            if kind is bool:
                value = _parse_bool(raw)
            elif kind is int:
                try:
                    value = int(raw)
                except ValueError:
                    raise ConfigError(f"{env_name} must be an integer, got {raw!r}")
            else:
                value = raw
            self.set(dotted, value)
            logger.debug(f"Config override from {env_name}: {dotted}")

    def _validate(self) -> None:
        if self.get("backup.format") not in ("zip", "json"):
            raise ConfigError(f"backup.format must be 'zip' or 'json', got {self.get('backup.format')!r}")
        if int(self.get("local_store.capacity", 0)) < 1:
            raise ConfigError("local_store.capacity must be at least 1")
        limit = int(self.get("remote.batch_limit", 0))
        if limit < 1 or limit > 500:
            raise ConfigError("remote.batch_limit must be between 1 and 500")

    def get_storage_config(self) -> Dict[str, Any]:
        """Get storage configuration."""
        return self.config.get("storage", {})

    def get_local_store_config(self) -> Dict[str, Any]:
        """Get serialized local store configuration."""
        return self.config.get("local_store", {})

    def get_remote_config(self) -> Dict[str, Any]:
        """Get remote store configuration."""
        return self.config.get("remote", {})

    def get_backup_config(self) -> Dict[str, Any]:
        """Get backup configuration."""
        return self.config.get("backup", {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config.get("logging", {})

    def get_backup_key(self) -> Optional[bytes]:
        """Read the archive encryption key from the configured environment variable."""
        key = os.environ.get(self.get("backup.key_env_var", "GARDENSYNC_BACKUP_KEY"))
        return key.encode("utf-8") if key else None

    def get_remote_token(self) -> Optional[str]:
        """Read the remote credential from the configured environment variable."""
        return os.environ.get(self.get("remote.token_env_var", "GARDENSYNC_ID_TOKEN")) or None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by dotted key."""
        keys = key.split(".")
        node = self.config
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)


def _deep_update(target: Dict[str, Any], updates: Dict[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
