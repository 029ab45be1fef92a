"""Settings service for environment-driven configuration."""

import logging
import os
from typing import Any, Dict, Optional

from harborwatch.utils.security import sanitize_log_message

logger = logging.getLogger(__name__)

DEFAULT_COOLIFY_PATHS = ",".join(
    [
        "/var/lib/docker/volumes/coolify-db",
        "/var/lib/docker/volumes/coolify-redis",
        "/data/coolify",
    ]
)


class SettingsService:
    """Manage application settings read once from the environment."""

    # Default settings with descriptions
    DEFAULTS: Dict[str, Dict[str, Any]] = {
        # Collection
        "collection_interval": {
            "env": "HARBORWATCH_INTERVAL",
            "value": "1.0",
            "category": "collection",
            "description": "Seconds between collection ticks",
        },
        "history_size": {
            "env": "HARBORWATCH_HISTORY_SIZE",
            "value": "60",
            "category": "collection",
            "description": "Number of points kept per metric history",
        },
        "max_concurrent_inspections": {
            "env": "HARBORWATCH_MAX_INSPECTIONS",
            "value": "16",
            "category": "collection",
            "description": "Upper bound on containers inspected at the same time",
        },
        "container_names_file": {
            "env": "HARBORWATCH_CONTAINER_NAMES",
            "value": "container-names.json",
            "category": "collection",
            "description": "JSON file with container display name rewrite rules",
        },
        # Docker
        "docker_host": {
            "env": "DOCKER_HOST",
            "value": "unix:///var/run/docker.sock",
            "category": "docker",
            "description": "Docker socket path or DOCKER_HOST URL",
        },
        "docker_api_version": {
            "env": "HARBORWATCH_DOCKER_API_VERSION",
            "value": "1.41",
            "category": "docker",
            "description": "Docker Engine API version used for all calls",
        },
        "docker_timeout": {
            "env": "HARBORWATCH_DOCKER_TIMEOUT",
            "value": "5",
            "category": "docker",
            "description": "Connect/read timeout in seconds for Docker API calls",
        },
        # Host
        "disk_path": {
            "env": "HARBORWATCH_DISK_PATH",
            "value": "/",
            "category": "host",
            "description": "Filesystem path reported as host disk usage",
        },
        "coolify_paths": {
            "env": "HARBORWATCH_COOLIFY_PATHS",
            "value": DEFAULT_COOLIFY_PATHS,
            "category": "host",
            "description": "Comma-separated directories summed into Coolify disk usage",
        },
        "coolify_disk_interval": {
            "env": "HARBORWATCH_COOLIFY_DISK_INTERVAL",
            "value": "60",
            "category": "host",
            "description": "Seconds between Coolify directory size scans",
        },
        # Stream
        "push_interval": {
            "env": "HARBORWATCH_PUSH_INTERVAL",
            "value": "1.0",
            "category": "stream",
            "description": "Seconds between snapshot pushes to each stream client",
        },
        "allowed_origins": {
            "env": "ALLOWED_CORS_ORIGINS",
            "value": "localhost,127.0.0.1",
            "category": "stream",
            "description": "Comma-separated origins allowed to open the stream",
        },
        "static_dir": {
            "env": "HARBORWATCH_STATIC_DIR",
            "value": "./static",
            "category": "system",
            "description": "Directory with the built dashboard served at /",
        },
        "debug": {
            "env": "HARBORWATCH_DEBUG",
            "value": "false",
            "category": "system",
            "description": "Include exception details in 500 responses",
        },
    }

    _overrides: Dict[str, str] = {}

    @classmethod
    def get(cls, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get setting value by key.

        Lookup order is test override, environment, then the table default.

        Args:
            key: Setting key
            default: Value returned for keys missing from DEFAULTS

        Returns:
            Setting value or default
        """
        if key in cls._overrides:
            return cls._overrides[key]

        config = cls.DEFAULTS.get(key)
        if config is None:
            return default

        value = os.getenv(config["env"])
        if value is None or value.strip() == "":
            return config["value"]
        return value.strip()

    @classmethod
    def get_bool(cls, key: str, default: bool = False) -> bool:
        """Get setting as boolean."""
        value = cls.get(key)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    @classmethod
    def get_int(cls, key: str, default: int = 0) -> int:
        """Get setting as integer."""
        value = cls.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            fallback = cls._table_default(key, default)
            logger.warning(
                f"Invalid integer for setting '{key}': "
                f"{sanitize_log_message(value)}, using {fallback}"
            )
            return int(fallback)

    @classmethod
    def get_float(cls, key: str, default: float = 0.0) -> float:
        """Get setting as float."""
        value = cls.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            fallback = cls._table_default(key, default)
            logger.warning(
                f"Invalid number for setting '{key}': "
                f"{sanitize_log_message(value)}, using {fallback}"
            )
            return float(fallback)

    @classmethod
    def get_list(cls, key: str, default: Optional[list[str]] = None) -> list[str]:
        """Get a comma-separated setting as a list of stripped, non-empty items."""
        value = cls.get(key)
        if value is None:
            return list(default or [])
        return [item.strip() for item in value.split(",") if item.strip()]

    @classmethod
    def set(cls, key: str, value: str) -> None:
        """Override a setting for the lifetime of the process (used by tests)."""
        cls._overrides[key] = value

    @classmethod
    def reset(cls) -> None:
        """Drop all overrides."""
        cls._overrides.clear()

    @classmethod
    def get_all(cls, category: Optional[str] = None) -> Dict[str, Optional[str]]:
        """Get all effective settings, optionally filtered by category."""
        return {
            key: cls.get(key)
            for key, config in cls.DEFAULTS.items()
            if category is None or config["category"] == category
        }

    @classmethod
    def _table_default(cls, key: str, default: Any) -> Any:
        config = cls.DEFAULTS.get(key)
        return config["value"] if config else default
