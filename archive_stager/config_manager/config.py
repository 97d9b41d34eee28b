"""Resolve uploader configuration from defaults, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from typing import Any

from archive_stager.config_manager.helpers import parse_bytes
from archive_stager.config_manager.upload_config import UploaderConfig

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "api_url": "ARCHIVE_STAGER_API_URL",
    "chunk_size": "ARCHIVE_STAGER_CHUNK_SIZE",
    "max_concurrency": "ARCHIVE_STAGER_MAX_CONCURRENCY",
    "part_max_retries": "ARCHIVE_STAGER_PART_MAX_RETRIES",
    "backend_max_attempts": "ARCHIVE_STAGER_BACKEND_MAX_ATTEMPTS",
    "retry_backoff_seconds": "ARCHIVE_STAGER_RETRY_BACKOFF_SECONDS",
    "request_timeout_seconds": "ARCHIVE_STAGER_REQUEST_TIMEOUT_SECONDS",
    "part_timeout_seconds": "ARCHIVE_STAGER_PART_TIMEOUT_SECONDS",
    "content_type": "ARCHIVE_STAGER_CONTENT_TYPE",
    "max_file_size": "ARCHIVE_STAGER_MAX_FILE_SIZE",
    "accepted_extensions": "ARCHIVE_STAGER_ACCEPTED_EXTENSIONS",
}

_BYTE_FIELDS = {"chunk_size", "max_file_size"}
_INT_FIELDS = {"max_concurrency", "part_max_retries", "backend_max_attempts"}
_FLOAT_FIELDS = {
    "retry_backoff_seconds",
    "request_timeout_seconds",
    "part_timeout_seconds",
}


class ConfigManager:
    """Build effective uploader configuration from env and CLI overrides."""

    def __init__(self, base_config: UploaderConfig | None = None) -> None:
        """Initialise ConfigManager.

        Args:
            base_config: Configuration to layer overrides on; defaults otherwise.
        """
        self.base_config = base_config or UploaderConfig()

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Values that cannot be parsed are skipped with a warning.

        Returns:
            A dictionary of configuration field names to override values.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            try:
                if field_name in _BYTE_FIELDS:
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name in _INT_FIELDS:
                    overrides[field_name] = int(env_value)
                elif field_name in _FLOAT_FIELDS:
                    overrides[field_name] = float(env_value)
                elif field_name == "accepted_extensions":
                    overrides[field_name] = [
                        ext.strip() for ext in env_value.split(",") if ext.strip()
                    ]
                else:
                    overrides[field_name] = env_value
            except ValueError:
                logger.warning(f"Ignoring invalid {env_var_name}={env_value!r}")

        return overrides

    def resolve_effective_config(
        self, cli_config: dict[str, Any] | None = None
    ) -> UploaderConfig:
        """Resolve the effective configuration for this run.

        Args:
            cli_config: Optional CLI-provided overrides. ``None`` values are
                treated as "not given".

        Returns:
            The resolved and validated ``UploaderConfig``.

        Raises:
            pydantic.ValidationError: If the merged values are out of range.
        """
        merged = self.base_config.model_dump()
        merged.update(self._read_env_overrides())

        if cli_config is not None:
            merged.update(
                {key: value for key, value in cli_config.items() if value is not None}
            )

        return UploaderConfig.model_validate(merged)
