"""Resolve client configuration from profile, environment, and CLI overrides."""

from __future__ import annotations

import logging
import os
from typing import Any

from b2client.core.config.client_config import ClientConfig
from b2client.core.config.helpers import parse_bytes
from b2client.core.config.profiles import ProfileManager

logger = logging.getLogger(__name__)

_ENV_MAP: dict[str, str] = {
    "application_key_id": "B2_APPLICATION_KEY_ID",
    "application_key": "B2_APPLICATION_KEY",
    "api_url": "B2_API_URL",
    "request_timeout": "B2_REQUEST_TIMEOUT",
    "upload_threads": "B2_UPLOAD_THREADS",
    "part_size": "B2_PART_SIZE",
}


class ConfigManager:
    """Build effective client configuration from profile, env, and CLI overrides."""

    def __init__(
        self, profile_manager: ProfileManager, profile: str | None = None
    ) -> None:
        """Initialise ConfigManager.

        Args:
            profile_manager: ProfileManager instance
            profile: Name of the profile to load as the base configuration.
        """
        self.profile_manager = profile_manager
        self.profile = profile

    def _read_env_overrides(self) -> dict[str, Any]:
        """Read configuration overrides from environment variables.

        Values that cannot be parsed are skipped with a warning.
        """
        overrides: dict[str, Any] = {}

        for field_name, env_var_name in _ENV_MAP.items():
            env_value = os.getenv(env_var_name)
            if env_value is None:
                continue

            try:
                if field_name == "part_size":
                    overrides[field_name] = parse_bytes(env_value)
                elif field_name == "upload_threads":
                    overrides[field_name] = int(env_value)
                elif field_name == "request_timeout":
                    overrides[field_name] = float(env_value)
                else:
                    overrides[field_name] = env_value
            except ValueError:
                logger.warning("Ignoring invalid value for %s", env_var_name)

        return overrides

    def resolve_effective_config(
        self, cli_config: dict[str, Any] | None = None
    ) -> ClientConfig:
        """Resolve the effective client configuration for this run.

        Args:
            cli_config: Optional CLI-provided overrides. ``None`` values are
                ignored.

        Returns:
            The resolved ``ClientConfig``.
        """
        base_config = self.profile_manager.get_profile(self.profile)

        merged_config = base_config.model_copy(update=self._read_env_overrides())

        if cli_config is not None:
            cli_overrides = {k: v for k, v in cli_config.items() if v is not None}
            merged_config = merged_config.model_copy(update=cli_overrides)

        return merged_config
