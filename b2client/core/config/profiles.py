"""API for handling client profile information."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from b2client.core.config.client_config import ClientConfig
from b2client.core.config.helpers import parse_bytes


class ProfileNotFound(Exception):
    """Raised when a requested profile cannot be found on disk."""


class ProfileAlreadyExist(Exception):
    """Raised when attempting to create a profile that already exists."""


class ProfileManager:
    """Manage client profiles stored on disk."""

    def __init__(
        self,
        home_path: Path | None = None,
    ) -> None:
        """Initialise ProfileManager."""
        self._home_path = home_path or Path.home()

    def _profiles_dir(self) -> Path:
        return self._home_path / ".b2client" / "profiles"

    def _get_profile_path(self, profile: str) -> Path:
        profiles_dir = self._profiles_dir()
        profiles_dir.mkdir(parents=True, exist_ok=True)
        return profiles_dir / f"{profile}.yaml"

    def list_profiles(self) -> list[str]:
        """List available profile names.

        Returns:
            List of profile names without the ``.yaml`` suffix.
        """
        profiles_dir = self._profiles_dir()
        if not profiles_dir.exists():
            return []
        return sorted(
            path.stem
            for path in profiles_dir.iterdir()
            if path.is_file() and path.suffix == ".yaml"
        )

    def get_profile(self, profile: str | None = None) -> ClientConfig:
        """Load a profile configuration from disk.

        Args:
            profile: Name of the profile to load. ``None`` returns an empty
                configuration.

        Returns:
            Parsed client configuration for the profile.

        Raises:
            ProfileNotFound: If the profile YAML file does not exist.
        """
        if profile is None:
            return ClientConfig()

        profile_path = self._get_profile_path(profile)

        try:
            with profile_path.open("r") as profile_file:
                profile_data = yaml.safe_load(profile_file) or {}
        except FileNotFoundError as exc:
            raise ProfileNotFound(f"Profile {profile!r} not found.") from exc

        raw_part_size = profile_data.get("part_size")
        if raw_part_size is not None:
            profile_data["part_size"] = parse_bytes(raw_part_size)

        return ClientConfig(**profile_data)

    def create_profile(self, profile: str, config: ClientConfig | None = None) -> None:
        """Create a new profile.

        Args:
            profile: Name of the profile to create.
            config: Initial values. Defaults to an empty configuration.

        Raises:
            ProfileAlreadyExist: If a profile with the same name already exists.
        """
        profile_path = self._get_profile_path(profile)
        client_config = config or ClientConfig()

        try:
            with profile_path.open("x") as profile_file:
                yaml.safe_dump(client_config.model_dump(), profile_file)
        except FileExistsError as exc:
            raise ProfileAlreadyExist(f"Profile {profile!r} already exists.") from exc

    def update_profile(self, profile: str, updates: dict[str, Any]) -> ClientConfig:
        """Update an existing profile with the provided field values.

        Fields with a value of ``None`` are ignored and do not overwrite
        existing values.

        Raises:
            ProfileNotFound: If the profile YAML file does not exist.
        """
        current = self.get_profile(profile)
        filtered_updates = {
            name: value for name, value in updates.items() if value is not None
        }
        new_config = current.model_copy(update=filtered_updates)

        with self._get_profile_path(profile).open("w") as profile_file:
            yaml.safe_dump(new_config.model_dump(), profile_file)

        return new_config
