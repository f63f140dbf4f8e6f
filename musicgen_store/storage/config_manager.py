"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from musicgen_store.exceptions import ConfigurationError
from musicgen_store.models.config import DEFAULT_RETENTION_LADDER, StoreConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def default_settings(self) -> dict[str, Any]:
        """Defaults for a config file that lives next to its data directory."""
        fields = StoreConfig.model_fields
        return {
            "data_dir": str(self.config_file_path.parent / "data"),
            "database_name": fields["database_name"].default,
            "flat_quota_kb": fields["flat_quota_kb"].default,
            "retention_ladder": list(DEFAULT_RETENTION_LADDER),
            "legacy_key": fields["legacy_key"].default,
            "persist_flat_history": fields["persist_flat_history"].default,
            "api_base_url": fields["api_base_url"].default,
            "default_mime_type": fields["default_mime_type"].default,
        }

    def load_config(self, cli_options: dict[str, Any] | None = None) -> StoreConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing config file is not an error; defaults are used instead.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated StoreConfig object.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_values = self._get_config_as_dict()
        else:
            log.debug(f"No config file at '{self.config_file_path}', using defaults.")
            config_values = self.default_settings()

        # Override with CLI options
        if cli_options:
            config_values.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return StoreConfig(
                **config_values, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (list, tuple)):
            return ",".join(map(str, value))
        return str(value)

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = self.default_settings()
        for key in sorted(StoreConfig.get_ini_keys()):
            # Use provided settings first, then fall back to defaults
            value = settings.get(key, defaults.get(key))
            if value is not None:
                config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = self.default_settings()
        try:
            ladder = [
                int(n.strip())
                for n in section.get("retention_ladder", "").split(",")
                if n.strip()
            ] or defaults["retention_ladder"]
            return {
                "data_dir": section.get("data_dir", defaults["data_dir"]),
                "database_name": section.get(
                    "database_name", defaults["database_name"]
                ),
                "flat_quota_kb": section.getint(
                    "flat_quota_kb", defaults["flat_quota_kb"]
                ),
                "retention_ladder": ladder,
                "legacy_key": section.get("legacy_key", defaults["legacy_key"]),
                "persist_flat_history": section.getboolean(
                    "persist_flat_history", False
                ),
                "api_base_url": section.get("api_base_url", ""),
                "default_mime_type": section.get(
                    "default_mime_type", defaults["default_mime_type"]
                ),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = self.default_settings()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(StoreConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(defaults[key])
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
