"""
Manages loading, validation, and creation of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from songbridge.exceptions import ConfigurationError
from songbridge.models.config import RelayConfig

log = logging.getLogger(__name__)

_INT_KEYS = {"port", "retry_limit", "retry_delay_ms", "max_redirects", "chunk_size", "max_workers"}
_FLOAT_KEYS = {"request_timeout", "download_timeout"}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(self, cli_options: dict[str, Any] | None = None) -> RelayConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: the service runs on model defaults.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated RelayConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        # Override with CLI options
        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            return RelayConfig(**config_from_file)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a complete configuration file.

        Args:
            settings: Values to write instead of the model defaults.
        """
        settings = settings or {}
        try:
            config = RelayConfig(**settings)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        parser = configparser.ConfigParser()
        parser["DEFAULT"] = {
            key: str(getattr(config, key)) for key in RelayConfig.get_ini_keys()
        }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                parser.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the known keys of the 'DEFAULT' section into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        try:
            for key in RelayConfig.get_ini_keys():
                if key not in section:
                    continue
                if key in _INT_KEYS:
                    values[key] = section.getint(key)
                elif key in _FLOAT_KEYS:
                    values[key] = section.getfloat(key)
                else:
                    values[key] = section.get(key)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

        unknown = set(section) - set(values) - set(RelayConfig.get_ini_keys())
        for key in sorted(unknown):
            log.warning(f"[yellow]Ignoring unknown configuration key '{key}'.[/yellow]")
        return values
