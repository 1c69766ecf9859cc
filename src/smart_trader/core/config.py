"""Configuration management for the smart trader.

Settings come from ``settings.yaml`` in the config directory, deep-merged
with an optional uncommitted ``settings.local.yaml``. ``${VAR:default}``
references are resolved against the environment after ``.env`` is loaded.
"""

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

_ENV_REF = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")
_CONFIG_DIR_ENV = "SMART_TRADER_CONFIG_DIR"
_SETTINGS_FILE = "settings.yaml"
_LOCAL_SETTINGS_FILE = "settings.local.yaml"


class ConfigError(Exception):
    """Raise when configuration loading or validation fails."""


class ConfigLoader:
    """Load and manage configuration from YAML files with environment variable substitution."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config loader.

        Load environment variables from a ``.env`` file (if present) and
        then read YAML configuration from the given directory.

        Args:
            config_dir: Directory containing config files. Defaults to
                ``$SMART_TRADER_CONFIG_DIR``, then the bundled
                ``smart_trader/config`` directory.

        """
        load_dotenv()
        if config_dir is None:
            env_dir = os.getenv(_CONFIG_DIR_ENV)
            config_dir = Path(env_dir) if env_dir else Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Read the base settings, merge local overrides, then substitute env vars."""
        self._config = _read_yaml(self.config_dir / _SETTINGS_FILE)
        # Operator overrides, never committed
        self._deep_merge(self._config, _read_yaml(self.config_dir / _LOCAL_SETTINGS_FILE))
        self._config = self._substitute_env_vars(self._config)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> None:
        """Deep merge override dict into base dict.

        Args:
            base: Base dictionary to merge into (modified in place).
            override: Dictionary with values to override.

        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], cast("dict[str, Any]", value))
            else:
                base[key] = value

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in config.

        Supports format: ${VAR_NAME:default_value} or ${VAR_NAME}. A reference
        embedded in a longer string (``sqlite+aiosqlite:///${DATA_DIR:.}/x.db``)
        is substituted in place.

        Args:
            config: Configuration value (dict, list, or str).

        Returns:
            Configuration with environment variables substituted.

        Raises:
            ConfigError: If a referenced variable is unset and has no default.

        """
        if isinstance(config, dict):
            return {
                k: self._substitute_env_vars(v)
                for k, v in config.items()  # pyright: ignore[reportUnknownVariableType]
            }
        if isinstance(config, list):
            return [
                self._substitute_env_vars(item)
                for item in config  # pyright: ignore[reportUnknownVariableType]
            ]
        if isinstance(config, str) and "${" in config:
            return _ENV_REF.sub(self._resolve_reference, config)
        return config

    @staticmethod
    def _resolve_reference(match: re.Match[str]) -> str:
        """Return the environment value for one ``${VAR:default}`` match.

        Args:
            match: Regex match with the variable name and optional default.

        Returns:
            The environment value, or the default when unset.

        Raises:
            ConfigError: If the variable is unset and has no default.

        """
        var_name, default = match.group(1), match.group(2)
        value = os.getenv(var_name, default)
        if value is None:
            msg = f"Required environment variable ${{{var_name}}} is not set and has no default"
            raise ConfigError(msg)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g., 'pool.max_expiry_hours').
            default: Default value if key not found.

        Returns:
            Configuration value.

        """
        keys = key.split(".")
        current: Any = self._config
        for k in keys:
            if isinstance(current, dict):
                current = cast("dict[str, Any]", current).get(k)
                if current is None:
                    return default
            else:
                return default
        return current  # pyright: ignore[reportReturnType]

    def get_section(self, name: str) -> dict[str, Any]:
        """Get a top-level configuration section as a dictionary.

        Args:
            name: Section name (e.g. ``"kelly"``).

        Returns:
            The section dictionary, empty when the section is absent.

        Raises:
            ConfigError: If the section exists but is not a dictionary.

        """
        result: Any = self.get(name, {})
        if isinstance(result, dict):
            return cast("dict[str, Any]", result)
        msg = f"{name} config must be a dict, got {type(result).__name__}"
        raise ConfigError(msg)


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the global ``ConfigLoader`` singleton, creating it on first use.

    Lazy initialisation avoids side effects (file I/O, ``load_dotenv``)
    at import time and makes testing easier.

    Returns:
        The shared ``ConfigLoader`` instance.

    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config


def _read_yaml(path: Path) -> dict[str, Any]:
    """Load one YAML settings file.

    Args:
        path: File to read.

    Returns:
        The top-level mapping, empty when the file is missing or blank.

    Raises:
        ConfigError: If the file does not parse or its root is not a mapping.

    """
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            loaded: Any = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"Cannot parse {path.name}: {exc}"
        raise ConfigError(msg) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        msg = f"{path.name} must contain a mapping, got {type(loaded).__name__}"
        raise ConfigError(msg)
    return cast("dict[str, Any]", loaded)
