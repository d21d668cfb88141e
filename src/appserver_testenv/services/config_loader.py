"""Configuration loader for appserver-testenv."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from appserver_testenv.errors import ConfigError
from appserver_testenv.models import Settings

DEFAULT_CONFIG_FILE = ".testenv.yml"


class ConfigLoader:
    """Loads YAML configuration files and resolves them into settings."""

    SUPPORTED_KEYS = {
        "registry_file",
        "resource_dirs",
        "dependencies",
        "pom_file",
        "maven_local_repository",
        "maven_remote_repository",
        "allow_insecure_http",
        "appserver_startup_timeout",
        "db_ready_retries",
        "command_timeout",
        "manifest_file",
        "keep_containers",
        "verbose",
        "log_file",
    }
    LIST_KEYS = {"resource_dirs", "dependencies"}

    def default_config_path(self, cwd: Optional[str] = None) -> Optional[str]:
        candidate = os.path.join(cwd or os.getcwd(), DEFAULT_CONFIG_FILE)
        if os.path.exists(candidate):
            return candidate
        return None

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigError(f"Unknown configuration keys: {unknown_list}")

        for key in self.LIST_KEYS & set(parsed):
            if not isinstance(parsed[key], list) or not all(isinstance(item, str) for item in parsed[key]):
                raise ConfigError(f"Configuration key '{key}' must be a list of strings.")

        return parsed

    def build_settings(self, config_values: Dict[str, Any], **overrides: Any) -> Settings:
        """Builds settings, preferring non-None overrides over config values."""
        values = dict(config_values)
        values.update({key: value for key, value in overrides.items() if value is not None})

        for key in self.LIST_KEYS & set(values):
            values[key] = tuple(values[key])

        try:
            return Settings(**values)
        except TypeError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc
