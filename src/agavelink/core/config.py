"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments (any caller supplied dict)
2. Environment variables (AGAVELINK_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from agavelink.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class ConfigSource:
    """Represents where a config value came from."""

    value: Any
    source: str  # 'cli' | 'env' | 'user_config' | 'system_config' | 'default'


def _flatten_keys(data: dict[str, Any], prefix: str = "") -> set[str]:
    keys: set[str] = set()
    for key, value in data.items():
        key_path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            keys.update(_flatten_keys(value, key_path))
        else:
            keys.add(key_path)
    return keys


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'agave': {'tenant_url': 'https://agave.example.org'}},
        )

        url, source = resolver.resolve('agave.tenant_url')
        # source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Explicit overrides (highest priority)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/agavelink/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/agavelink/config.yaml")
        self.defaults = defaults or self._default_config()

        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'agave.tenant_url')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        value = self._get_nested(self.cli_args, key)
        if value is not None:
            return value, "cli"

        value = self._from_env(key)
        if value is not None:
            return value, "env"

        value = self._get_nested(self._get_user_config(), key)
        if value is not None:
            return value, "user_config"

        value = self._get_nested(self._get_system_config(), key)
        if value is not None:
            return value, "system_config"

        value = self._get_nested(self.defaults, key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_optional(self, key: str, default: Any = None) -> Any:
        """Resolve a key, returning ``default`` when no source defines it."""
        try:
            value, _src = self.resolve(key)
        except ConfigError as e:
            if "not found in any source" in str(e):
                return default
            raise
        return value

    def resolve_str(self, key: str) -> str:
        """Resolve a non-empty string value."""
        value, _src = self.resolve(key)
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")
        if value.strip() == "":
            raise ConfigError(f"Config key '{key}' must not be empty")
        return value

    def resolve_bool(self, key: str, default: bool = False) -> bool:
        """Resolve a bool value; environment strings are normalized."""
        value = self.resolve_optional(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        s = str(value).strip().lower()
        if s in _TRUE_VALUES:
            return True
        if s in _FALSE_VALUES:
            return False
        raise ConfigError(f"Config key '{key}' must be a bool, got {value!r}")

    def resolve_logging_level(self) -> str:
        """Resolve and validate logging.level.

        Allowed values (after normalization):
            quiet | normal | verbose | debug

        Raises:
            ConfigError: If the resolved value is invalid.
        """
        key = "logging.level"
        value = self.resolve_optional(key)
        if value is None:
            return DEFAULT_LOGGING_LEVEL

        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")
        return norm

    def resolve_all(self) -> dict[str, ConfigSource]:
        """Resolve every key present in any file-backed source or the defaults."""
        all_keys: set[str] = set()
        all_keys.update(_flatten_keys(self.cli_args))
        all_keys.update(_flatten_keys(self._get_user_config()))
        all_keys.update(_flatten_keys(self._get_system_config()))
        all_keys.update(_flatten_keys(self.defaults))

        result: dict[str, ConfigSource] = {}
        for key in sorted(all_keys):
            try:
                value, source = self.resolve(key)
            except ConfigError:
                continue
            result[key] = ConfigSource(value=value, source=source)
        return result

    def _from_env(self, key: str) -> Any | None:
        """Environment variable format: AGAVELINK_KEY_NAME

        Example: AGAVELINK_AGAVE_TENANT_URL
        """
        env_key = f"AGAVELINK_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _get_user_config(self) -> dict[str, Any]:
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'agave': {'storage_node': 'x'}}
            _get_nested(data, 'agave.storage_node') -> 'x'
        """
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None
        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            "agave": {
                "tenant_url": "https://agave.designsafe-ci.org",
                "storage_node": "designsafe.storage.default",
                "client_name": "SimCenter_CWE_GUI",
                "client_description": "Client ID for SimCenter CWE GUI App",
            },
            "transport": {
                # No timeout: the transport decides when a call has failed.
                "timeout": None,
                "verify_tls": True,
            },
            "logging": {
                "level": "normal",
                "color": True,
            },
            "diagnostics": {
                "enabled": False,
                "dir": str(Path.home() / ".agavelink" / "diagnostics"),
            },
        }


@dataclass(frozen=True)
class AgaveSettings:
    """Deployment constants substituted into request templates."""

    tenant_url: str
    storage_node: str
    client_name: str
    client_description: str
    timeout: float | None = None
    verify_tls: bool = True

    @classmethod
    def from_resolver(cls, resolver: ConfigResolver) -> AgaveSettings:
        timeout = resolver.resolve_optional("transport.timeout")
        if timeout is not None:
            try:
                timeout = float(timeout)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Config key 'transport.timeout' must be a number: {timeout!r}") from e

        return cls(
            tenant_url=resolver.resolve_str("agave.tenant_url").rstrip("/"),
            storage_node=resolver.resolve_str("agave.storage_node"),
            client_name=resolver.resolve_str("agave.client_name"),
            client_description=resolver.resolve_str("agave.client_description"),
            timeout=timeout,
            verify_tls=resolver.resolve_bool("transport.verify_tls", default=True),
        )
