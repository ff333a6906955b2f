"""
Config system - layered store configuration.

Sources, later overriding earlier:
1. Config files (YAML or JSON, glob patterns supported)
2. Environment variables (KEYREL_* prefix, ``__`` for nesting)
3. Manual overrides

Store settings live under the ``store`` section:

    # keyrel.yaml
    store:
      backend: redis
      redis_url: redis://localhost:6379/2
      key_prefix: ""

    KEYREL_STORE__BACKEND=memory   # overrides the file
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Optional

from .faults import ConfigInvalidFault
from .store import KVStore, MemoryStore, RedisStore

logger = logging.getLogger("keyrel.config")

BACKENDS = ("memory", "redis")


@dataclass
class StoreConfig:
    """
    Store configuration.

    Loaded from config files and the environment via
    ``ConfigLoader.get_store_config()``.
    """
    backend: str = "memory"          # "memory" or "redis"
    key_prefix: str = ""             # Prepended to every key; empty keeps the bare layout

    # Redis-specific
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0
    redis_socket_connect_timeout: float = 5.0
    redis_retry_on_timeout: bool = True

    # Observability
    log_level: str = "WARNING"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "backend": self.backend,
            "key_prefix": self.key_prefix,
            "redis_url": self.redis_url,
            "redis_max_connections": self.redis_max_connections,
            "redis_socket_timeout": self.redis_socket_timeout,
            "redis_socket_connect_timeout": self.redis_socket_connect_timeout,
            "redis_retry_on_timeout": self.redis_retry_on_timeout,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfig":
        """
        Build a validated config from a plain mapping.

        Raises:
            ConfigInvalidFault: unknown key, bad value or unknown backend
        """
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                raise ConfigInvalidFault(f"store.{key}", "unknown setting")
            values[key] = _coerce(key, value, type(getattr(cls, key)))

        config = cls(**values)
        config.backend = str(config.backend).lower()
        if config.backend not in BACKENDS:
            raise ConfigInvalidFault(
                "store.backend", f"unknown backend '{config.backend}' (expected one of {', '.join(BACKENDS)})"
            )
        config.log_level = str(config.log_level).upper()
        if not isinstance(logging.getLevelName(config.log_level), int):
            raise ConfigInvalidFault("store.log_level", f"unknown log level '{config.log_level}'")
        return config


def _coerce(key: str, value: Any, expected: type) -> Any:
    if isinstance(value, expected):
        return value
    try:
        if expected is bool:
            if isinstance(value, str) and value.lower() in ("true", "yes", "on", "1"):
                return True
            if isinstance(value, str) and value.lower() in ("false", "no", "off", "0"):
                return False
            raise ValueError(value)
        if expected is float and isinstance(value, int):
            return float(value)
        return expected(value)
    except (TypeError, ValueError):
        raise ConfigInvalidFault(
            f"store.{key}", f"expected {expected.__name__}, got {value!r}"
        ) from None


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > config files > defaults
    """

    def __init__(self, env_prefix: str = "KEYREL_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "KEYREL_",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        for path_str in sorted(glob(pattern)):
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                logger.warning(f"Ignoring config file with unknown format: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert KEYREL_STORE__REDIS_URL to {"store": {"redis_url": ...}}."""
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def get_store_config(self) -> StoreConfig:
        """Store configuration (``store`` section) merged over defaults."""
        section = self.get("store", {})
        if not isinstance(section, dict):
            raise ConfigInvalidFault("store", f"expected a mapping, got {type(section).__name__}")
        return StoreConfig.from_dict(section)

    def to_dict(self) -> Dict[str, Any]:
        return self.config_data


def create_store(config: Optional[StoreConfig] = None) -> KVStore:
    """
    Factory: create a store backend from configuration.

    Also applies ``config.log_level`` to the ``keyrel`` logger. The
    returned store still needs ``await store.initialize()``.
    """
    config = config or StoreConfig()
    logging.getLogger("keyrel").setLevel(str(config.log_level).upper())

    backend_type = config.backend.lower()

    if backend_type == "memory":
        store: KVStore = MemoryStore(key_prefix=config.key_prefix)
    elif backend_type == "redis":
        store = RedisStore(
            url=config.redis_url,
            max_connections=config.redis_max_connections,
            socket_timeout=config.redis_socket_timeout,
            connect_timeout=config.redis_socket_connect_timeout,
            retry_on_timeout=config.redis_retry_on_timeout,
            key_prefix=config.key_prefix,
        )
    else:
        raise ConfigInvalidFault(
            "store.backend", f"unknown backend '{config.backend}' (expected one of {', '.join(BACKENDS)})"
        )

    logger.debug(f"Created {store.name} store (prefix={config.key_prefix!r})")
    return store
