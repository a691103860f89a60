"""YAML + environment variable configuration loading, and scheme options.

Config file: config/keygate.yaml
Env var override prefix: KEYGATE_
Nesting convention: double underscore (e.g. KEYGATE_SERVER__PORT)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from keygate.keystore import ConfigError, KeyStore, MapStore, build_key_store, load_key_store

__all__ = ["ConfigError", "SchemeConfig", "build_scheme_config", "load_config"]

_DEFAULT_CONFIG_PATH = Path("config/keygate.yaml")

_DEFAULTS: dict[str, Any] = {
    "server": {
        "port": 8081,
    },
    "plugin": {
        "scheme_name": "api-key",
    },
    "strategy": None,
    "logging": {
        "level": "INFO",
    },
}

ENV_PREFIX = "KEYGATE_"


@dataclass(frozen=True)
class SchemeConfig:
    query_param_name: str = "token"
    header_param_name: str = "x-api-key"
    key_store: KeyStore = field(default_factory=MapStore)


_SCHEME_OPTIONS = {"query_param_name", "header_param_name", "key_store", "key_store_path"}


def build_scheme_config(options: Mapping[str, Any] | None = None) -> SchemeConfig:
    """Merge caller options over the scheme defaults. Raises ConfigError.

    ``key_store_path`` names a YAML file holding the key store; it cannot be
    combined with an inline ``key_store``.
    """
    options = dict(options or {})
    unknown = set(options) - _SCHEME_OPTIONS
    if unknown:
        raise ConfigError(f"Unknown scheme options: {sorted(unknown)}")

    path = options.pop("key_store_path", None)
    if path is not None:
        if options.get("key_store") is not None:
            raise ConfigError("key_store and key_store_path are mutually exclusive")
        options["key_store"] = load_key_store(Path(path))

    for name in ("query_param_name", "header_param_name"):
        if name in options and (not isinstance(options[name], str) or not options[name]):
            raise ConfigError(f"{name} must be a non-empty string")

    options["key_store"] = build_key_store(options.get("key_store"))
    return SchemeConfig(**options)


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base, recursively for nested dicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_value(value: str) -> int | float | bool | str:
    """Attempt to coerce a string env var value to a typed value."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _apply_env_overrides(config: dict) -> dict:
    """Apply KEYGATE_ prefixed environment variables as overrides.

    Double underscore separates nesting levels:
        KEYGATE_STRATEGY__MODE=try -> config["strategy"]["mode"] = "try"
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX) :].lower().split("__")
        target = config
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = _coerce_value(value)
    return config


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from YAML file with env var overrides.

    Precedence (highest wins): env vars > YAML file > defaults.
    """
    config = {k: v.copy() if isinstance(v, dict) else v for k, v in _DEFAULTS.items()}

    path = config_path or _DEFAULT_CONFIG_PATH
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        config = _deep_merge(config, file_config)

    config = _apply_env_overrides(config)
    return config
