"""Key store shapes, construction from raw config, and YAML file loading.

Two shapes are supported:
- map:  {"<api key>": <credentials>, ...}
- list: [{"<param name>": "<api key>"}, ...]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

import yaml

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised at registration time for malformed configuration."""


@dataclass(frozen=True)
class MapStore:
    entries: Mapping[str, Any] = field(default_factory=dict)

    shape = "map"

    def get(self, api_key: str) -> Any | None:
        """O(1) lookup by api key."""
        return self.entries.get(api_key)


@dataclass(frozen=True)
class ListStore:
    entries: tuple[tuple[str, str], ...]

    shape = "list"

    def keys_for(self, param_name: str) -> list[str]:
        """All keys paired with param_name, in configured order."""
        return [key for name, key in self.entries if name == param_name]


KeyStore = Union[MapStore, ListStore]


def build_key_store(raw: Any) -> KeyStore:
    """Turn a raw config value into a MapStore or ListStore. Raises ConfigError."""
    if isinstance(raw, (MapStore, ListStore)):
        return raw
    if raw is None:
        return MapStore({})
    if isinstance(raw, Mapping):
        bad = [k for k in raw if not isinstance(k, str)]
        if bad:
            raise ConfigError(f"Key store keys must be strings: {bad!r}")
        empty = sorted(k for k, v in raw.items() if v is None)
        if empty:
            raise ConfigError(f"Key store entries without credentials: {empty}")
        return MapStore(dict(raw))
    if isinstance(raw, (list, tuple)):
        # An empty list behaves like an empty map.
        if not raw:
            return MapStore({})
        return ListStore(tuple(_parse_list_entry(i, item) for i, item in enumerate(raw)))
    raise ConfigError(f"Unrecognized key store shape: {type(raw).__name__}")


def _parse_list_entry(index: int, item: Any) -> tuple[str, str]:
    if not isinstance(item, Mapping) or len(item) != 1:
        raise ConfigError(f"Key store entry {index} must be a single-entry mapping")
    ((name, key),) = item.items()
    if not isinstance(name, str) or not isinstance(key, str):
        raise ConfigError(f"Key store entry {index} must map a string name to a string key")
    return name, key


def load_key_store(path: Path) -> KeyStore:
    """Load a key store from a YAML file. Raises FileNotFoundError or ConfigError."""
    with open(path) as f:
        raw = yaml.safe_load(f)
    store = build_key_store(raw)
    log.info("Loaded %s key store with %d entries from %s", store.shape, len(store.entries), path)
    return store
