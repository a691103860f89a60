"""API key location and credential resolution.

Two phases per request:
1. locate:  find the candidate key. The query parameter wins whenever it is
   present (even empty); the header is only consulted otherwise.
2. resolve: look the candidate up in the key store.

Header keys always resolve through the value the request actually sent, for
both store shapes.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any, Mapping

from keygate.config import SchemeConfig
from keygate.keystore import KeyStore, ListStore


class ApiKeyError(Exception):
    """Request-time authentication failure. Always maps to HTTP 401."""

    status = 401
    reason = "unauthorized"

    def __init__(self, reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class MissingKeyError(ApiKeyError):
    reason = "missing API key"


class InvalidKeyError(ApiKeyError):
    reason = "invalid API key"


@dataclass(frozen=True)
class LocatedKey:
    source_param_name: str
    raw_value: str | None
    store_shape: str
    source: str


def locate(
    config: SchemeConfig, query: Mapping[str, str], headers: Mapping[str, str]
) -> LocatedKey | None:
    """Find the candidate key in the query string, then in the headers."""
    store_shape = config.key_store.shape

    if config.query_param_name in query:
        return LocatedKey(
            config.query_param_name, query[config.query_param_name], store_shape, "query"
        )

    if config.header_param_name in headers:
        return LocatedKey(
            config.header_param_name, headers[config.header_param_name], store_shape, "header"
        )

    return None


def resolve(key_store: KeyStore, located: LocatedKey) -> Any | None:
    """Return the credentials for a located key, or None."""
    if located.raw_value is None:
        return None

    if isinstance(key_store, ListStore):
        candidate = located.raw_value.encode(errors="surrogatepass")
        for key in key_store.keys_for(located.source_param_name):
            if hmac.compare_digest(key.encode(errors="surrogatepass"), candidate):
                return key
        return None

    return key_store.get(located.raw_value)


def authenticate(
    config: SchemeConfig, query: Mapping[str, str], headers: Mapping[str, str]
) -> Any:
    """Locate then resolve. Raises MissingKeyError or InvalidKeyError."""
    located = locate(config, query, headers)
    if located is None:
        raise MissingKeyError()
    credentials = resolve(config.key_store, located)
    if credentials is None:
        raise InvalidKeyError()
    return credentials
