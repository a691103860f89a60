"""aiohttp integration: scheme setup, strategy registration, auth middleware.

Usage:
    app = web.Application()
    setup(app, strategy={"name": "api-key", "mode": True, "key_store": {...}})

A strategy registered with a mode becomes the default for every route.
Routes can pick another strategy with @auth_strategy or opt out with @no_auth.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from aiohttp import web

from keygate.auth import ApiKeyError, MissingKeyError, authenticate
from keygate.config import ConfigError, SchemeConfig, build_scheme_config

log = logging.getLogger(__name__)

PLUGIN_KEY = "keygate"
MODES = ("required", "optional", "try")

_PLUGIN_DEFAULTS: dict[str, Any] = {
    "scheme_name": "api-key",
}

_STRATEGY_ATTR = "__keygate_strategy__"
_EXEMPT_ATTR = "__keygate_exempt__"


@dataclass
class AuthInfo:
    is_authenticated: bool
    strategy: str | None
    credentials: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ApiKeyStrategy:
    name: str
    scheme_name: str
    config: SchemeConfig

    def authenticate(self, request: web.Request) -> Any:
        """Return credentials for the request. Raises ApiKeyError."""
        return authenticate(self.config, request.query, request.headers)


def _normalize_mode(mode: bool | str | None) -> str | None:
    if mode is True:
        return "required"
    if mode is False or mode is None:
        return None
    if mode in MODES:
        return mode
    raise ConfigError(f"Invalid strategy mode: {mode!r}")


class AuthRegistry:
    """Strategies registered on one application."""

    def __init__(self, scheme_name: str) -> None:
        self.scheme_name = scheme_name
        self._strategies: dict[str, ApiKeyStrategy] = {}
        self._default: tuple[str, str] | None = None

    @property
    def default(self) -> tuple[str, str] | None:
        return self._default

    def __contains__(self, name: str) -> bool:
        return name in self._strategies

    def get(self, name: str) -> ApiKeyStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise ConfigError(f"Unknown auth strategy: {name!r}") from None

    def add(self, name: str, mode: bool | str | None, options: Mapping[str, Any]) -> ApiKeyStrategy:
        if not name or not isinstance(name, str):
            raise ConfigError("Strategy name must be a non-empty string")
        if name in self._strategies:
            raise ConfigError(f"Auth strategy already registered: {name!r}")
        mode = _normalize_mode(mode)
        if mode is not None and self._default is not None:
            raise ConfigError(
                f"Cannot set {name!r} as default, {self._default[0]!r} already is"
            )

        strategy = ApiKeyStrategy(name, self.scheme_name, build_scheme_config(options))
        self._strategies[name] = strategy
        if mode is not None:
            self._default = (name, mode)
        log.info(
            "Registered auth strategy %s (scheme=%s, mode=%s, store=%s)",
            name,
            self.scheme_name,
            mode or "none",
            strategy.config.key_store.shape,
        )
        return strategy


def setup(
    app: web.Application,
    *,
    scheme_name: str | None = None,
    strategy: Mapping[str, Any] | None = None,
) -> AuthRegistry:
    """Install the api-key scheme on app.

    ``strategy`` is optional: ``{"name": ..., "mode": ..., <scheme options>}``
    registers a strategy right away.
    """
    if PLUGIN_KEY in app:
        raise ConfigError("keygate is already set up on this application")

    options = dict(_PLUGIN_DEFAULTS)
    if scheme_name is not None:
        options["scheme_name"] = scheme_name

    registry = AuthRegistry(options["scheme_name"])
    app[PLUGIN_KEY] = registry
    app.middlewares.append(auth_middleware)
    app.on_startup.append(_check_routes)

    if strategy:
        strategy = dict(strategy)
        try:
            name = strategy.pop("name")
        except KeyError:
            raise ConfigError("strategy requires a name") from None
        mode = strategy.pop("mode", False)
        registry.add(name, mode, strategy)

    return registry


def register_strategy(
    app: web.Application, name: str, mode: bool | str | None = False, **options: Any
) -> ApiKeyStrategy:
    """Register a named strategy. Raises ConfigError on bad options."""
    try:
        registry: AuthRegistry = app[PLUGIN_KEY]
    except KeyError:
        raise ConfigError("call keygate.setup(app) before registering strategies") from None
    return registry.add(name, mode, options)


def auth_strategy(name: str, mode: bool | str | None = "required") -> Callable:
    """Select the strategy (and mode) a handler authenticates with."""
    normalized = _normalize_mode(mode)

    def decorator(handler: Callable) -> Callable:
        setattr(handler, _STRATEGY_ATTR, (name, normalized or "required"))
        return handler

    return decorator


def no_auth(handler: Callable) -> Callable:
    """Exempt a handler from the default strategy."""
    setattr(handler, _EXEMPT_ATTR, True)
    return handler


def _select(
    request: web.Request, registry: AuthRegistry
) -> tuple[ApiKeyStrategy, str] | None:
    match_info = request.match_info
    if match_info.http_exception is not None:
        return None
    handler = match_info.handler
    if getattr(handler, _EXEMPT_ATTR, False):
        return None
    selected = getattr(handler, _STRATEGY_ATTR, None) or registry.default
    if selected is None:
        return None
    name, mode = selected
    return registry.get(name), mode


@web.middleware
async def auth_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    registry: AuthRegistry = request.config_dict[PLUGIN_KEY]
    selected = _select(request, registry)
    if selected is None:
        request["auth"] = AuthInfo(is_authenticated=False, strategy=None)
        return await handler(request)

    strategy, mode = selected
    try:
        credentials = strategy.authenticate(request)
    except ApiKeyError as exc:
        if mode == "try" or (mode == "optional" and isinstance(exc, MissingKeyError)):
            request["auth"] = AuthInfo(
                is_authenticated=False, strategy=strategy.name, error=exc.reason
            )
            return await handler(request)
        raise web.HTTPUnauthorized(
            text=exc.reason, headers={"WWW-Authenticate": strategy.scheme_name}
        ) from None

    request["auth"] = AuthInfo(
        is_authenticated=True, strategy=strategy.name, credentials=credentials
    )
    return await handler(request)


async def _check_routes(app: web.Application) -> None:
    """Fail at startup if a handler names an unregistered strategy."""
    registry: AuthRegistry = app[PLUGIN_KEY]
    for route in app.router.routes():
        selected = getattr(route.handler, _STRATEGY_ATTR, None)
        if selected is not None and selected[0] not in registry:
            raise ConfigError(
                f"Route {route.method} {route.resource.canonical if route.resource else '?'} "
                f"uses unknown auth strategy {selected[0]!r}"
            )
