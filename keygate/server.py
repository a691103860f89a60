"""aiohttp application: /whoami and /healthz endpoints behind the api-key scheme."""

from __future__ import annotations

from typing import Any

from aiohttp import web

from keygate.plugin import AuthInfo, no_auth, setup


@no_auth
async def healthz(request: web.Request) -> web.Response:
    return web.Response(text="ok")


async def whoami(request: web.Request) -> web.Response:
    info: AuthInfo = request["auth"]
    return web.json_response(info.to_dict())


def create_app(config: dict[str, Any]) -> web.Application:
    app = web.Application()

    plugin_options = config.get("plugin") or {}
    setup(
        app,
        scheme_name=plugin_options.get("scheme_name"),
        strategy=config.get("strategy"),
    )

    app.router.add_get("/whoami", whoami)
    app.router.add_get("/healthz", healthz)
    return app
