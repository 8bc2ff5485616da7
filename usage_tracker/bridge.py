"""Local HTTP bridge between the browser extension and the tracker.

The extension's background page forwards tab/window notifications to
``POST /events`` and relays popup/content requests to ``POST /rpc``.
"""

from __future__ import annotations

import json
import logging

from aiohttp import web

from .dispatch import Dispatcher
from .engine import TrackerContext
from .errors import InvalidRequest, UsageTrackerError
from .messages import parse_event

CONTEXT_KEY = web.AppKey("context", TrackerContext)
DISPATCHER_KEY = web.AppKey("dispatcher", Dispatcher)

logger = logging.getLogger(__name__)


async def _read_json(request: web.Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise web.HTTPBadRequest(text=f"Body must be JSON: {exc}") from exc


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def post_event(request: web.Request) -> web.Response:
    payload = await _read_json(request)
    try:
        event = parse_event(payload)
    except InvalidRequest as exc:
        logger.debug("Ignoring browser event: %s", exc)
        return web.json_response({"ok": False, "error": str(exc)})

    try:
        await request.app[CONTEXT_KEY].handle_event(event)
    except UsageTrackerError:
        logger.exception("Browser event %s failed", type(event).__name__)
        return web.json_response({"ok": False})
    return web.json_response({"ok": True})


async def post_rpc(request: web.Request) -> web.Response:
    payload = await _read_json(request)
    result = await request.app[DISPATCHER_KEY].handle(payload)
    return web.json_response(result)


def create_app(context: TrackerContext, dispatcher: Dispatcher | None = None) -> web.Application:
    app = web.Application()
    app[CONTEXT_KEY] = context
    app[DISPATCHER_KEY] = dispatcher or Dispatcher(context)
    app.router.add_get("/health", health)
    app.router.add_post("/events", post_event)
    app.router.add_post("/rpc", post_rpc)
    return app


async def start_bridge(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Extension bridge listening on http://%s:%s", host, port)
    return runner
