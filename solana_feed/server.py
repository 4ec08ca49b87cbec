"""
Feed HTTP server

Serves the Server-Sent Events stream consumed by the overlay, plus health
and debug endpoints.

Routes:
    GET /events            SSE stream (hello, marketcap replay, buys, marketcap)
    GET /overlay           overlay page from PUBLIC_DIR/overlay/index.html
    GET /health            pipeline status
    GET /debug/fake-buy    inject a synthetic buy (?sol=N, default 1)
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Optional

from aiohttp import web

from .core.feed import BuyFeed

logger = logging.getLogger(__name__)

FEED_KEY = web.AppKey("feed", BuyFeed)

# Comment frame sent on idle connections so dead clients are noticed
SSE_KEEPALIVE_SEC = 15.0
SSE_KEEPALIVE_FRAME = b": keepalive\n\n"


async def _add_cors(request: web.Request, response: web.StreamResponse) -> None:
    response.headers["Access-Control-Allow-Origin"] = "*"


async def handle_events(request: web.Request) -> web.StreamResponse:
    """Hold an SSE connection open and drain this subscriber's queue into it."""
    feed = request.app[FEED_KEY]
    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
    await response.prepare(request)

    subscriber = feed.hub.subscribe()
    try:
        while True:
            try:
                frame = await asyncio.wait_for(subscriber.next_frame(), timeout=SSE_KEEPALIVE_SEC)
            except asyncio.TimeoutError:
                frame = SSE_KEEPALIVE_FRAME
            if not frame:
                break
            await response.write(frame)
    except ConnectionError as e:
        logger.debug(f"Subscriber {subscriber.id} went away: {e}")
    finally:
        feed.hub.unsubscribe(subscriber)
    return response


async def _close_streams(app: web.Application) -> None:
    app[FEED_KEY].hub.close_all()


async def handle_overlay(request: web.Request) -> web.StreamResponse:
    feed = request.app[FEED_KEY]
    index = Path(feed.settings.PUBLIC_DIR) / "overlay" / "index.html"
    if not index.is_file():
        raise web.HTTPNotFound(text="overlay not installed")
    return web.FileResponse(index)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response(request.app[FEED_KEY].health())


def _parse_sol(raw: Optional[str]) -> float:
    amount = float(raw if raw not in (None, "") else "1")
    if not math.isfinite(amount):
        raise ValueError("sol must be finite")
    return amount


async def handle_fake_buy(request: web.Request) -> web.Response:
    try:
        amount = _parse_sol(request.query.get("sol"))
    except ValueError:
        return web.json_response({"ok": False, "error": "sol must be a number"}, status=400)

    request.app[FEED_KEY].inject_fake_buy(amount)
    return web.json_response({"ok": True})


def create_app(feed: BuyFeed) -> web.Application:
    app = web.Application()
    app[FEED_KEY] = feed
    app.on_response_prepare.append(_add_cors)
    app.on_shutdown.append(_close_streams)

    app.router.add_get("/events", handle_events)
    app.router.add_get("/overlay", handle_overlay)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/debug/fake-buy", handle_fake_buy)

    # Static assets last so explicit routes win
    public_dir = Path(feed.settings.PUBLIC_DIR)
    if public_dir.is_dir():
        app.router.add_static("/", public_dir)
    return app


class FeedServer:
    """aiohttp runner around the feed app."""

    def __init__(self, feed: BuyFeed, host: str = "0.0.0.0", port: int = 3000):
        self.feed = feed
        self.host = host
        self.port = port
        self.runner: Optional[web.AppRunner] = None

    async def start(self):
        app = create_app(self.feed)
        self.runner = web.AppRunner(app)
        await self.runner.setup()

        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()

        logger.info(f"✅ Listening on http://localhost:{self.port}")
        logger.info(f"   Overlay:   http://localhost:{self.port}/overlay")
        logger.info(f"   Events:    http://localhost:{self.port}/events")

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        logger.info("🛑 HTTP server stopped")
