"""
health.py — Tiny HTTP status endpoint next to the Discord client.

GET /        → bot connection + channel
GET /health  → healthy/starting, gateway latency, build busy flag
"""

from datetime import datetime, timezone
from typing import Callable

from aiohttp import web

import config

# Returns {"ready": bool, "user": str | None, "latency": float | None, "building": bool}
StateProvider = Callable[[], dict]


def create_app(state: StateProvider) -> web.Application:

    async def index(request: web.Request) -> web.Response:
        s = state()
        return web.json_response({
            "status": "running",
            "bot_connected": s["ready"],
            "bot_user": s.get("user"),
            "target_channel_id": config.TARGET_CHANNEL_ID,
        })

    async def health(request: web.Request) -> web.Response:
        s = state()
        latency = s.get("latency")
        return web.json_response({
            "status": "healthy" if s["ready"] else "starting",
            "bot_latency": round(latency * 1000) if s["ready"] and latency is not None else None,
            "build_in_progress": s.get("building", False),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    return app


async def start_health_server(state: StateProvider, host: str = None, port: int = None) -> web.AppRunner:
    host = host or config.HOST
    port = port or config.PORT
    runner = web.AppRunner(create_app(state))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    print(f"[health] Listening on http://{host}:{port}")
    return runner
