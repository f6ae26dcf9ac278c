"""
Read-only admin HTTP endpoint for a running router.

GET /health    router state, live session count, backend endpoints, counters
GET /sessions  session registry snapshot (ids, peers, usernames, states)

Passwords never reach this module; the registry does not hold them.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Optional

import orjson
from aiohttp import web

from stocksim.config import EndpointConfig

if TYPE_CHECKING:
    from stocksim.router.server import RouterServer

logger = logging.getLogger(__name__)


def _json(payload: Any, status: int = 200) -> web.Response:
    return web.Response(
        body=orjson.dumps(payload, option=orjson.OPT_SORT_KEYS),
        status=status,
        content_type="application/json",
    )


def create_admin_app(router: RouterServer) -> web.Application:
    """Build the admin application bound to one router."""

    async def health(request: web.Request) -> web.Response:
        stats = asdict(router.stats)
        return _json(
            {
                "state": router.state.value,
                "sessions": len(router.registry),
                "authenticated_users": router.registry.authenticated_users(),
                "backends": {b.name: str(b.endpoint) for b in router.config.backends},
                "stats": stats,
            }
        )

    async def sessions(request: web.Request) -> web.Response:
        return _json({"sessions": router.registry.snapshot()})

    app = web.Application()
    app.router.add_get("/health", health)
    app.router.add_get("/sessions", sessions)
    return app


class AdminServer:
    """Serves the admin app on its own TCP endpoint."""

    def __init__(self, router: RouterServer, endpoint: EndpointConfig) -> None:
        self._router = router
        self._endpoint = endpoint
        self._runner: Optional[web.AppRunner] = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(create_admin_app(self._router))
        await runner.setup()
        site = web.TCPSite(runner, self._endpoint.host, self._endpoint.port)
        await site.start()
        self._runner = runner
        logger.info(f"[admin] Listening on http://{self._endpoint}")

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("[admin] Stopped")
