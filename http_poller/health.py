# Minimal liveness endpoint for the container orchestrator.

import logging

from aiohttp import web

log = logging.getLogger(__name__)


class HealthCheck:
    """Healthy once Pulsar is connected, unhealthy again during shutdown."""

    def __init__(self) -> None:
        self.is_healthy = False

    async def handle(self, _: web.Request) -> web.Response:
        if self.is_healthy:
            return web.Response(text="OK")
        return web.Response(status=500, text="Not healthy")


def create_app(health: HealthCheck) -> web.Application:
    app = web.Application()
    app.add_routes([web.get("/healthz", health.handle)])
    return app


async def start_health_server(health: HealthCheck, port: int) -> web.AppRunner:
    runner = web.AppRunner(create_app(health))
    await runner.setup()
    site = web.TCPSite(runner, host="0.0.0.0", port=port)
    await site.start()
    log.info("Health check listening on port %d", port)
    return runner
