# PollerService: the top-level orchestrator.

# Responsibilities:
#   - Start the health check server
#   - Connect the Pulsar client and producer
#   - Create one aiohttp session with a keep-alive connection pool
#   - Run the poll loop and the counter reporter as concurrent tasks
#   - Flush and close everything when the tasks are cancelled
#
# Concurrency model:
#   One event loop runs the poll loop, the counter reporter and the health
#   server. Pulsar acks arrive on the client's own threads and only touch
#   the ForwardCounter.

import asyncio
import logging

import aiohttp

from http_poller.config import Config
from http_poller.counter import ForwardCounter, report_forever
from http_poller.health import HealthCheck, start_health_server
from http_poller.http_client import ConditionalHTTPClient
from http_poller.poller import HttpPoller
from http_poller.producer import PulsarDispatcher, create_client, create_producer

log = logging.getLogger(__name__)


class PollerService:

    def __init__(self, config: Config) -> None:
        self._config = config
        self._tasks: list[asyncio.Task] = []
        self._stopping = False
        self.health = HealthCheck()
        self.counter = ForwardCounter()

    async def run(self) -> None:
        health_runner = await start_health_server(self.health, self._config.health_check.port)
        client = create_client(self._config.pulsar)
        try:
            # Connecting the producer waits for the broker; keep the loop free
            # for the health check meanwhile.
            producer = await asyncio.to_thread(create_producer, client, self._config.pulsar)
            try:
                await self._run_tasks(PulsarDispatcher(producer, self.counter))
            finally:
                self.health.is_healthy = False
                log.info("Flushing and closing the Pulsar producer")
                await asyncio.to_thread(producer.flush)
                producer.close()
        finally:
            client.close()
            await health_runner.cleanup()

    async def _run_tasks(self, dispatcher: PulsarDispatcher) -> None:
        if self._stopping:
            log.info("Stop requested during startup, not starting the poller")
            return
        poller_config = self._config.poller
        connector = aiohttp.TCPConnector(limit=1)   # never more than one request in flight
        async with aiohttp.ClientSession(
            connector=connector,
            # asyncio.timeout in the client bounds each request instead.
            timeout=aiohttp.ClientTimeout(total=None),
        ) as session:
            poller = HttpPoller(
                ConditionalHTTPClient(session, poller_config),
                dispatcher,
                poller_config,
            )
            self._tasks.append(asyncio.create_task(poller.run_forever(), name="poller"))
            if poller_config.log_interval_s > 0:
                self._tasks.append(asyncio.create_task(
                    report_forever(self.counter, poller_config.log_interval_s),
                    name="forward-counter",
                ))

            self.health.is_healthy = True
            log.info("PollerService running, forwarding %s to %s",
                     poller_config.url, self._config.pulsar.topic)

            # blocks until the tasks finish (normally only on cancellation)
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def stop(self) -> None:
        """
        Cancel the running tasks. run() then closes Pulsar and the health server.

        Safe to call before the tasks exist: run() then skips starting them.
        """
        self._stopping = True
        for task in self._tasks:
            task.cancel()
