# HttpPoller: polls one URL indefinitely and forwards changed bodies to Pulsar.

# responsibilities:
#   - poll the configured URL on a fixed interval, one request at a time
#   - skip forwarding when the server signals no change (304 or same ETag)
#   - turn every other response into one Pulsar message, whatever its status
#   - hand the message to the dispatcher without waiting for the ack
#   - survive timeouts and network failures: log, sleep, try again

import asyncio
import logging
from typing import Protocol

import aiohttp

from http_poller.config import PollerConfig
from http_poller.http_client import ConditionalHTTPClient
from http_poller.models import OutgoingMessage, PollResult, decode_body

log = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def dispatch(self, message: OutgoingMessage) -> None: ...


class HttpPoller:
    """
    Runs the poll-cache-forward loop for a single URL.

    There is no backoff and no jitter: every cycle, successful or not, is
    followed by the same sleep. Parallel requests are never sent, so the
    request rate is bounded by sleep duration plus response time.
    """

    def __init__(
        self,
        http_client: ConditionalHTTPClient,
        dispatcher: Dispatcher,
        config: PollerConfig,
    ) -> None:
        self._http = http_client
        self._dispatcher = dispatcher
        self._config = config
        self._url_property = config.url if config.is_url_in_message_properties else None

    async def run_forever(self) -> None:
        log.info(
            "Polling %s every %s s (request timeout %s s, warning threshold %s s, "
            "counter log interval %s s)",
            self._config.url,
            self._config.sleep_duration_s,
            self._config.request_timeout_s,
            self._config.warning_threshold_s,
            self._config.log_interval_s,
        )
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                log.info("Poller for %s cancelled.", self._config.url)
                raise
            await asyncio.sleep(self._config.sleep_duration_s)

    async def poll_once(self) -> OutgoingMessage | None:
        """Run one cycle. Returns the dispatched message, if any."""
        try:
            result = await self._http.fetch()
        except TimeoutError:
            log.debug("HTTP request timed out after %s s", self._config.request_timeout_s)
            return None
        except aiohttp.ClientError as exc:
            log.warning("HTTP request failed: %r", exc)
            return None
        except Exception as exc:
            log.exception("Unexpected error while polling %s: %s", self._config.url, exc)
            return None

        if not result.changed:
            log.debug("Not modified (status %d, ETag %s)", result.status, result.etag)
            return None

        return self._forward(result)

    def _forward(self, result: PollResult) -> OutgoingMessage:
        if not result.ok:
            log.warning(
                "HTTP response was not OK. Sending to Pulsar anyway. "
                "Status: %d. Headers: %s. Body: %s",
                result.status, result.headers, decode_body(result.body),
            )
        message = OutgoingMessage.from_response(result, url=self._url_property)
        self._dispatcher.dispatch(message)
        return message
