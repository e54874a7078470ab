# ETag-based conditional HTTP GET client for the one polled URL.

# core efficiency mechanism:
#   When the source sends an ETag we keep it and send it back as
#   If-None-Match on the next request. If nothing changed the server answers
#   304 Not Modified with no body and nothing is forwarded to Pulsar.
#   Servers that repeat a 200 with the same ETag are treated the same way.

# Only one URL is ever polled, so the cache is a single slot instead of a
# url -> etag dict.

import asyncio
import base64
import logging
import time
from http import HTTPStatus

import aiohttp

from http_poller.config import PollerConfig
from http_poller.models import PollResult

log = logging.getLogger(__name__)


def basic_auth_header(username: str, password: str) -> str:
    credentials = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


class ConditionalHTTPClient:
    """
    Wraps an aiohttp.ClientSession with single-slot ETag caching.

    The cache slot is read before and written after every response. It is
    never touched when the request times out or fails, and it is only ever
    accessed from the poll loop.
    """

    def __init__(self, session: aiohttp.ClientSession, config: PollerConfig) -> None:
        self._session = session
        self._url = config.url
        self._timeout_s = config.request_timeout_s
        self._warning_threshold_s = config.warning_threshold_s
        self._etag: str | None = None   # last received ETag

        # Built once, reused unchanged for every request.
        self._headers: dict[str, str] = {"User-Agent": config.user_agent}
        if config.username is not None and config.password is not None:
            self._headers["Authorization"] = basic_auth_header(config.username, config.password)

    @property
    def etag(self) -> str | None:
        return self._etag

    def request_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if self._etag is not None:
            headers["If-None-Match"] = self._etag
        return headers

    async def fetch(self) -> PollResult:
        """
        Perform one conditional GET bounded by the request timeout.

        Raises:
            TimeoutError          when the timeout cancels the request
            aiohttp.ClientError   on connection, DNS, TLS or protocol failures
        """
        started = time.monotonic()
        async with asyncio.timeout(self._timeout_s):
            async with self._session.get(self._url, headers=self.request_headers()) as resp:
                body = await resp.read()
                status = resp.status
                headers = dict(resp.headers)
                etag = resp.headers.get("ETag")
        elapsed_s = time.monotonic() - started

        if self._warning_threshold_s is not None and elapsed_s > self._warning_threshold_s:
            log.warning(
                "The HTTP request took %.3f s, over the threshold of %s s",
                elapsed_s, self._warning_threshold_s,
            )

        changed = self._update_cache(status, etag)
        return PollResult(
            status=status,
            headers=headers,
            body=body,
            etag=etag,
            elapsed_s=elapsed_s,
            changed=changed,
        )

    def _update_cache(self, status: int, etag: str | None) -> bool:
        """Store the response's ETag and report whether the content changed."""
        unchanged = status == HTTPStatus.NOT_MODIFIED or (
            etag is not None and etag == self._etag
        )
        if unchanged:
            # A 304 without an ETag still confirms the validator we sent.
            if etag is not None:
                self._etag = etag
            return False
        self._etag = etag
        return True
