import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from http_poller.models import OutgoingMessage


class FakeDispatcher:
    """Records dispatched messages instead of sending them to Pulsar."""

    def __init__(self) -> None:
        self.messages: list[OutgoingMessage] = []

    def dispatch(self, message: OutgoingMessage) -> None:
        self.messages.append(message)


class ScriptedSource:
    """
    aiohttp handler that replays a list of (status, headers, body) responses
    and records the headers of every request it receives.
    """

    def __init__(self, responses: list[tuple[int, dict[str, str], bytes]]) -> None:
        self._responses = list(responses)
        self.requests: list[dict[str, str]] = []

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append(dict(request.headers))
        status, headers, body = self._responses.pop(0)
        return web.Response(status=status, headers=headers, body=body)


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as s:
        yield s


@pytest.fixture
async def serve():
    """Start a local HTTP source; returns its URL."""
    servers: list[TestServer] = []

    async def _serve(handler) -> str:
        app = web.Application()
        app.router.add_get("/data", handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/data"))

    yield _serve
    for server in servers:
        await server.close()


@pytest.fixture
def scripted(serve):
    """Start a ScriptedSource; returns (url, source)."""

    async def _scripted(*responses: tuple[int, dict[str, str], bytes]):
        source = ScriptedSource(list(responses))
        url = await serve(source.handle)
        return url, source

    return _scripted
