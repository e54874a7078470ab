import asyncio

from aiohttp import web
from aiohttp.test_utils import unused_port

from http_poller.config import PollerConfig
from http_poller.http_client import ConditionalHTTPClient
from http_poller.poller import HttpPoller


def _poller(session, dispatcher, **config) -> HttpPoller:
    poller_config = PollerConfig(**config)
    return HttpPoller(ConditionalHTTPClient(session, poller_config), dispatcher, poller_config)


async def test_sequence_dispatches_only_changed_responses(session, scripted, dispatcher):
    url, _ = await scripted(
        (200, {"ETag": '"a"'}, b"R1"),
        (200, {"ETag": '"a"'}, b"R2"),
        (200, {}, b"R3"),
        (200, {"ETag": '"b"'}, b"R4"),
    )
    poller = _poller(session, dispatcher, url=url)

    for _ in range(4):
        await poller.poll_once()

    assert [m.payload for m in dispatcher.messages] == [b"R1", b"R3", b"R4"]


async def test_not_modified_is_never_dispatched(session, scripted, dispatcher):
    url, _ = await scripted((200, {"ETag": '"a"'}, b"body"), (304, {"ETag": '"a"'}, b""))
    poller = _poller(session, dispatcher, url=url)

    await poller.poll_once()
    assert await poller.poll_once() is None

    assert len(dispatcher.messages) == 1


async def test_not_modified_with_new_etag_updates_cache_only(session, scripted, dispatcher):
    url, _ = await scripted((200, {"ETag": '"v1"'}, b"body"), (304, {"ETag": '"v2"'}, b""))
    poller = _poller(session, dispatcher, url=url)

    await poller.poll_once()
    assert await poller.poll_once() is None

    assert [m.payload for m in dispatcher.messages] == [b"body"]
    assert poller._http.etag == '"v2"'


async def test_message_properties_without_url(session, scripted, dispatcher):
    url, _ = await scripted((200, {}, b"payload"))
    poller = _poller(session, dispatcher, url=url)

    message = await poller.poll_once()

    assert message is dispatcher.messages[0]
    assert message.payload == b"payload"
    assert message.properties == {"statusCode": "200"}
    assert message.event_timestamp > 0


async def test_message_properties_with_url(session, scripted, dispatcher):
    url, _ = await scripted((200, {}, b"a"), (200, {}, b"b"))
    poller = _poller(session, dispatcher, url=url, is_url_in_message_properties=True)

    await poller.poll_once()
    await poller.poll_once()

    assert [m.properties for m in dispatcher.messages] == [
        {"statusCode": "200", "url": url},
        {"statusCode": "200", "url": url},
    ]
    assert dispatcher.messages[0].properties is not dispatcher.messages[1].properties


async def test_error_status_is_forwarded_with_warning(session, scripted, dispatcher, caplog):
    url, _ = await scripted((500, {"X-Reason": "backend down"}, b"oops"))
    poller = _poller(session, dispatcher, url=url)

    with caplog.at_level("WARNING", logger="http_poller.poller"):
        await poller.poll_once()

    assert dispatcher.messages[0].properties == {"statusCode": "500"}
    assert dispatcher.messages[0].payload == b"oops"
    assert "not OK" in caplog.text
    assert "backend down" in caplog.text
    assert "oops" in caplog.text


async def test_timeout_dispatches_nothing(session, serve, dispatcher, caplog):
    async def handler(request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.Response(body=b"late", headers={"ETag": '"late"'})

    url = await serve(handler)
    poller = _poller(session, dispatcher, url=url, request_timeout_s=0.05)

    with caplog.at_level("DEBUG", logger="http_poller.poller"):
        assert await poller.poll_once() is None

    assert dispatcher.messages == []
    assert poller._http.etag is None
    assert "timed out" in caplog.text


async def test_connection_failure_dispatches_nothing(session, dispatcher, caplog):
    url = f"http://127.0.0.1:{unused_port()}/data"
    poller = _poller(session, dispatcher, url=url)

    with caplog.at_level("WARNING", logger="http_poller.poller"):
        assert await poller.poll_once() is None

    assert dispatcher.messages == []
    assert "HTTP request failed" in caplog.text


async def test_run_forever_keeps_polling_after_failures(session, serve, dispatcher):
    calls = 0

    async def handler(request: web.Request) -> web.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(1)
        return web.Response(body=str(calls).encode())

    url = await serve(handler)
    poller = _poller(session, dispatcher, url=url, request_timeout_s=0.05, sleep_duration_s=0.01)

    task = asyncio.create_task(poller.run_forever())
    async with asyncio.timeout(5):
        while len(dispatcher.messages) < 2:
            await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert task.cancelled()
    assert dispatcher.messages[0].payload == b"2"
