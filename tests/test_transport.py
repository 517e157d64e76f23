from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from glucosync._transport import HttpTransport
from glucosync.exceptions import (
    FeedApiError,
    FeedAuthenticationError,
    FeedRateLimitError,
    FeedTimeoutError,
    FeedTransportError,
)


async def _ok(request: web.Request) -> web.Response:
    return web.json_response({"query": dict(request.query), "auth": request.headers.get("authorization")})


async def _echo(request: web.Request) -> web.Response:
    return web.json_response(await request.json())


async def _status(request: web.Request) -> web.Response:
    status = int(request.match_info["code"])
    return web.json_response({"Code": "SessionIdNotFound", "Message": "nope"}, status=status)


async def _not_json(_request: web.Request) -> web.Response:
    return web.Response(text="<html>maintenance</html>")


async def _empty(_request: web.Request) -> web.Response:
    return web.Response(text="")


async def _slow(_request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({})


@pytest_asyncio.fixture
async def server() -> AsyncIterator[test_utils.TestServer]:
    app = web.Application()
    app.router.add_get("/ok", _ok)
    app.router.add_post("/echo", _echo)
    app.router.add_get("/status/{code}", _status)
    app.router.add_get("/not-json", _not_json)
    app.router.add_get("/empty", _empty)
    app.router.add_get("/slow", _slow)
    test_server = test_utils.TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.mark.asyncio
async def test_get_with_params_and_headers(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=5)
        payload = await transport.request_json(
            "GET",
            str(server.make_url("/ok")),
            params={"minutes": 60},
            headers={"authorization": "Bearer t"},
        )

    assert payload == {"query": {"minutes": "60"}, "auth": "Bearer t"}


@pytest.mark.asyncio
async def test_post_json_body(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=5)
        payload = await transport.request_json("POST", str(server.make_url("/echo")), json={"a": 1})

    assert payload == {"a": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("code", "error_type"),
    [(401, FeedAuthenticationError), (403, FeedAuthenticationError), (429, FeedRateLimitError), (500, FeedApiError)],
)
async def test_error_statuses_are_mapped(
    server: test_utils.TestServer,
    code: int,
    error_type: type[Exception],
) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=5)
        with pytest.raises(error_type) as exc_info:
            await transport.request_json("GET", str(server.make_url(f"/status/{code}")), source="share")

    exc = exc_info.value
    assert isinstance(exc, FeedApiError)
    assert exc.status_code == code
    assert exc.source == "share"
    assert exc.body == {"Code": "SessionIdNotFound", "Message": "nope"}


@pytest.mark.asyncio
async def test_invalid_json_is_transport_error(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=5)
        with pytest.raises(FeedTransportError):
            await transport.request_json("GET", str(server.make_url("/not-json")))


@pytest.mark.asyncio
async def test_empty_body_is_none(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=5)
        assert await transport.request_json("GET", str(server.make_url("/empty"))) is None


@pytest.mark.asyncio
async def test_timeout_is_mapped(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=0.1)
        with pytest.raises(FeedTimeoutError):
            await transport.request_json("GET", str(server.make_url("/slow")))


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error() -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, timeout=2)
        with pytest.raises(FeedTransportError) as exc_info:
            await transport.request_json("GET", "http://127.0.0.1:1/unreachable")

    assert not isinstance(exc_info.value, FeedTimeoutError)
