# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from adapters.backend_qa.client import (
    BackendQAAdapter,
    BackendResponseError,
    parse_response,
)
from orchestrator.events import BackendAnswered, BackendFailed, Event


URL = "http://backend.test/chat"


async def wait_for(predicate: Callable[[], bool], timeout_s: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.01)


def make_adapter(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[BackendQAAdapter, list[Event], httpx.AsyncClient]:
    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = BackendQAAdapter(emit_event=emit, url=URL, client=client)
    return adapter, emitted, client


def test_parse_response_requires_response_string() -> None:
    assert parse_response({"response": "Hi"}) == "Hi"
    assert parse_response({"response": ""}) == ""

    for bad in ({}, {"response": 3}, ["response"], None):
        with pytest.raises(BackendResponseError):
            parse_response(bad)


@pytest.mark.asyncio
async def test_query_posts_json_and_emits_answer() -> None:
    requests: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append({
            "method": request.method,
            "url": str(request.url),
            "body": json.loads(request.content),
        })
        return httpx.Response(200, json={"response": "- Coconut Curry\n- Coconut Rice"})

    adapter, emitted, client = make_adapter(handler)

    await adapter.query(query_id=1, query="what recipes use coconut milk")
    await wait_for(lambda: bool(emitted))

    assert requests == [{
        "method": "POST",
        "url": URL,
        "body": {"query": "what recipes use coconut milk"},
    }]
    assert len(emitted) == 1
    assert isinstance(emitted[0], BackendAnswered)
    assert emitted[0].query_id == 1
    assert emitted[0].response == "- Coconut Curry\n- Coconut Rice"

    await adapter.aclose()
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_http_error_emits_failure() -> None:
    adapter, emitted, client = make_adapter(lambda _: httpx.Response(503))

    await adapter.query(query_id=7, query="hello")
    await wait_for(lambda: bool(emitted))

    assert isinstance(emitted[0], BackendFailed)
    assert emitted[0].query_id == 7
    assert "HTTPStatusError" in emitted[0].reason
    await client.aclose()


@pytest.mark.asyncio
async def test_malformed_body_emits_failure() -> None:
    adapter, emitted, client = make_adapter(
        lambda _: httpx.Response(200, json={"answer": "wrong key"})
    )

    await adapter.query(query_id=2, query="hello")
    await wait_for(lambda: bool(emitted))

    assert isinstance(emitted[0], BackendFailed)
    assert "BackendResponseError" in emitted[0].reason
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_error_emits_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter, emitted, client = make_adapter(handler)

    await adapter.query(query_id=3, query="hello")
    await wait_for(lambda: bool(emitted))

    assert isinstance(emitted[0], BackendFailed)
    assert "ConnectError" in emitted[0].reason
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_cancels_in_flight_queries_silently() -> None:
    gate = asyncio.Event()

    async def slow_handler(_: httpx.Request) -> httpx.Response:
        await gate.wait()
        return httpx.Response(200, json={"response": "late"})

    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    client = httpx.AsyncClient(transport=httpx.MockTransport(slow_handler))
    adapter = BackendQAAdapter(emit_event=emit, url=URL, client=client)

    await adapter.query(query_id=1, query="hello")
    await asyncio.sleep(0.01)
    await adapter.aclose()
    gate.set()
    await asyncio.sleep(0.01)

    assert emitted == []
    await client.aclose()
