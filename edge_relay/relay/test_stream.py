"""
Tests for the chat event-stream relay.

Tests cover:
- Chunk ordering and single-chunk forwarding
- Outbound request shape (body, Cookie, Content-Type)
- Error shapes for connect failures, backend errors and empty bodies
- Mid-stream failures and client disconnects closing the backend response
- JSON passthrough on the custom stream endpoint
"""

import asyncio
import json

import httpx
import pytest

from edge_relay.relay.errors import StreamReadFailure
from edge_relay.relay.stream import relay_event_stream
from edge_relay.utils_tests.fake_backend import (
    TEST_BACKEND_URL,
    FakeBackend,
    ScriptedStream,
    unreachable,
)

CHAT_PATH = "/api/chat/stream"
CUSTOM_PATH = "/api/chat/custom/stream"
BODY = b'{"message": "draw a flowchart", "diagramId": 7}'


def _json(response):
    return json.loads(response.body)


async def _collect(response):
    return [chunk async for chunk in response.body_iterator]


class TestStreaming:
    @pytest.mark.asyncio
    async def test_chunks_arrive_in_order_before_backend_produces_the_next(
        self, relay_config
    ):
        gates = [asyncio.Event() for _ in range(3)]
        gates[0].set()
        stream = ScriptedStream([b"a", b"b", b"c"], gates=gates)
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            body = response.body_iterator

            assert await body.__anext__() == b"a"
            assert stream.produced == [b"a"]

            gates[1].set()
            assert await body.__anext__() == b"b"
            assert stream.produced == [b"a", b"b"]

            gates[2].set()
            assert await body.__anext__() == b"c"
            with pytest.raises(StopAsyncIteration):
                await body.__anext__()

        assert stream.closed

    @pytest.mark.asyncio
    async def test_delayed_chunks_keep_their_order(self, relay_config):
        stream = ScriptedStream(
            [b"data: a\n\n", b"data: b\n\n", b"data: c\n\n"], delay=0.01
        )
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            chunks = await _collect(response)

        assert chunks == [b"data: a\n\n", b"data: b\n\n", b"data: c\n\n"]

    @pytest.mark.asyncio
    async def test_event_stream_headers(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(200, stream=ScriptedStream([b"x"]))
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            await _collect(response)

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["connection"] == "keep-alive"
        assert response.headers["x-accel-buffering"] == "no"

    @pytest.mark.asyncio
    async def test_outbound_request_carries_body_and_cookie_only(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(200, stream=ScriptedStream([b"x"]))
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "JSESSIONID=abc"
            )
            await _collect(response)

        sent = backend.last_request
        assert sent.method == "POST"
        assert str(sent.url) == f"{TEST_BACKEND_URL}/api/chat/stream"
        assert sent.content == BODY
        assert sent.headers["content-type"] == "application/json"
        assert sent.headers["cookie"] == "JSESSIONID=abc"
        assert "x-forwarded-host" not in sent.headers

    @pytest.mark.asyncio
    async def test_missing_cookie_forwarded_as_empty(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(200, stream=ScriptedStream([b"x"]))
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, None
            )
            await _collect(response)

        assert backend.last_request.headers["cookie"] == ""


class TestErrors:
    @pytest.mark.asyncio
    async def test_connect_failure(self, relay_config):
        backend = FakeBackend(unreachable)

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "Failed to connect to backend"}

    @pytest.mark.asyncio
    async def test_timeout_is_a_connect_failure(self, relay_config):
        def timeout(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        backend = FakeBackend(timeout)

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "Failed to connect to backend"}

    @pytest.mark.asyncio
    async def test_backend_error_passthrough(self, relay_config):
        backend = FakeBackend(lambda request: httpx.Response(500, content=b"boom"))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 500
        assert _json(response) == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_backend_error_keeps_status(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(401, content=b"not logged in")
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, ""
            )

        assert response.status_code == 401
        assert _json(response) == {"error": "not logged in"}

    @pytest.mark.asyncio
    async def test_unreadable_error_body(self, relay_config):
        stream = ScriptedStream([b"partial"], fail_after=0)
        backend = FakeBackend(lambda request: httpx.Response(503, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 503
        assert _json(response) == {"error": "Unknown error"}
        assert stream.closed

    @pytest.mark.asyncio
    async def test_json_error_body_is_wrapped_on_chat_stream(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(400, json={"code": 40001})
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 400
        assert json.loads(_json(response)["error"]) == {"code": 40001}

    @pytest.mark.asyncio
    async def test_empty_body(self, relay_config):
        stream = ScriptedStream([])
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "No response body from backend"}
        assert stream.closed

    @pytest.mark.asyncio
    async def test_no_content_response(self, relay_config):
        backend = FakeBackend(lambda request: httpx.Response(204))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "No response body from backend"}

    @pytest.mark.asyncio
    async def test_first_read_failure_is_an_empty_body(self, relay_config):
        stream = ScriptedStream([b"a"], fail_after=0)
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "No response body from backend"}
        assert stream.closed

    @pytest.mark.asyncio
    async def test_invalid_json_body_never_reaches_backend(self, relay_config):
        backend = FakeBackend(
            lambda request: httpx.Response(200, stream=ScriptedStream([b"x"]))
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, b"not json", "sid=1"
            )

        assert response.status_code == 502
        assert _json(response) == {"error": "Failed to connect to backend"}
        assert backend.requests == []


class TestStreamTermination:
    @pytest.mark.asyncio
    async def test_mid_stream_failure_raises_instead_of_ending(self, relay_config):
        stream = ScriptedStream([b"a", b"b"], fail_after=1)
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            body = response.body_iterator

            assert await body.__anext__() == b"a"
            with pytest.raises(StreamReadFailure):
                await body.__anext__()

        assert stream.closed

    @pytest.mark.asyncio
    async def test_client_going_away_closes_backend(self, relay_config):
        stream = ScriptedStream([b"a", b"b", b"c"])
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            body = response.body_iterator

            assert await body.__anext__() == b"a"
            await body.aclose()

            assert stream.closed
            assert stream.produced == [b"a"]

    @pytest.mark.asyncio
    async def test_cancelled_read_closes_backend(self, relay_config):
        gates = [asyncio.Event() for _ in range(2)]
        gates[0].set()
        stream = ScriptedStream([b"a", b"b"], gates=gates)
        backend = FakeBackend(lambda request: httpx.Response(200, stream=stream))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CHAT_PATH, BODY, "sid=1"
            )
            body = response.body_iterator
            assert await body.__anext__() == b"a"

            pending = asyncio.ensure_future(body.__anext__())
            await asyncio.sleep(0.01)
            pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending
            await asyncio.sleep(0)

        assert stream.closed
        assert stream.produced == [b"a"]


class TestCustomStream:
    @pytest.mark.asyncio
    async def test_json_error_body_replayed(self, relay_config):
        payload = {"code": 50001, "message": "AI service under maintenance"}
        backend = FakeBackend(lambda request: httpx.Response(503, json=payload))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CUSTOM_PATH, BODY, "sid=1", passthrough_json=True
            )

        assert response.status_code == 503
        assert _json(response) == payload
        assert str(backend.last_request.url) == f"{TEST_BACKEND_URL}{CUSTOM_PATH}"

    @pytest.mark.asyncio
    async def test_text_error_body_wrapped(self, relay_config):
        backend = FakeBackend(lambda request: httpx.Response(500, content=b"boom"))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CUSTOM_PATH, BODY, "sid=1", passthrough_json=True
            )

        assert response.status_code == 500
        assert _json(response) == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_json_success_body_replayed_instead_of_streamed(self, relay_config):
        payload = {"code": 50001, "message": "quota exceeded"}
        backend = FakeBackend(lambda request: httpx.Response(200, json=payload))

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CUSTOM_PATH, BODY, "sid=1", passthrough_json=True
            )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert _json(response) == payload

    @pytest.mark.asyncio
    async def test_unparsable_json_success_body_becomes_empty_object(
        self, relay_config
    ):
        backend = FakeBackend(
            lambda request: httpx.Response(
                200, headers={"content-type": "application/json"}, content=b"{oops"
            )
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CUSTOM_PATH, BODY, "sid=1", passthrough_json=True
            )

        assert response.status_code == 200
        assert _json(response) == {}

    @pytest.mark.asyncio
    async def test_event_stream_still_streams(self, relay_config):
        stream = ScriptedStream([b"data: 1\n\n", b"data: 2\n\n"])
        backend = FakeBackend(
            lambda request: httpx.Response(
                200, headers={"content-type": "text/event-stream"}, stream=stream
            )
        )

        async with backend.client() as client:
            response = await relay_event_stream(
                client, relay_config, CUSTOM_PATH, BODY, "sid=1", passthrough_json=True
            )
            chunks = await _collect(response)

        assert chunks == [b"data: 1\n\n", b"data: 2\n\n"]
