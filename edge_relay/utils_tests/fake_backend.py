"""
In-process fake of the backend origin for relay tests.

Built on ``httpx.MockTransport`` so relays run their real client code
against scripted responses, without sockets.
"""

import asyncio
from typing import Callable, Iterable, List, Optional

import httpx

from edge_relay.config import ProxyConfig

TEST_BACKEND_URL = "http://backend.test:8081"


def make_config(**overrides) -> ProxyConfig:
    values = {
        "backend_url": TEST_BACKEND_URL,
        "default_public_host": "www.intellidraw.top",
        "timeout": 5.0,
        "connect_timeout": 1.0,
    }
    values.update(overrides)
    return ProxyConfig(**values)


class ScriptedStream(httpx.AsyncByteStream):
    """
    Backend body that yields chunks on demand and records what happened.

    Attributes:
        produced: Chunks handed to the relay so far
        closed: Whether the relay closed the backend response
        gates: Optional per-chunk events; chunk ``i`` is only produced once
            ``gates[i]`` is set
        fail_after: Raise ``httpx.ReadError`` after this many chunks
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        gates: Optional[List[asyncio.Event]] = None,
        delay: float = 0.0,
        fail_after: Optional[int] = None,
    ):
        self.chunks = list(chunks)
        self.gates = gates
        self.delay = delay
        self.fail_after = fail_after
        self.produced: List[bytes] = []
        self.closed = False

    async def __aiter__(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise httpx.ReadError("backend connection reset")
            if self.gates is not None:
                await self.gates[index].wait()
            elif self.delay:
                await asyncio.sleep(self.delay)
            self.produced.append(chunk)
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise httpx.ReadError("backend connection reset")

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend:
    """
    Records every outbound request and answers with a scripted handler.

    Usage:
        backend = FakeBackend(lambda request: httpx.Response(302, headers=...))
        client = backend.client()
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handler(request)
        if response.is_stream_consumed:
            # httpx reads content= and json= bodies eagerly; serve them as a
            # live stream like a real connection would
            content = response.content
            response = httpx.Response(
                response.status_code,
                headers=response.headers.raw,
                stream=ScriptedStream([content] if content else []),
            )
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=False)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Name or service not known", request=request)
