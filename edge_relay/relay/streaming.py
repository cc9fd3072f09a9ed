"""
Streaming plumbing shared by the relays.

Backend bodies are never buffered: each chunk read from the backend is
yielded to the ASGI server as soon as it arrives, and the backend response is
closed as soon as the client-facing response stops, whether it finished,
failed, or the client went away.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from .errors import StreamReadFailure

logger = logging.getLogger("uvicorn.error")


class BackendStreamResponse(StreamingResponse):
    """
    StreamingResponse that always closes its body iterator.

    Depending on the ASGI server, a client disconnect either cancels the
    streaming task or makes ``send`` raise; in the latter case Starlette
    leaves the body generator suspended. Closing it here runs the generator's
    cleanup, which releases the backend connection.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()


async def close_backend_response(response: httpx.Response) -> None:
    """Close a backend response, even while the current task is being cancelled."""
    await asyncio.shield(response.aclose())


async def pipe_backend_body(
    response: httpx.Response,
    chunks: AsyncIterator[bytes],
    label: str,
    first_chunk: Optional[bytes] = None,
) -> AsyncIterator[bytes]:
    """
    Yield backend body chunks one at a time, in backend order.

    Args:
        response: The backend response owning ``chunks``; closed on exit
        chunks: Iterator over the backend body (decoded or raw)
        label: Log prefix and endpoint used in failure messages
        first_chunk: A chunk already pulled from ``chunks`` by the caller

    Raises:
        StreamReadFailure: A backend read failed mid-stream. The exception
            escapes to the ASGI server, which aborts the client connection
            instead of terminating the body cleanly.
    """
    try:
        if first_chunk:
            yield first_chunk
        async for chunk in chunks:
            yield chunk
    except httpx.HTTPError as e:
        logger.error(f"{label} backend stream failed mid-body: {e!r}")
        raise StreamReadFailure() from e
    finally:
        await close_backend_response(response)


def replay_headers(response: httpx.Response) -> List[Tuple[bytes, bytes]]:
    """
    Every backend header as a raw ASGI header list.

    Repeated headers (Set-Cookie) stay separate entries in backend order.
    """
    return [(name.lower(), value) for name, value in response.headers.raw]


async def _already_read(response: httpx.Response) -> AsyncIterator[bytes]:
    # aiter_raw refuses a body that was read before the relay saw it
    if response.content:
        yield response.content


def replay_response(response: httpx.Response, label: str) -> BackendStreamResponse:
    """
    Client-facing copy of a backend response: same status, same headers,
    body bytes passed through undecoded so Content-Encoding stays truthful.
    """
    if response.is_stream_consumed:
        chunks = _already_read(response)
    else:
        chunks = response.aiter_raw()
    replay = BackendStreamResponse(
        pipe_backend_body(response, chunks, label),
        status_code=response.status_code,
    )
    replay.raw_headers = replay_headers(response)
    return replay
