"""
Relay for the backend's server-sent-events chat endpoints.

The inbound JSON body and Cookie header are forwarded to the backend, and the
backend's event stream is handed to the browser chunk by chunk. Failures are
answered as JSON ``{"error": ...}`` objects, which the chat client expects.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import httpx
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace

from edge_relay.config import ProxyConfig
from edge_relay.utils import log_relay_failure, traced_relay

from .errors import (
    BackendError,
    EmptyBody,
    NetworkFailure,
    RelayError,
    json_error_response,
)
from .streaming import BackendStreamResponse, close_backend_response, pipe_backend_body

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

LOG_PREFIX = "[StreamRelay]"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable buffering in nginx
}


def parse_json_body(body: bytes) -> Any:
    """
    Validate that the inbound body is JSON; the raw bytes are what gets forwarded.

    A body that does not parse fails like an unreachable backend, which is the
    only failure shape the chat client handles before a stream starts.
    """
    try:
        return json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise NetworkFailure() from e


async def read_body_text(response: httpx.Response) -> str:
    """Best-effort read of a backend body as text; the response is closed afterwards."""
    try:
        await response.aread()
        return response.text
    except httpx.HTTPError:
        return BackendError.message
    finally:
        await close_backend_response(response)


def _decode_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        return None


async def relay_event_stream(
    client: httpx.AsyncClient,
    config: ProxyConfig,
    backend_path: str,
    body: bytes,
    cookie: Optional[str],
    passthrough_json: bool = False,
) -> Response:
    """
    Forward a JSON POST to a streaming backend endpoint and relay the stream.

    Args:
        client: Shared backend client
        config: Relay configuration
        backend_path: Backend path, e.g. ``/api/chat/stream``
        body: Raw inbound JSON body, forwarded byte for byte
        cookie: Inbound Cookie header, forwarded unchanged
        passthrough_json: Replay JSON error bodies and JSON 2xx bodies from
            the backend as-is instead of wrapping or streaming them

    Returns:
        A streaming ``text/event-stream`` response, or a JSON error response
    """
    target_url = config.backend_endpoint(backend_path)
    with traced_relay(
        tracer,
        "relay_event_stream",
        backend_path,
        None,
        f"{LOG_PREFIX} POST {backend_path} -> {target_url}",
        {"relay.target_url": target_url},
    ) as span:
        try:
            parse_json_body(body)
            return await _open_event_stream(
                client, target_url, backend_path, body, cookie, passthrough_json, span
            )
        except RelayError as e:
            span.set_attribute("relay.error", type(e).__name__)
            log_relay_failure(logger, LOG_PREFIX, backend_path, e)
            return json_error_response(e)


async def _open_event_stream(
    client: httpx.AsyncClient,
    target_url: str,
    backend_path: str,
    body: bytes,
    cookie: Optional[str],
    passthrough_json: bool,
    span,
) -> Response:
    request = client.build_request(
        "POST",
        target_url,
        headers={"Content-Type": "application/json", "Cookie": cookie or ""},
        content=body,
    )
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as e:
        raise NetworkFailure() from e

    span.set_attribute("relay.status_code", response.status_code)

    if not response.is_success:
        text = await read_body_text(response)
        payload = _decode_json(text) if passthrough_json else None
        raise BackendError(response.status_code, text, payload=payload)

    if passthrough_json and "application/json" in response.headers.get(
        "content-type", ""
    ):
        # Business errors come back as 2xx JSON instead of a stream
        text = await read_body_text(response)
        payload = _decode_json(text)
        return JSONResponse(
            payload if payload is not None else {}, status_code=response.status_code
        )

    chunks = response.aiter_bytes()
    try:
        first_chunk = await chunks.__anext__()
    except StopAsyncIteration:
        await close_backend_response(response)
        raise EmptyBody()
    except httpx.HTTPError as e:
        await close_backend_response(response)
        raise EmptyBody() from e
    except asyncio.CancelledError:
        await close_backend_response(response)
        raise

    return BackendStreamResponse(
        pipe_backend_body(response, chunks, f"{LOG_PREFIX} {backend_path}", first_chunk),
        headers=SSE_HEADERS,
    )
