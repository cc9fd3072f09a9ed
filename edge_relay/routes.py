from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import Response

from edge_relay.config import ProxyConfig, get_proxy_config
from edge_relay.relay import (
    forward_to_backend,
    get_backend_client,
    relay_authorization,
    relay_callback,
    relay_event_stream,
)

router = APIRouter(prefix="/api")
passthrough_router = APIRouter(prefix="/api")


CHAT_STREAM_PATH = "/api/chat/stream"
CUSTOM_CHAT_STREAM_PATH = "/api/chat/custom/stream"


@router.post("/chat/stream")
async def chat_stream(
    request: Request,
    cookie: Optional[str] = Header(None),
    client: httpx.AsyncClient = Depends(get_backend_client),
    config: ProxyConfig = Depends(get_proxy_config),
) -> Response:
    """Relay the backend chat event stream to the browser."""
    body = await request.body()
    return await relay_event_stream(client, config, CHAT_STREAM_PATH, body, cookie)


@router.post("/chat/custom/stream")
async def custom_chat_stream(
    request: Request,
    cookie: Optional[str] = Header(None),
    client: httpx.AsyncClient = Depends(get_backend_client),
    config: ProxyConfig = Depends(get_proxy_config),
) -> Response:
    """
    Relay the custom-model chat stream.

    Unlike /chat/stream, JSON answers from the backend (error bodies and
    2xx business errors) are replayed as JSON rather than wrapped.
    """
    body = await request.body()
    return await relay_event_stream(
        client, config, CUSTOM_CHAT_STREAM_PATH, body, cookie, passthrough_json=True
    )


@router.get("/oauth2/authorization/{provider}")
async def oauth2_authorization(
    provider: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_backend_client),
    config: ProxyConfig = Depends(get_proxy_config),
) -> Response:
    """Start an OAuth2 login; the backend's redirect reaches the browser untouched."""
    return await relay_authorization(client, config, provider, request.headers)


@router.get("/login/oauth2/code/{provider}")
async def oauth2_callback(
    provider: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_backend_client),
    config: ProxyConfig = Depends(get_proxy_config),
) -> Response:
    """Hand the identity provider's callback to the backend, query string intact."""
    return await relay_callback(
        client, config, provider, request.headers, request.url.query
    )


@passthrough_router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def api_passthrough(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_backend_client),
    config: ProxyConfig = Depends(get_proxy_config),
) -> Response:
    """Catch-all route that forwards every other /api request to the backend."""
    return await forward_to_backend(client, config, request)
