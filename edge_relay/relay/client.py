import logging
from typing import Optional

import httpx
from fastapi import Request

from edge_relay.config import ProxyConfig

logger = logging.getLogger("uvicorn.error")


def create_backend_client(
    config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Create the pooled client shared by every relay in this process.

    Redirects are never followed: the OAuth relays must hand the backend's
    3xx to the browser untouched. The transport performs no retries, so each
    inbound request maps to exactly one outbound attempt.
    """
    limits = httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_keepalive_connections,
    )
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=0, limits=limits)
    logger.info(
        f"Backend client for {config.backend_url} "
        f"(timeout={config.timeout}s, connect={config.connect_timeout}s, "
        f"max_connections={config.max_connections})"
    )
    return httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
        follow_redirects=False,
    )


def get_backend_client(request: Request) -> httpx.AsyncClient:
    """FastAPI dependency returning the client opened by the app lifespan."""
    return request.app.state.backend_client
